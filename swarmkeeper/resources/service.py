"""Declarative swarm service resource."""

from datetime import timedelta
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from ..converge.config import ConvergeConfig
from ..durations import parse_duration, to_nanoseconds
from ..models import (
    ContainerSpec,
    EndpointSpec,
    Placement,
    PortConfig,
    ReplicatedMode,
    RestartConfig,
    ServiceMode,
    ServiceSpec,
    TaskTemplate,
    UpdateConfig,
)


def _duration(value: Any) -> Any:
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    return value


class UpdatePolicy(BaseModel):
    """Strategy for rolling updates and rollbacks.

    Attributes:
        parallelism: Tasks updated at once, 0 updates all at once
        delay: Wait between updating groups of tasks
        failure_action: What to do when an update fails: "pause", "continue" or "rollback"
        monitor: How long to watch each task for failure after it was updated
        max_failure_ratio: Tolerated failure ratio during an update
        order: "stop-first" or "start-first"
    """

    parallelism: int = Field(default=1, ge=0)
    delay: timedelta = timedelta(0)
    failure_action: Literal["pause", "continue", "rollback"] = "pause"
    monitor: timedelta = timedelta(seconds=5)
    max_failure_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    order: Literal["stop-first", "start-first"] = "stop-first"

    @field_validator("delay", "monitor", mode="before")
    @classmethod
    def _parse_durations(cls, value: Any) -> Any:
        return _duration(value)

    def to_update_config(self) -> UpdateConfig:
        return UpdateConfig(
            parallelism=self.parallelism,
            delay=to_nanoseconds(self.delay),
            failure_action=self.failure_action,
            monitor=to_nanoseconds(self.monitor),
            max_failure_ratio=self.max_failure_ratio,
            order=self.order,
        )


class RestartPolicy(BaseModel):
    """When the swarm restarts the tasks of a service.

    Attributes:
        condition: "none", "on-failure" or "any"
        delay: Wait between restart attempts
        max_attempts: Give up after this many restarts, 0 retries forever
        window: Time window used to evaluate the restart policy
    """

    condition: Literal["none", "on-failure", "any"] = "any"
    delay: timedelta | None = None
    max_attempts: int | None = Field(default=None, ge=0)
    window: timedelta | None = None

    @field_validator("delay", "window", mode="before")
    @classmethod
    def _parse_durations(cls, value: Any) -> Any:
        return _duration(value)

    def to_restart_config(self) -> RestartConfig:
        return RestartConfig(
            condition=self.condition,
            delay=to_nanoseconds(self.delay) if self.delay is not None else None,
            max_attempts=self.max_attempts,
            window=to_nanoseconds(self.window) if self.window is not None else None,
        )


class PlacementPolicy(BaseModel):
    """Scheduling constraints and preferences.

    Attributes:
        constraints: Expressions such as "node.role==worker"
        spread: Descriptors to spread tasks over, such as "node.labels.zone"
        max_replicas: Maximum tasks per node, 0 means unlimited
    """

    constraints: list[str] = Field(default_factory=list, examples=[["node.role==worker"]])
    spread: list[str] = Field(default_factory=list, examples=[["node.labels.zone"]])
    max_replicas: int = Field(default=0, ge=0)

    @field_validator("constraints")
    @classmethod
    def _check_constraints(cls, value: list[str]) -> list[str]:
        for constraint in value:
            if "==" not in constraint and "!=" not in constraint:
                raise ValueError(f"invalid placement constraint {constraint!r}")
        return value

    def to_placement(self) -> Placement:
        return Placement(
            constraints=self.constraints,
            spread=self.spread,
            max_replicas=self.max_replicas,
        )


class ServiceResource(BaseModel):
    """A swarm service described by its desired state.

    Creation, update and removal are detached by default. With a
    ``converge_config`` the reconciler waits until all replicas run or the
    update completed, and reports rollbacks as failures.

    Attributes:
        name: Service name - must be unique in the swarm
        image: Image with tag
        command: Entrypoint override
        args: Arguments passed to the entrypoint
        env_vars: Environment variables as key-value pairs
        labels: Service labels
        mode: "replicated" or "global"
        replicas: Replica count for replicated services
        ports: Published ports in "published:target[/protocol]" or "target[/protocol]" format
        stop_grace_period: Time to wait for containers to stop before they are killed
        update_config: Rolling update strategy
        rollback_config: Rollback strategy
        restart_policy: When failed tasks are restarted
        placement: Constraints and preferences for scheduling tasks
        converge_config: Wait for the service to converge after create/update

    Examples:
        >>> web = ServiceResource(
        ...     name="web",
        ...     image="nginx:alpine",
        ...     replicas=2,
        ...     ports=["8080:80"],
        ...     converge_config=ConvergeConfig(timeout="1m"),
        ... )
    """

    name: str = Field(
        ...,
        description="Service name - must be unique",
        examples=["web", "api", "worker"],
    )
    image: str = Field(
        ...,
        description="Docker image with tag",
        examples=["nginx:alpine", "redis:7-alpine"],
    )
    command: list[str] = Field(default_factory=list, description="Entrypoint override")
    args: list[str] = Field(default_factory=list, description="Arguments to the entrypoint")
    env_vars: dict[str, str] = Field(
        default_factory=dict,
        description="Environment variables as key-value pairs",
        examples=[{"DEBUG": "1"}],
    )
    labels: dict[str, str] = Field(default_factory=dict, description="Service labels")
    mode: Literal["replicated", "global"] = "replicated"
    replicas: int | None = Field(default=1, ge=0, description="Replica count (replicated mode)")
    ports: list[str] = Field(
        default_factory=list,
        description="Port mappings in 'published:target' format",
        examples=[["8080:80"], ["53:53/udp"]],
    )
    stop_grace_period: timedelta | None = None
    update_config: UpdatePolicy | None = None
    rollback_config: UpdatePolicy | None = None
    restart_policy: RestartPolicy | None = None
    placement: PlacementPolicy | None = None
    converge_config: ConvergeConfig | None = None

    @field_validator("stop_grace_period", mode="before")
    @classmethod
    def _parse_grace_period(cls, value: Any) -> Any:
        return _duration(value)

    @field_validator("ports")
    @classmethod
    def _check_ports(cls, value: list[str]) -> list[str]:
        for mapping in value:
            _parse_port(mapping)
        return value

    @model_validator(mode="after")
    def _check_mode(self) -> "ServiceResource":
        if self.mode == "global" and self.converge_config is not None:
            raise ValueError("converge_config cannot be used with global services")
        return self

    def to_service_spec(self) -> ServiceSpec:
        """Translate the resource into the daemon's service spec."""
        if self.mode == "global":
            mode = ServiceMode(global_={})
        else:
            mode = ServiceMode(replicated=ReplicatedMode(replicas=self.replicas))

        container = ContainerSpec(
            image=self.image,
            command=self.command,
            args=self.args,
            env=[f"{k}={v}" for k, v in self.env_vars.items()],
            stop_grace_period=(
                to_nanoseconds(self.stop_grace_period)
                if self.stop_grace_period is not None
                else None
            ),
        )

        endpoint = None
        if self.ports:
            endpoint = EndpointSpec(ports=[_parse_port(mapping) for mapping in self.ports])

        return ServiceSpec(
            name=self.name,
            labels=self.labels,
            task_template=TaskTemplate(
                container_spec=container,
                restart_policy=self.restart_policy.to_restart_config() if self.restart_policy else None,
                placement=self.placement.to_placement() if self.placement else None,
            ),
            mode=mode,
            update_config=self.update_config.to_update_config() if self.update_config else None,
            rollback_config=self.rollback_config.to_update_config() if self.rollback_config else None,
            endpoint_spec=endpoint,
        )


def _parse_port(mapping: str) -> PortConfig:
    """Parse "8080:80", "8080:80/udp" or "80" into a port config."""
    ports, _, protocol = mapping.partition("/")
    parts = ports.split(":")
    try:
        numbers = [int(part) for part in parts]
    except ValueError as e:
        raise ValueError(f"invalid port mapping {mapping!r}") from e
    if len(numbers) not in (1, 2) or protocol not in ("", "tcp", "udp", "sctp"):
        raise ValueError(f"invalid port mapping {mapping!r}")

    published, target = (numbers[0], numbers[1]) if len(numbers) == 2 else (0, numbers[0])
    return PortConfig(
        target_port=target,
        published_port=published,
        protocol=protocol or "tcp",
    )
