"""
Pydantic models for the swarm objects Swarmkeeper reads from and writes to the daemon.

The daemon reports objects as JSON with PascalCase keys; every model accepts
those keys through aliases and can be populated by field name as well.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .converge.states import TaskState

_FRACTION = re.compile(r"(\.\d{6})\d+")


class SwarmModel(BaseModel):
    """Base model for daemon objects."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# Enums
# =============================================================================

class NodeState(str, Enum):
    """Node status as reported by the swarm."""
    UNKNOWN = "unknown"
    DOWN = "down"
    READY = "ready"
    DISCONNECTED = "disconnected"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class UpdateState(str, Enum):
    """State of a rolling update (or its rollback) on a service."""
    UNKNOWN = "unknown"
    UPDATING = "updating"
    PAUSED = "paused"
    COMPLETED = "completed"
    ROLLBACK_STARTED = "rollback_started"
    ROLLBACK_PAUSED = "rollback_paused"
    ROLLBACK_COMPLETED = "rollback_completed"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


# =============================================================================
# Tasks and nodes
# =============================================================================

class ContainerStatus(SwarmModel):
    container_id: str = Field(default="", alias="ContainerID")
    pid: int = Field(default=0, alias="PID")
    exit_code: int = Field(default=0, alias="ExitCode")


class TaskStatus(SwarmModel):
    """Observed status of a task."""

    state: TaskState = Field(default=TaskState.UNKNOWN, alias="State")
    message: str = Field(default="", alias="Message")
    err: str = Field(default="", alias="Err")
    timestamp: Optional[datetime] = Field(default=None, alias="Timestamp")
    container_status: Optional[ContainerStatus] = Field(default=None, alias="ContainerStatus")

    @field_validator("state", mode="before")
    @classmethod
    def _known_state(cls, value: Any) -> Any:
        return TaskState(value) if isinstance(value, str) else value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _truncate_nanoseconds(cls, value: Any) -> Any:
        # the daemon reports nanoseconds, datetime only holds microseconds
        if isinstance(value, str):
            return _FRACTION.sub(r"\1", value)
        return value


class Task(SwarmModel):
    """One scheduled attempt to run a replica of a service.

    Several tasks can share a slot across restarts and rolling updates.
    """

    id: str = Field(alias="ID")
    service_id: str = Field(default="", alias="ServiceID")
    slot: int = Field(default=0, alias="Slot")
    node_id: str = Field(default="", alias="NodeID")
    desired_state: TaskState = Field(default=TaskState.UNKNOWN, alias="DesiredState")
    status: TaskStatus = Field(default_factory=TaskStatus, alias="Status")

    @field_validator("desired_state", mode="before")
    @classmethod
    def _known_state(cls, value: Any) -> Any:
        return TaskState(value) if isinstance(value, str) else value

    @property
    def state(self) -> TaskState:
        """Observed state."""
        return self.status.state

    @property
    def container_id(self) -> str:
        if self.status.container_status is None:
            return ""
        return self.status.container_status.container_id


class NodeStatus(SwarmModel):
    state: NodeState = Field(default=NodeState.UNKNOWN, alias="State")
    addr: str = Field(default="", alias="Addr")

    @field_validator("state", mode="before")
    @classmethod
    def _known_state(cls, value: Any) -> Any:
        return NodeState(value) if isinstance(value, str) else value


class NodeDescription(SwarmModel):
    hostname: str = Field(default="", alias="Hostname")


class Node(SwarmModel):
    id: str = Field(alias="ID")
    description: NodeDescription = Field(default_factory=NodeDescription, alias="Description")
    status: NodeStatus = Field(default_factory=NodeStatus, alias="Status")

    @property
    def is_down(self) -> bool:
        return self.status.state == NodeState.DOWN


# =============================================================================
# Services
# =============================================================================

class ReplicatedMode(SwarmModel):
    replicas: Optional[int] = Field(default=None, alias="Replicas")


class ServiceMode(SwarmModel):
    """Scheduling mode, exactly one of replicated or global."""

    replicated: Optional[ReplicatedMode] = Field(default=None, alias="Replicated")
    global_: Optional[dict[str, Any]] = Field(default=None, alias="Global")

    @property
    def is_global(self) -> bool:
        return self.global_ is not None


class ContainerSpec(SwarmModel):
    image: str = Field(default="", alias="Image")
    command: list[str] = Field(default_factory=list, alias="Command")
    args: list[str] = Field(default_factory=list, alias="Args")
    env: list[str] = Field(default_factory=list, alias="Env")
    labels: dict[str, str] = Field(default_factory=dict, alias="Labels")
    stop_grace_period: Optional[int] = Field(
        default=None, alias="StopGracePeriod", description="Nanoseconds"
    )

    @field_validator("command", "args", "env", mode="before")
    @classmethod
    def _none_as_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value


class RestartConfig(SwarmModel):
    """When the swarm restarts failed tasks. Durations are nanoseconds."""

    condition: str = Field(default="any", alias="Condition")
    delay: Optional[int] = Field(default=None, alias="Delay")
    max_attempts: Optional[int] = Field(default=None, alias="MaxAttempts")
    window: Optional[int] = Field(default=None, alias="Window")


class Placement(SwarmModel):
    """Where the scheduler may put tasks.

    ``spread`` holds the descriptors of the daemon's spread preferences,
    e.g. ``node.labels.zone``.
    """

    constraints: list[str] = Field(default_factory=list, alias="Constraints")
    spread: list[str] = Field(default_factory=list, alias="Preferences")
    max_replicas: int = Field(default=0, alias="MaxReplicas")

    @field_validator("constraints", mode="before")
    @classmethod
    def _none_as_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("spread", mode="before")
    @classmethod
    def _spread_descriptors(cls, value: Any) -> Any:
        if value is None:
            return []
        # daemon form: [{"Spread": {"SpreadDescriptor": "node.labels.zone"}}]
        return [
            item.get("Spread", {}).get("SpreadDescriptor", "") if isinstance(item, dict) else item
            for item in value
        ]


class TaskTemplate(SwarmModel):
    container_spec: ContainerSpec = Field(default_factory=ContainerSpec, alias="ContainerSpec")
    restart_policy: Optional[RestartConfig] = Field(default=None, alias="RestartPolicy")
    placement: Optional[Placement] = Field(default=None, alias="Placement")
    force_update: int = Field(default=0, alias="ForceUpdate")


class UpdateConfig(SwarmModel):
    """Rolling update (or rollback) strategy. Durations are nanoseconds."""

    parallelism: int = Field(default=1, alias="Parallelism")
    delay: int = Field(default=0, alias="Delay")
    failure_action: str = Field(default="pause", alias="FailureAction")
    monitor: int = Field(default=0, alias="Monitor")
    max_failure_ratio: float = Field(default=0.0, alias="MaxFailureRatio")
    order: str = Field(default="stop-first", alias="Order")


class PortConfig(SwarmModel):
    protocol: str = Field(default="tcp", alias="Protocol")
    target_port: int = Field(alias="TargetPort")
    published_port: int = Field(default=0, alias="PublishedPort")
    publish_mode: str = Field(default="ingress", alias="PublishMode")


class EndpointSpec(SwarmModel):
    mode: str = Field(default="vip", alias="Mode")
    ports: list[PortConfig] = Field(default_factory=list, alias="Ports")

    @field_validator("ports", mode="before")
    @classmethod
    def _none_as_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value


class ServiceSpec(SwarmModel):
    """Desired definition of a swarm service."""

    name: str = Field(alias="Name")
    labels: dict[str, str] = Field(default_factory=dict, alias="Labels")
    task_template: TaskTemplate = Field(default_factory=TaskTemplate, alias="TaskTemplate")
    mode: ServiceMode = Field(default_factory=ServiceMode, alias="Mode")
    update_config: Optional[UpdateConfig] = Field(default=None, alias="UpdateConfig")
    rollback_config: Optional[UpdateConfig] = Field(default=None, alias="RollbackConfig")
    endpoint_spec: Optional[EndpointSpec] = Field(default=None, alias="EndpointSpec")

    @field_validator("labels", mode="before")
    @classmethod
    def _none_as_empty_dict(cls, value: Any) -> Any:
        return {} if value is None else value


class Version(SwarmModel):
    index: int = Field(default=0, alias="Index")


class UpdateStatus(SwarmModel):
    state: UpdateState = Field(default=UpdateState.UNKNOWN, alias="State")
    message: str = Field(default="", alias="Message")

    @field_validator("state", mode="before")
    @classmethod
    def _known_state(cls, value: Any) -> Any:
        return UpdateState(value) if isinstance(value, str) else value


class Service(SwarmModel):
    id: str = Field(alias="ID")
    version: Version = Field(default_factory=Version, alias="Version")
    spec: ServiceSpec = Field(alias="Spec")
    update_status: Optional[UpdateStatus] = Field(default=None, alias="UpdateStatus")

    @property
    def replicas(self) -> Optional[int]:
        """Replica count, None when the service is not replicated or has no count."""
        if self.spec.mode.replicated is None:
            return None
        return self.spec.mode.replicated.replicas
