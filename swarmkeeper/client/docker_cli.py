"""
Swarm client backed by the ``docker`` command line.

Objects are read with ``docker ... inspect`` and parsed from its JSON
output. Services are created and updated by translating a ``ServiceSpec``
into ``docker service create`` / ``docker service update`` flags.
"""

import json
import logging
import os
import shlex
import subprocess
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ..durations import format_duration, from_nanoseconds
from ..errors import DockerApiError
from ..models import (
    Node,
    Placement,
    PortConfig,
    RestartConfig,
    Service,
    ServiceSpec,
    Task,
    UpdateConfig,
    Version,
)
from ..settings import get_settings

ModelT = TypeVar("ModelT", bound=BaseModel)


# =============================================================================
# Spec -> CLI flags
# =============================================================================

def _duration_flag(nanoseconds: int) -> str:
    return format_duration(from_nanoseconds(nanoseconds))


def _port_flag(port: PortConfig) -> str:
    parts = []
    if port.published_port:
        parts.append(f"published={port.published_port}")
    parts.append(f"target={port.target_port}")
    parts.append(f"protocol={port.protocol}")
    parts.append(f"mode={port.publish_mode}")
    return ",".join(parts)


def _update_config_flags(prefix: str, config: UpdateConfig) -> list[str]:
    return [
        f"--{prefix}-parallelism", str(config.parallelism),
        f"--{prefix}-delay", _duration_flag(config.delay),
        f"--{prefix}-failure-action", config.failure_action,
        f"--{prefix}-monitor", _duration_flag(config.monitor),
        f"--{prefix}-max-failure-ratio", str(config.max_failure_ratio),
        f"--{prefix}-order", config.order,
    ]


def _restart_flags(config: RestartConfig) -> list[str]:
    args = ["--restart-condition", config.condition]
    if config.delay is not None:
        args.extend(["--restart-delay", _duration_flag(config.delay)])
    if config.max_attempts is not None:
        args.extend(["--restart-max-attempts", str(config.max_attempts)])
    if config.window is not None:
        args.extend(["--restart-window", _duration_flag(config.window)])
    return args


def _placement_update_flags(have: Placement, want: Placement) -> list[str]:
    args = []
    for constraint in have.constraints:
        if constraint not in want.constraints:
            args.extend(["--constraint-rm", constraint])
    for constraint in want.constraints:
        if constraint not in have.constraints:
            args.extend(["--constraint-add", constraint])
    for descriptor in have.spread:
        if descriptor not in want.spread:
            args.extend(["--placement-pref-rm", f"spread={descriptor}"])
    for descriptor in want.spread:
        if descriptor not in have.spread:
            args.extend(["--placement-pref-add", f"spread={descriptor}"])
    if want.max_replicas != have.max_replicas:
        args.extend(["--replicas-max-per-node", str(want.max_replicas)])
    return args


def _image_changed(have: str, want: str) -> bool:
    # the daemon pins images to a digest, only compare it when one is asked for
    if "@" in want:
        return have != want
    return have.split("@", 1)[0] != want


def _restart_changed(have: Optional[RestartConfig], want: RestartConfig) -> bool:
    if have is None:
        return True
    for name, value in want.model_dump(exclude_none=True).items():
        if getattr(have, name) != value:
            return True
    return False


def _env_map(env: list[str]) -> dict[str, str]:
    result = {}
    for entry in env:
        key, _, value = entry.partition("=")
        result[key] = value
    return result


def service_create_args(spec: ServiceSpec) -> list[str]:
    """Build the ``docker service create`` arguments for ``spec``."""
    container = spec.task_template.container_spec
    args = ["service", "create", "--detach", "--quiet", "--name", spec.name]

    if spec.mode.is_global:
        args.extend(["--mode", "global"])
    else:
        args.extend(["--mode", "replicated"])
        if spec.mode.replicated is not None and spec.mode.replicated.replicas is not None:
            args.extend(["--replicas", str(spec.mode.replicated.replicas)])

    for key, value in sorted(spec.labels.items()):
        args.extend(["--label", f"{key}={value}"])
    for key, value in sorted(container.labels.items()):
        args.extend(["--container-label", f"{key}={value}"])
    for entry in container.env:
        args.extend(["--env", entry])

    if container.command:
        args.extend(["--entrypoint", shlex.join(container.command)])
    if container.stop_grace_period is not None:
        args.extend(["--stop-grace-period", _duration_flag(container.stop_grace_period)])

    if spec.task_template.restart_policy is not None:
        args.extend(_restart_flags(spec.task_template.restart_policy))
    placement = spec.task_template.placement
    if placement is not None:
        for constraint in placement.constraints:
            args.extend(["--constraint", constraint])
        for descriptor in placement.spread:
            args.extend(["--placement-pref", f"spread={descriptor}"])
        if placement.max_replicas:
            args.extend(["--replicas-max-per-node", str(placement.max_replicas)])

    if spec.update_config is not None:
        args.extend(_update_config_flags("update", spec.update_config))
    if spec.rollback_config is not None:
        args.extend(_update_config_flags("rollback", spec.rollback_config))

    if spec.endpoint_spec is not None:
        args.extend(["--endpoint-mode", spec.endpoint_spec.mode])
        for port in spec.endpoint_spec.ports:
            args.extend(["--publish", _port_flag(port)])

    args.append(container.image)
    args.extend(container.args)
    return args


def service_update_args(service_id: str, current: ServiceSpec, desired: ServiceSpec) -> list[str]:
    """Build the ``docker service update`` arguments moving ``current`` to ``desired``.

    The CLI only knows additive and subtractive flags for collections, so
    env, labels, ports and placement are diffed against the current spec.
    """
    have = current.task_template.container_spec
    want = desired.task_template.container_spec
    args = ["service", "update", "--detach", "--quiet"]

    if _image_changed(have.image, want.image):
        args.extend(["--image", want.image])

    if not desired.mode.is_global and desired.mode.replicated is not None:
        replicas = desired.mode.replicated.replicas
        current_replicas = current.mode.replicated.replicas if current.mode.replicated else None
        if replicas is not None and replicas != current_replicas:
            args.extend(["--replicas", str(replicas)])

    if have.command != want.command:
        args.extend(["--entrypoint", shlex.join(want.command)])
    if have.args != want.args:
        args.extend(["--args", shlex.join(want.args)])

    have_env, want_env = _env_map(have.env), _env_map(want.env)
    for key in sorted(set(have_env) - set(want_env)):
        args.extend(["--env-rm", key])
    for key, value in want_env.items():
        if have_env.get(key) != value:
            args.extend(["--env-add", f"{key}={value}"])

    for flag, have_labels, want_labels in (
        ("label", current.labels, desired.labels),
        ("container-label", have.labels, want.labels),
    ):
        for key in sorted(set(have_labels) - set(want_labels)):
            args.extend([f"--{flag}-rm", key])
        for key, value in sorted(want_labels.items()):
            if have_labels.get(key) != value:
                args.extend([f"--{flag}-add", f"{key}={value}"])

    if want.stop_grace_period is not None and want.stop_grace_period != have.stop_grace_period:
        args.extend(["--stop-grace-period", _duration_flag(want.stop_grace_period)])

    restart = desired.task_template.restart_policy
    if restart is not None and _restart_changed(current.task_template.restart_policy, restart):
        args.extend(_restart_flags(restart))

    if desired.task_template.placement is not None:
        args.extend(_placement_update_flags(
            current.task_template.placement or Placement(),
            desired.task_template.placement,
        ))

    if desired.update_config is not None and desired.update_config != current.update_config:
        args.extend(_update_config_flags("update", desired.update_config))
    if desired.rollback_config is not None and desired.rollback_config != current.rollback_config:
        args.extend(_update_config_flags("rollback", desired.rollback_config))

    if desired.endpoint_spec is not None:
        have_ports = current.endpoint_spec.ports if current.endpoint_spec else []
        want_ports = desired.endpoint_spec.ports
        for port in have_ports:
            if port not in want_ports:
                args.extend(["--publish-rm", str(port.target_port)])
        for port in want_ports:
            if port not in have_ports:
                args.extend(["--publish-add", _port_flag(port)])
        if current.endpoint_spec is None or current.endpoint_spec.mode != desired.endpoint_spec.mode:
            args.extend(["--endpoint-mode", desired.endpoint_spec.mode])

    if desired.task_template.force_update > current.task_template.force_update:
        args.append("--force")

    args.append(service_id)
    return args


# =============================================================================
# Client
# =============================================================================

class DockerCliClient:
    """``SwarmClient`` implementation that shells out to the docker CLI.

    Args:
        binary: Docker executable (default: settings.docker_binary)
        docker_host: Daemon address forwarded as DOCKER_HOST (default: settings.docker_host)
        timeout: Seconds a single call may take (default: settings.command_timeout)
    """

    def __init__(
        self,
        binary: Optional[str] = None,
        docker_host: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.binary = binary or settings.docker_binary
        self.docker_host = docker_host or settings.docker_host
        self.timeout = timeout or settings.command_timeout
        self.logger = logging.getLogger(__name__ + ".DockerCliClient")

    def _env(self) -> Optional[dict[str, str]]:
        if not self.docker_host:
            return None
        env = dict(os.environ)
        env["DOCKER_HOST"] = self.docker_host
        return env

    def _run(self, *args: str, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        command = [self.binary, *args]
        self.logger.debug(f"Running: {shlex.join(command)}")
        try:
            process = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
                env=self._env(),
            )
        except subprocess.TimeoutExpired as e:
            raise DockerApiError(
                f"'{shlex.join(command[:3])}' timed out after {e.timeout}s", command
            ) from e
        except FileNotFoundError as e:
            raise DockerApiError(f"Docker CLI not found: {self.binary}", command) from e

        if process.returncode != 0:
            stderr = process.stderr.strip()
            raise DockerApiError(
                f"Error running '{shlex.join(command[:3])}': {stderr}",
                command,
                process.returncode,
                stderr,
            )
        return process

    def _ids(self, *args: str) -> list[str]:
        return [line.strip() for line in self._run(*args).stdout.splitlines() if line.strip()]

    def _inspect(self, *args: str) -> list[dict[str, Any]]:
        output = self._run(*args).stdout
        try:
            data = json.loads(output or "[]")
        except json.JSONDecodeError as e:
            raise DockerApiError(f"Unparseable output from '{' '.join(args[:2])}': {e}") from e
        return data if isinstance(data, list) else [data]

    def _parse(self, model: type[ModelT], item: Any) -> ModelT:
        try:
            return model.model_validate(item)
        except ValidationError as e:
            raise DockerApiError(f"Unparseable {model.__name__} from the daemon: {e}") from e

    # -- services ------------------------------------------------------------

    def inspect_service(self, service_id: str) -> Service:
        data = self._inspect("service", "inspect", service_id)
        if not data:
            raise DockerApiError(f"No such service: {service_id}")
        return self._parse(Service, data[0])

    def list_services(self) -> list[Service]:
        ids = self._ids("service", "ls", "--quiet")
        if not ids:
            return []
        return [self._parse(Service, item) for item in self._inspect("service", "inspect", *ids)]

    def create_service(self, spec: ServiceSpec) -> str:
        process = self._run(*service_create_args(spec))
        service_id = process.stdout.strip().splitlines()[-1] if process.stdout.strip() else ""
        if not service_id:
            raise DockerApiError(f"Service {spec.name} was created without an ID")
        return service_id

    def update_service(self, service_id: str, version: Version, spec: ServiceSpec) -> list[str]:
        # the CLI resolves the current version itself, the diff needs the current spec
        current = self.inspect_service(service_id)
        if current.version.index != version.index:
            self.logger.info(
                f"Service {service_id} moved from version {version.index} to {current.version.index}"
            )
        process = self._run(*service_update_args(service_id, current.spec, spec))
        return [line.strip() for line in process.stderr.splitlines() if line.strip()]

    def remove_service(self, service_id: str) -> None:
        self._run("service", "rm", service_id)

    # -- tasks and nodes -----------------------------------------------------

    def list_tasks(self, service_id: str, desired_state: Optional[str] = None) -> list[Task]:
        args = ["service", "ps", service_id, "--quiet", "--no-trunc"]
        if desired_state:
            args.extend(["--filter", f"desired-state={desired_state}"])
        ids = self._ids(*args)
        if not ids:
            return []
        return [self._parse(Task, item) for item in self._inspect("inspect", "--type", "task", *ids)]

    def list_nodes(self) -> list[Node]:
        ids = self._ids("node", "ls", "--quiet")
        if not ids:
            return []
        return [self._parse(Node, item) for item in self._inspect("node", "inspect", *ids)]

    # -- containers ----------------------------------------------------------

    def wait_container(self, container_id: str, timeout: float) -> int:
        process = self._run("wait", container_id, timeout=timeout)
        output = process.stdout.strip()
        return int(output) if output.lstrip("-").isdigit() else 0

    def remove_container(self, container_id: str) -> None:
        self._run("rm", "--force", "--volumes", container_id)
