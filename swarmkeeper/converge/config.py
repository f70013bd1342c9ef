"""User-supplied convergence parameters."""

from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from ..durations import format_duration, parse_duration
from ..settings import get_settings


def _default_delay() -> timedelta:
    return parse_duration(get_settings().default_converge_delay)


def _default_timeout() -> timedelta:
    return parse_duration(get_settings().default_converge_timeout)


class ConvergeConfig(BaseModel):
    """How long to wait for a service to converge.

    Both values accept duration strings (``"500ms"``, ``"7s"``, ``"1m30s"``)
    or numbers of seconds.

    Attributes:
        delay: Wait before the first poll (default: 7s)
        timeout: Total budget, measured from the start of the wait (default: 3m)

    Example:
        >>> ConvergeConfig(delay="2s", timeout="1m")
    """

    model_config = ConfigDict(frozen=True)

    delay: timedelta = Field(default_factory=_default_delay)
    timeout: timedelta = Field(default_factory=_default_timeout)

    @field_validator("delay", "timeout", mode="before")
    @classmethod
    def _parse(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_duration(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return timedelta(seconds=value)
        return value

    @field_validator("delay", "timeout")
    @classmethod
    def _not_negative(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ValueError(f"duration must be >= 0, got {format_duration(value)}")
        return value

    @field_serializer("delay", "timeout")
    def _render(self, value: timedelta) -> str:
        return format_duration(value)
