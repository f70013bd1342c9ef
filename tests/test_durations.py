"""Tests for duration strings and convergence parameters."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from swarmkeeper.converge.config import ConvergeConfig
from swarmkeeper.durations import (
    format_duration,
    from_nanoseconds,
    parse_duration,
    to_nanoseconds,
)


@pytest.mark.parametrize("text, expected", [
    ("7s", timedelta(seconds=7)),
    ("3m", timedelta(minutes=3)),
    ("1m30s", timedelta(seconds=90)),
    ("1.5h", timedelta(minutes=90)),
    ("500ms", timedelta(milliseconds=500)),
    ("250us", timedelta(microseconds=250)),
    ("0", timedelta(0)),
    ("-2s", timedelta(seconds=-2)),
])
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "7", "abc", "5 s", "1d", "s"])
def test_parse_duration_rejects_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


@pytest.mark.parametrize("value, expected", [
    (timedelta(0), "0s"),
    (timedelta(seconds=7), "7s"),
    (timedelta(minutes=3), "3m0s"),
    (timedelta(hours=1), "1h0m0s"),
    (timedelta(seconds=90), "1m30s"),
    (timedelta(milliseconds=1500), "1.5s"),
    (timedelta(milliseconds=500), "500ms"),
    (timedelta(microseconds=1500), "1.5ms"),
    (timedelta(microseconds=500), "500µs"),
])
def test_format_duration(value, expected):
    assert format_duration(value) == expected


def test_nanoseconds():
    assert to_nanoseconds(timedelta(seconds=5)) == 5_000_000_000
    assert from_nanoseconds(5_000_000_000) == timedelta(seconds=5)
    assert from_nanoseconds(None) == timedelta(0)


class TestConvergeConfig:

    def test_defaults(self):
        config = ConvergeConfig()

        assert config.delay == timedelta(seconds=7)
        assert config.timeout == timedelta(minutes=3)

    def test_defaults_follow_settings(self, monkeypatch):
        from swarmkeeper.settings import reload_settings

        monkeypatch.setenv("SK_DEFAULT_CONVERGE_TIMEOUT", "10m")
        reload_settings()
        try:
            assert ConvergeConfig().timeout == timedelta(minutes=10)
        finally:
            monkeypatch.delenv("SK_DEFAULT_CONVERGE_TIMEOUT")
            reload_settings()

    def test_accepts_strings_and_seconds(self):
        config = ConvergeConfig(delay="500ms", timeout=90)

        assert config.delay == timedelta(milliseconds=500)
        assert config.timeout == timedelta(seconds=90)

    def test_rejects_negative(self):
        with pytest.raises(ValidationError):
            ConvergeConfig(timeout="-1s")

    def test_rejects_garbage(self):
        with pytest.raises(ValidationError):
            ConvergeConfig(delay="soon")

    def test_serializes_as_duration_strings(self):
        assert ConvergeConfig(delay="2s", timeout="1m").model_dump() == {
            "delay": "2s",
            "timeout": "1m0s",
        }

    def test_is_frozen(self):
        config = ConvergeConfig()

        with pytest.raises(ValidationError):
            config.timeout = timedelta(seconds=1)
