"""Tests for portio data models."""

import dataclasses

import pytest

from portio.models import (
    AwaitingAdminRetry,
    Browsing,
    ConfirmMultiKill,
    ConfirmSingleKill,
    MetadataUnavailable,
    PortioError,
    ProbeError,
    ProcessRecord,
)


def test_process_record_creation():
    """Test ProcessRecord dataclass creation."""
    record = ProcessRecord(
        pid=123,
        port=3000,
        process_name="node",
        command="node server.js",
        full_command="/usr/local/bin/node server.js",
    )

    assert record.pid == 123
    assert record.port == 3000
    assert record.process_name == "node"
    assert record.command == "node server.js"
    assert record.full_command == "/usr/local/bin/node server.js"


def test_process_record_full_command_defaults_to_none():
    """Test full_command is optional."""
    record = ProcessRecord(pid=1, port=80, process_name="Unknown", command="")
    assert record.full_command is None


def test_process_record_is_frozen():
    """Test that ProcessRecord is immutable (frozen)."""
    record = ProcessRecord(pid=1, port=80, process_name="nginx", command="nginx")

    with pytest.raises(dataclasses.FrozenInstanceError):
        record.port = 81  # type: ignore[misc]


def test_process_record_uses_slots():
    """Slots-based dataclasses don't have __dict__."""
    record = ProcessRecord(pid=1, port=80, process_name="nginx", command="nginx")
    assert not hasattr(record, "__dict__")


def test_process_record_to_dict():
    """Test the JSON shape uses camel-case keys."""
    record = ProcessRecord(pid=7, port=5173, process_name="node", command="vite", full_command="node vite")
    assert record.to_dict() == {
        "pid": 7,
        "port": 5173,
        "processName": "node",
        "command": "vite",
        "fullCommand": "node vite",
    }


def test_process_record_to_dict_omits_missing_full_command():
    """Test to_dict omits a missing full command."""
    record = ProcessRecord(pid=7, port=5173, process_name="node", command="")
    assert "fullCommand" not in record.to_dict()


def test_session_modes_compare_by_value():
    """Test modes carry their targets and compare by value."""
    assert Browsing() == Browsing()
    assert ConfirmSingleKill(5) == ConfirmSingleKill(5)
    assert ConfirmSingleKill(5) != AwaitingAdminRetry(5)
    assert ConfirmMultiKill((1, 2)).pids == (1, 2)


def test_errors_share_a_base_class():
    """Test every error derives from PortioError."""
    assert issubclass(ProbeError, PortioError)
    assert issubclass(MetadataUnavailable, PortioError)
