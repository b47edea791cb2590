"""Shared fixtures for the portio test suite."""

import pytest

from portio.config import Settings
from portio.models import ProcessRecord

# Zero delays so timer-driven events fire within a short sleep
FAST_SETTINGS = Settings(
    settle_delay=0.0,
    escalation_status_delay=0.0,
    escalation_verify_delay=0.005,
)


@pytest.fixture
def fast_settings() -> Settings:
    return FAST_SETTINGS


@pytest.fixture
def two_records() -> tuple[ProcessRecord, ...]:
    return (
        ProcessRecord(pid=100, port=3000, process_name="node", command="node server.js", full_command="/usr/bin/node /srv/app/server.js"),
        ProcessRecord(pid=200, port=8080, process_name="python3", command="python3 -m http.server"),
    )


@pytest.fixture
def many_records() -> tuple[ProcessRecord, ...]:
    return tuple(
        ProcessRecord(pid=1000 + i, port=3000 + i, process_name=f"worker{i}", command=f"worker --id {i}")
        for i in range(40)
    )
