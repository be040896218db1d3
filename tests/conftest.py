"""Shared pytest configuration and fixtures for swarm engine tests.

This module provides:
- Custom markers for test categorization
- Agent, swarm and clock fixtures shared by the unit tests
"""

import logging
import sys
from pathlib import Path

import pytest

logger = logging.getLogger(__name__)

# Project root for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from swarm_engine.core import (  # noqa: E402
    Agent,
    AgentCategory,
    AgentStatus,
    EngineConfig,
    MessageBus,
    Swarm,
    Vector3,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Pure Python tests, no external services")
    config.addinivalue_line("markers", "slow: Tests that take a long time")


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig.for_testing()


@pytest.fixture
def make_agent():
    """Factory for agent snapshots with sensible defaults.

    Position is given as (x, y) or (x, y, z); None leaves it unknown.
    """

    def _make(
        agent_id: str,
        position=(0.0, 0.0, 100.0),
        category: AgentCategory = AgentCategory.MULTI_ROLE,
        status: AgentStatus = AgentStatus.ACTIVE,
        heading=None,
        speed=None,
        battery: float = 100.0,
        signal: float = 100.0,
        mission_count: int = 0,
    ) -> Agent:
        if position is not None:
            if len(position) == 2:
                position = (position[0], position[1], 100.0)
            position = Vector3(*position)
        return Agent(
            agent_id=agent_id,
            category=category,
            status=status,
            position=position,
            heading=heading,
            speed=speed,
            battery=battery,
            signal=signal,
            mission_count=mission_count,
        )

    return _make


@pytest.fixture
def line_agents(make_agent):
    """Six agents spread 30 m apart along X at 100 m altitude."""
    return [make_agent(f"a{i}", (i * 30.0, 0.0)) for i in range(6)]


@pytest.fixture
def swarm(line_agents) -> Swarm:
    return Swarm(swarm_id="alpha", agent_ids=tuple(a.agent_id for a in line_agents))


def pytest_collection_modifyitems(config, items):
    """Auto-add markers based on test location."""
    for item in items:
        # Auto-mark tests in tests/unit/ with @pytest.mark.unit
        if "tests/unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
