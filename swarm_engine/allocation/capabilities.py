"""Agent capability tables and task compatibility scoring.

A compatibility score in [0, 1] says how well an agent fits a task: skill
match against the task's requirements, scaled by location, resource and
timing factors.
"""

import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..core.models import (
    Agent,
    AgentCategory,
    AgentStatus,
    SkillRequirement,
    Task,
    TaskType,
)


@dataclass(frozen=True)
class Capability:
    """One skill an agent category offers.

    Attributes:
        skill: Capability name
        proficiency: 0-1
        availability: 0-1, fraction of time the skill can be used
        efficiency: 0-1
    """
    skill: str
    proficiency: float
    availability: float
    efficiency: float


CATEGORY_CAPABILITIES: Dict[AgentCategory, Tuple[Capability, ...]] = {
    AgentCategory.SURVEILLANCE: (
        Capability("visual_monitoring", 0.9, 1.0, 0.9),
        Capability("area_scanning", 0.8, 1.0, 0.8),
        Capability("threat_detection", 0.7, 1.0, 0.75),
        Capability("data_collection", 0.6, 1.0, 0.7),
    ),
    AgentCategory.RECONNAISSANCE: (
        Capability("reconnaissance", 0.9, 1.0, 0.9),
        Capability("path_finding", 0.8, 1.0, 0.85),
        Capability("terrain_mapping", 0.8, 1.0, 0.8),
        Capability("intelligence_gathering", 0.7, 1.0, 0.75),
    ),
    AgentCategory.ATTACK: (
        Capability("threat_neutralization", 0.9, 1.0, 0.9),
        Capability("target_engagement", 0.8, 1.0, 0.85),
        Capability("force_protection", 0.7, 1.0, 0.8),
        Capability("area_denial", 0.6, 1.0, 0.7),
    ),
    AgentCategory.TRANSPORT: (
        Capability("cargo_delivery", 0.9, 1.0, 0.9),
        Capability("supply_transport", 0.8, 1.0, 0.85),
        Capability("evacuation_support", 0.6, 1.0, 0.7),
        Capability("logistics_coordination", 0.5, 1.0, 0.6),
    ),
    AgentCategory.MULTI_ROLE: (
        Capability("adaptive_operations", 0.7, 1.0, 0.75),
        Capability("versatile_support", 0.7, 1.0, 0.7),
        Capability("backup_operations", 0.6, 1.0, 0.65),
        Capability("coordination_relay", 0.6, 1.0, 0.7),
    ),
}

DEFAULT_REQUIREMENTS: Tuple[SkillRequirement, ...] = (
    SkillRequirement("adaptive_operations", 0.6, 7),
)

TASK_REQUIREMENTS: Dict[TaskType, Tuple[SkillRequirement, ...]] = {
    TaskType.SURVEILLANCE: (
        SkillRequirement("visual_monitoring", 0.8, 10),
        SkillRequirement("area_scanning", 0.7, 8),
        SkillRequirement("threat_detection", 0.6, 7),
    ),
    TaskType.RECONNAISSANCE: (
        SkillRequirement("reconnaissance", 0.8, 10),
        SkillRequirement("path_finding", 0.7, 8),
        SkillRequirement("intelligence_gathering", 0.6, 7),
    ),
    TaskType.SEARCH_AND_RESCUE: (
        SkillRequirement("area_scanning", 0.8, 10),
        SkillRequirement("evacuation_support", 0.7, 9),
        SkillRequirement("coordination_relay", 0.6, 7),
    ),
    TaskType.PATROL: (
        SkillRequirement("visual_monitoring", 0.7, 9),
        SkillRequirement("threat_detection", 0.7, 8),
        SkillRequirement("path_finding", 0.6, 6),
    ),
    TaskType.ESCORT: (
        SkillRequirement("force_protection", 0.8, 10),
        SkillRequirement("threat_neutralization", 0.7, 8),
        SkillRequirement("coordination_relay", 0.6, 6),
    ),
    TaskType.SUPPLY_DELIVERY: (
        SkillRequirement("cargo_delivery", 0.9, 10),
        SkillRequirement("supply_transport", 0.8, 9),
        SkillRequirement("path_finding", 0.6, 6),
    ),
}

# Seconds
TASK_DURATIONS: Dict[TaskType, float] = {
    TaskType.SURVEILLANCE: 3600,
    TaskType.RECONNAISSANCE: 1800,
    TaskType.SEARCH_AND_RESCUE: 7200,
    TaskType.PATROL: 5400,
    TaskType.ESCORT: 3600,
    TaskType.FORMATION_FLIGHT: 1800,
    TaskType.AREA_DENIAL: 7200,
    TaskType.PERIMETER_DEFENSE: 14400,
    TaskType.SUPPLY_DELIVERY: 2700,
    TaskType.COMMUNICATION_RELAY: 1800,
}

MAX_EFFECTIVE_DISTANCE = 1000.0  # meters


def capabilities_for(category: AgentCategory) -> Tuple[Capability, ...]:
    return CATEGORY_CAPABILITIES.get(category, ())


def requirements_for(task: Task) -> Tuple[SkillRequirement, ...]:
    """Skills the task needs: its own list, else the table for its type."""
    if task.requirements.skills:
        return task.requirements.skills
    return TASK_REQUIREMENTS.get(task.task_type, DEFAULT_REQUIREMENTS)


def estimate_duration(task: Task) -> float:
    if task.requirements.duration:
        return task.requirements.duration
    return TASK_DURATIONS.get(task.task_type, 3600.0)


def mean_proficiency(category: AgentCategory) -> float:
    caps = capabilities_for(category)
    if not caps:
        return 0.0
    return sum(c.proficiency for c in caps) / len(caps)


def location_factor(agent: Agent, task: Task) -> float:
    """Linear falloff from 1 at the task location to 0 at 1 km.

    Unknown agent or task location means no penalty.
    """
    target = task.requirements.location
    if agent.position is None or target is None:
        return 1.0
    distance = agent.position.distance_to(target)
    return max(0.0, 1.0 - distance / MAX_EFFECTIVE_DISTANCE)


def resource_factor(agent: Agent) -> float:
    if agent.status in (AgentStatus.MAINTENANCE, AgentStatus.OFFLINE):
        return 0.0

    score = 1.0
    if agent.battery < 30:
        score *= 0.5
    elif agent.battery > 80:
        score *= 1.1
    if agent.signal < 50:
        score *= 0.7
    if agent.status == AgentStatus.IDLE:
        score *= 1.2
    return min(score, 1.0)


def timing_factor(task: Task, now: Optional[float] = None) -> float:
    if task.deadline is None:
        return 1.0
    now = time.time() if now is None else now
    remaining = task.deadline - now
    if remaining <= 0:
        return 0.0

    duration = estimate_duration(task)
    if remaining < duration:
        return 0.1
    if remaining > duration * 3:
        return 1.0
    return remaining / (duration * 3)


def compatibility_score(
    agent: Agent,
    task: Task,
    workload: float = 0.0,
    now: Optional[float] = None,
) -> float:
    """How well agent fits task, in [0, 1].

    Args:
        agent: Agent snapshot
        task: Task to score
        workload: Agent's current utilization (0-1)
        now: Unix time used for the deadline check

    Returns:
        Compatibility score
    """
    caps = {c.skill: c for c in capabilities_for(agent.category)}

    total = 0.0
    weight = 0.0
    for requirement in requirements_for(task):
        capability = caps.get(requirement.skill)
        if capability is None:
            continue
        if requirement.min_proficiency > 0:
            proficiency_match = min(capability.proficiency / requirement.min_proficiency, 1.0)
        else:
            proficiency_match = 1.0
        availability = capability.availability * (1 - workload)
        total += (
            proficiency_match * 0.4 + availability * 0.3 + capability.efficiency * 0.3
        ) * requirement.priority
        weight += requirement.priority

    score = total / weight if weight > 0 else 0.0
    score *= location_factor(agent, task)
    score *= resource_factor(agent)
    score *= timing_factor(task, now)
    return min(max(score, 0.0), 1.0)
