"""Swarm-level metrics computed by the slow loop."""

import math
from typing import Dict, Optional, Sequence

import numpy as np

from ..core.messages import MessageBus
from ..core.models import Agent, SwarmMetrics, SwarmParameters
from ..core.vector import Vector3
from ..coordination.emergent import EmergentPatterns


def mean_neighbor_distance(agents: Sequence[Agent]) -> Optional[float]:
    """Mean distance from each located agent to its nearest neighbour."""
    points = [a.position.as_array() for a in agents if a.position is not None]
    if len(points) < 2:
        return None
    positions = np.array(points)
    distances = np.linalg.norm(positions[:, None, :] - positions[None, :, :], axis=-1)
    np.fill_diagonal(distances, np.inf)
    return float(distances.min(axis=1).mean())


def heading_variance(agents: Sequence[Agent]) -> Optional[float]:
    """Variance (rad^2) of headings around their circular mean."""
    headings = [math.radians(a.heading) for a in agents if a.heading is not None]
    if not headings:
        return None
    angles = np.array(headings)
    mean = math.atan2(np.sin(angles).mean(), np.cos(angles).mean())
    # Wrap differences into [-pi, pi)
    diffs = (angles - mean + math.pi) % (2 * math.pi) - math.pi
    return float(np.mean(diffs ** 2))


def formation_error(agents: Sequence[Agent], slots: Dict[str, Vector3]) -> float:
    """RMS distance (meters) between located agents and their slots."""
    errors = [
        agent.position.distance_to(slots[agent.agent_id])
        for agent in agents
        if agent.position is not None and agent.agent_id in slots
    ]
    if not errors:
        return 0.0
    return float(np.sqrt(np.mean(np.square(errors))))


def delivery_ratio(bus: MessageBus) -> float:
    """Fraction of ack-required messages acknowledged before expiring."""
    settled = bus.acked_count + bus.expired_count
    if settled == 0:
        return 1.0
    return bus.acked_count / settled


def compute_metrics(
    agents: Sequence[Agent],
    parameters: SwarmParameters,
    patterns: EmergentPatterns,
    slots: Dict[str, Vector3],
    stability: float,
    communication_efficiency: float = 1.0,
    resource_utilization: float = 0.0,
    communication_latency: float = 0.0,
    decision_speed: float = 0.0,
    now: float = 0.0,
) -> SwarmMetrics:
    """Aggregate metrics for one swarm.

    Args:
        agents: Member snapshots
        parameters: Active swarm parameters
        patterns: Emergent pattern classification of the members
        slots: Absolute slot per agent id
        stability: Formation stability score (0-1)
        communication_efficiency: Ack delivery ratio (0-1)
        resource_utilization: Mean workload utilization (0-1)
        communication_latency: Mean age of unacknowledged messages (ms)
        decision_speed: Decisions per second of the fast loop
        now: Timestamp stamped on the result

    Returns:
        SwarmMetrics
    """
    separation = 0.0
    neighbor = mean_neighbor_distance(agents)
    if neighbor is not None and parameters.spacing > 0:
        separation = max(0.0, 1.0 - abs(neighbor - parameters.spacing) / parameters.spacing)

    alignment = 0.0
    variance = heading_variance(agents)
    if variance is not None:
        alignment = max(0.0, 1.0 - variance / math.pi)

    resilience = 0.0
    if agents:
        active_ratio = sum(1 for a in agents if a.is_active) / len(agents)
        mean_battery = sum(a.battery for a in agents) / len(agents) / 100.0
        resilience = 0.7 * active_ratio + 0.3 * mean_battery

    return SwarmMetrics(
        cohesion=1.0 - patterns.entropy,
        separation=separation,
        alignment=alignment,
        formation_error=formation_error(agents, slots),
        communication_latency=communication_latency,
        decision_speed=decision_speed,
        adaptability=0.8 if patterns.is_flocking else 0.4,
        resilience=resilience,
        efficiency=0.4 * stability + 0.3 * communication_efficiency + 0.3 * resource_utilization,
        timestamp=now,
    )
