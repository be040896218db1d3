"""Local steering rules: flocking, collision avoidance, formation keeping.

All functions are read-only over agent snapshots, so per-agent force
computation can be fanned out across threads (see ForceComputer).
Agents without position (or, where needed, velocity) are excluded.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..core.messages import MessagePriority, MessageType, SwarmMessage
from ..core.models import Agent, SwarmParameters
from ..core.vector import Vector3, centroid

logger = logging.getLogger(__name__)

SEPARATION_WEIGHT = 2.0

PREDICTION_HORIZON = 10.0  # seconds
SAFETY_MARGIN = 1.5
MIN_SAFE_DISTANCE = 10.0  # meters
MAX_AVOIDANCE_FORCE = 50.0

MAX_FORMATION_FORCE = 20.0

# Mission-level blending of the three steering terms
FLOCKING_BLEND = 0.3
FORMATION_BLEND = 0.4
AVOIDANCE_BLEND = 0.3


@dataclass(frozen=True)
class FlockingForces:
    cohesion: Vector3
    separation: Vector3
    alignment: Vector3

    @property
    def total(self) -> Vector3:
        return self.cohesion + self.separation + self.alignment


@dataclass(frozen=True)
class CollisionRisk:
    """Predicted close approach with another agent.

    Attributes:
        agent_id: Agent at risk
        other_id: Agent it will approach
        time_to_collision: Seconds until closest approach
        closest_distance: Predicted distance at closest approach (meters)
        severity: 0-1, higher is closer
        bearing: Relative position of the other agent at closest approach
    """
    agent_id: str
    other_id: str
    time_to_collision: float
    closest_distance: float
    severity: float
    bearing: Vector3


@dataclass(frozen=True)
class AgentForces:
    """All steering forces computed for one agent in a tick."""
    agent_id: str
    flocking: Vector3
    formation: Vector3
    avoidance: Vector3
    risks: tuple = ()

    @property
    def combined(self) -> Vector3:
        return (
            self.flocking * FLOCKING_BLEND
            + self.formation * FORMATION_BLEND
            + self.avoidance * AVOIDANCE_BLEND
        )


def neighbors_of(agent: Agent, agents: Sequence[Agent], radius: float) -> List[Agent]:
    """Located agents other than agent within radius of it."""
    if agent.position is None:
        return []
    return [
        other for other in agents
        if other.agent_id != agent.agent_id
        and other.position is not None
        and agent.position.distance_to(other.position) <= radius
    ]


def flocking_forces(
    agent: Agent,
    agents: Sequence[Agent],
    params: SwarmParameters,
) -> FlockingForces:
    """Cohesion, separation and alignment for one agent.

    Args:
        agent: Agent to steer
        agents: All agent snapshots (agent itself is skipped)
        params: Swarm parameters (range, separation, weights)

    Returns:
        FlockingForces, zero when the agent is unlocated or alone
    """
    zero = Vector3()
    neighbors = neighbors_of(agent, agents, params.communication_range)
    if not neighbors:
        return FlockingForces(zero, zero, zero)

    center = centroid(n.position for n in neighbors)
    cohesion = (center - agent.position).normalize() * params.cohesion

    repulsion = Vector3()
    close = 0
    for other in neighbors:
        distance = agent.position.distance_to(other.position)
        if 0 < distance < params.separation:
            repulsion = repulsion + (agent.position - other.position).normalize() / distance
            close += 1
    separation = zero
    if close:
        separation = (repulsion / close).normalize() * SEPARATION_WEIGHT

    alignment = zero
    own_velocity = agent.velocity
    velocities = [n.velocity for n in neighbors if n.velocity is not None]
    if own_velocity is not None and velocities:
        mean_velocity = centroid(velocities)
        alignment = (mean_velocity - own_velocity).normalize() * params.alignment

    return FlockingForces(cohesion, separation, alignment)


def closest_approach(agent: Agent, other: Agent) -> Optional[CollisionRisk]:
    """Predict the closest approach between two moving agents.

    Returns:
        CollisionRisk when the predicted distance breaks the safety margin
        within the prediction horizon, otherwise None
    """
    if agent.position is None or other.position is None:
        return None
    v_self = agent.velocity
    v_other = other.velocity
    if v_self is None or v_other is None:
        return None

    rel_position = other.position - agent.position
    rel_velocity = v_other - v_self
    speed_sq = rel_velocity.dot(rel_velocity)
    if speed_sq == 0:
        return None

    t_closest = -rel_position.dot(rel_velocity) / speed_sq
    if t_closest < 0 or t_closest > PREDICTION_HORIZON:
        return None

    offset = rel_position + rel_velocity * t_closest
    closest = offset.magnitude()
    threshold = SAFETY_MARGIN * MIN_SAFE_DISTANCE
    if closest >= threshold:
        return None

    return CollisionRisk(
        agent_id=agent.agent_id,
        other_id=other.agent_id,
        time_to_collision=t_closest,
        closest_distance=closest,
        severity=1.0 - closest / threshold,
        bearing=offset if closest > 0 else rel_position,
    )


def detect_collision_risks(agent: Agent, agents: Sequence[Agent]) -> List[CollisionRisk]:
    """All predicted risks for agent, soonest first."""
    risks = []
    for other in agents:
        if other.agent_id == agent.agent_id:
            continue
        risk = closest_approach(agent, other)
        if risk is not None:
            risks.append(risk)
    risks.sort(key=lambda r: (r.time_to_collision, r.other_id))
    return risks


def avoidance_force(risks: Sequence[CollisionRisk]) -> Vector3:
    """Sidestep perpendicular to each threat, scaled by urgency and capped."""
    force = Vector3()
    for risk in risks:
        urgency = risk.severity / max(risk.time_to_collision, 0.1)
        force = force + risk.bearing.perpendicular() * urgency
    return force.limit(MAX_AVOIDANCE_FORCE)


def formation_force(position: Optional[Vector3], slot: Optional[Vector3], weight: float = 1.0) -> Vector3:
    """Proportional pull toward the assigned slot, capped."""
    if position is None or slot is None:
        return Vector3()
    return ((slot - position) * weight).limit(MAX_FORMATION_FORCE)


def collision_warning(sender_id: str, risk: CollisionRisk, now: float) -> SwarmMessage:
    """Warning for the agent at risk."""
    urgent = risk.severity > 0.7
    return SwarmMessage(
        message_type=MessageType.COLLISION_WARNING,
        sender_id=sender_id,
        receiver_id=risk.agent_id,
        payload={
            "other_agent": risk.other_id,
            "time_to_collision": risk.time_to_collision,
            "closest_distance": risk.closest_distance,
            "severity": risk.severity,
            "recommended_action": "immediate_evasion" if urgent else "gradual_adjustment",
        },
        priority=MessagePriority.CRITICAL if urgent else MessagePriority.HIGH,
        encrypted=False,
        ack_required=False,
        ttl=max(risk.time_to_collision * 2, 5.0),
        timestamp=now,
    )


def compute_agent_forces(
    agent: Agent,
    agents: Sequence[Agent],
    params: SwarmParameters,
    slot: Optional[Vector3] = None,
) -> AgentForces:
    """Flocking, formation and avoidance forces for a single agent."""
    risks = detect_collision_risks(agent, agents)
    return AgentForces(
        agent_id=agent.agent_id,
        flocking=flocking_forces(agent, agents, params).total,
        formation=formation_force(agent.position, slot),
        avoidance=avoidance_force(risks),
        risks=tuple(risks),
    )


class ForceComputer:
    """Computes per-agent forces on a thread pool.

    The pool is created once and reused across ticks; call shutdown()
    when done (or use as a context manager).

    Example:
        with ForceComputer(max_workers=4) as computer:
            forces = computer.compute(agents, params, slots)
    """

    def __init__(self, max_workers: int = 4):
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="swarm-forces"
        )

    def compute(
        self,
        agents: Sequence[Agent],
        params: SwarmParameters,
        slots: Optional[Dict[str, Vector3]] = None,
    ) -> Dict[str, AgentForces]:
        """Forces for every located agent, joined before returning."""
        slots = slots or {}
        snapshot = tuple(agents)
        located = [a for a in snapshot if a.position is not None and a.is_available]
        futures = {
            agent.agent_id: self._executor.submit(
                compute_agent_forces, agent, snapshot, params, slots.get(agent.agent_id)
            )
            for agent in located
        }
        return {agent_id: future.result() for agent_id, future in futures.items()}

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "ForceComputer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
