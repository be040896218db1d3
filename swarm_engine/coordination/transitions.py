"""Formation transition planning.

Assigns agents to template slots, checks each straight-line path for
conflicts with other agents, and produces one formation command per agent.

Assignment defaults to a greedy nearest-available pass (each agent, in
order, takes the closest unused slot). The "hungarian" method solves the
exact minimum-total-distance problem with scipy.
"""

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from ..core.config import FormationConfig
from ..core.messages import MessagePriority, MessageType, SwarmMessage
from ..core.models import Agent, FormationTemplate
from ..core.vector import Vector3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotAssignment:
    """One agent's move to its template slot.

    Attributes:
        agent_id: Agent being moved
        slot_index: Index into the template positions
        start: Current agent position
        target: Slot position
        distance: Straight-line distance (meters)
        transition_time: Time to reach the slot at swarm speed (seconds)
        waypoints: Intermediate positions steering around conflicts
    """
    agent_id: str
    slot_index: int
    start: Vector3
    target: Vector3
    distance: float
    transition_time: float
    waypoints: Tuple[Vector3, ...] = ()


@dataclass(frozen=True)
class TransitionPlan:
    """Complete plan for moving a swarm into a new template."""
    plan_id: str
    template: FormationTemplate
    assignments: Tuple[SlotAssignment, ...]
    total_time: float
    commands: Tuple[SwarmMessage, ...] = ()
    created_at: float = field(default_factory=time.time)

    def slot_map(self) -> Dict[str, int]:
        return {a.agent_id: a.slot_index for a in self.assignments}


def cost_matrix(starts: Sequence[Vector3], targets: Sequence[Vector3]) -> np.ndarray:
    """Distance matrix, rows are agents and columns are slots."""
    if not starts or not targets:
        return np.zeros((len(starts), len(targets)))
    a = np.array([p.as_array() for p in starts])
    b = np.array([p.as_array() for p in targets])
    return np.linalg.norm(a[:, None, :] - b[None, :, :], axis=2)


def greedy_assignment(costs: np.ndarray) -> List[Tuple[int, int]]:
    """Each row in order takes its cheapest unused column.

    Returns:
        (row, column) pairs, at most min(rows, columns) of them
    """
    rows, cols = costs.shape
    used = set()
    pairs = []
    for i in range(min(rows, cols)):
        best_j = None
        best_cost = math.inf
        for j in range(cols):
            if j not in used and costs[i, j] < best_cost:
                best_cost = costs[i, j]
                best_j = j
        used.add(best_j)
        pairs.append((i, best_j))
    return pairs


def optimal_assignment(costs: np.ndarray) -> List[Tuple[int, int]]:
    """Minimum total cost assignment (Hungarian method)."""
    if costs.size == 0:
        return []
    rows, cols = linear_sum_assignment(costs)
    return sorted(zip(rows.tolist(), cols.tolist()))


class TransitionPlanner:
    """Plans collision-aware moves from current positions to a template.

    Example:
        planner = TransitionPlanner()
        plan = planner.plan("swarm-1", agents, template)
        bus.publish_all(plan.commands)
    """

    def __init__(
        self,
        config: Optional[FormationConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or FormationConfig()
        self._clock = clock

    def assign(self, starts: Sequence[Vector3], targets: Sequence[Vector3]) -> List[Tuple[int, int]]:
        costs = cost_matrix(starts, targets)
        if self.config.assignment_method == "hungarian":
            return optimal_assignment(costs)
        return greedy_assignment(costs)

    def plan(
        self,
        swarm_id: str,
        agents: Sequence[Agent],
        template: FormationTemplate,
        speed: Optional[float] = None,
    ) -> TransitionPlan:
        """Plan a transition into template.

        Agents without a known position are left out of the plan.

        Args:
            swarm_id: Sender id for the generated commands
            agents: Current agent snapshots, in slot priority order
            template: Target template (absolute positions)
            speed: Transition speed, defaults to the template's parameters

        Returns:
            TransitionPlan with assignments and commands
        """
        speed = template.parameters.speed if speed is None else speed
        if speed <= 0:
            raise ValueError(f"Transition speed must be positive, got {speed}")

        located = [a for a in agents if a.position is not None]
        starts = [a.position for a in located]
        pairs = self.assign(starts, template.positions)

        assignments = []
        for row, slot in pairs:
            agent = located[row]
            target = template.positions[slot]
            distance = agent.position.distance_to(target)
            others = [p for k, p in enumerate(starts) if k != row]
            assignments.append(SlotAssignment(
                agent_id=agent.agent_id,
                slot_index=slot,
                start=agent.position,
                target=target,
                distance=distance,
                transition_time=distance / speed,
                waypoints=self.plan_waypoints(agent.position, target, others),
            ))

        total_time = max((a.transition_time for a in assignments), default=0.0)
        plan_id = f"transition-{uuid.uuid4().hex[:8]}"
        commands = tuple(self.build_commands(swarm_id, plan_id, assignments, total_time))

        logger.info(
            f"Planned {template.formation.value} transition for {len(assignments)} agents "
            f"({total_time:.1f}s, {sum(1 for a in assignments if a.waypoints)} detours)"
        )
        return TransitionPlan(
            plan_id=plan_id,
            template=template,
            assignments=tuple(assignments),
            total_time=total_time,
            commands=commands,
            created_at=self._clock(),
        )

    def plan_waypoints(
        self,
        start: Vector3,
        target: Vector3,
        others: Sequence[Vector3],
    ) -> Tuple[Vector3, ...]:
        """Return at most one detour waypoint for a straight path.

        The path is sampled every checkpoint_interval meters. The first
        checkpoint within conflict_distance of another agent is pushed
        sideways by avoidance_offset, away from that agent.

        Checkpoints are interior points only, so a path no longer than one
        checkpoint_interval (50 m by default) is never checked and gets no
        waypoint. Callers relying on short hops being conflict free must
        check them separately.
        """
        cfg = self.config
        path = target - start
        length = path.magnitude()
        if length < cfg.min_path_length:
            return ()

        num_checkpoints = math.ceil(length / cfg.checkpoint_interval)
        side = path.perpendicular()
        for i in range(1, num_checkpoints):
            checkpoint = start + path * (i / num_checkpoints)
            for other in others:
                if checkpoint.distance_to(other) < cfg.conflict_distance:
                    direction = 1.0 if (checkpoint - other).dot(side) >= 0 else -1.0
                    return (checkpoint + side * (direction * cfg.avoidance_offset),)
        return ()

    def build_commands(
        self,
        swarm_id: str,
        plan_id: str,
        assignments: Sequence[SlotAssignment],
        total_time: float,
    ) -> List[SwarmMessage]:
        """One formation command per agent, acknowledged and encrypted."""
        ttl = math.ceil(total_time) + self.config.command_ttl_margin
        now = self._clock()
        return [
            SwarmMessage(
                message_type=MessageType.FORMATION_COMMAND,
                sender_id=swarm_id,
                receiver_id=a.agent_id,
                payload={
                    "command": "transition_to_position",
                    "plan_id": plan_id,
                    "slot_index": a.slot_index,
                    "target_position": a.target.as_tuple(),
                    "transition_time": a.transition_time,
                    "intermediate_positions": [w.as_tuple() for w in a.waypoints],
                },
                priority=MessagePriority.HIGH,
                encrypted=True,
                ack_required=True,
                ttl=ttl,
                timestamp=now,
            )
            for a in assignments
        ]
