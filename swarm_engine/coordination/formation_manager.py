"""Formation lifecycle: initialization, adaptation, transitions, stability.

The manager owns the current template of one swarm. Each update derives
the desired template from the swarm's formation kind and parameters,
adapted to environment, mission and obstacles, and plans a transition
when it differs from the current one.

States: UNINITIALIZED -> STABLE -> TRANSITIONING -> STABLE
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Set, Tuple

from ..core.config import FormationConfig
from ..core.errors import FormationNotInitializedError, InfeasibleFormationError
from ..core.messages import SwarmMessage
from ..core.models import (
    Agent,
    EnvironmentalData,
    FormationTemplate,
    FormationType,
    Obstacle,
    Swarm,
    TaskType,
)
from ..core.vector import Vector3, centroid
from .adaptive import AdaptiveFormationController
from .formations import FORMATION_LIMITS, build_template, clamp_count
from .transitions import TransitionPlan, TransitionPlanner

logger = logging.getLogger(__name__)


class FormationState(Enum):
    UNINITIALIZED = "uninitialized"
    STABLE = "stable"
    TRANSITIONING = "transitioning"


@dataclass(frozen=True)
class FormationUpdate:
    """Result of one formation manager update.

    Attributes:
        template: Current template (absolute positions)
        commands: Formation commands to publish (empty if no change)
        stability: 0-1 score of how well agents hold their slots
        state: Manager state after the update
        plan: Transition plan started by this update, if any
    """
    template: FormationTemplate
    commands: Tuple[SwarmMessage, ...]
    stability: float
    state: FormationState
    plan: Optional[TransitionPlan] = None

    @property
    def changed(self) -> bool:
        return self.plan is not None


def formations_differ(
    current: FormationTemplate,
    desired: FormationTemplate,
    threshold: float = 5.0,
) -> bool:
    """True when the kind changed or any index-aligned slot moved beyond threshold."""
    if current.formation != desired.formation:
        return True
    if current.size != desired.size:
        return True
    return any(
        a.distance_to(b) > threshold
        for a, b in zip(current.positions, desired.positions)
    )


class FormationManager:
    """Maintains one swarm's formation.

    Example:
        manager = FormationManager()
        manager.initialize(swarm, agents)

        # In the fast loop:
        result = manager.update(swarm, agents, environment=weather)
        bus.publish_all(result.commands)
    """

    def __init__(
        self,
        config: Optional[FormationConfig] = None,
        clock: Callable[[], float] = time.time,
        planner: Optional[TransitionPlanner] = None,
        controller: Optional[AdaptiveFormationController] = None,
    ):
        self.config = config or FormationConfig()
        self._clock = clock
        self.planner = planner or TransitionPlanner(self.config, clock)
        self.controller = controller or AdaptiveFormationController()

        self.state = FormationState.UNINITIALIZED
        self.template: Optional[FormationTemplate] = None
        self.center: Vector3 = Vector3()
        self.active_plan: Optional[TransitionPlan] = None
        self.transition_deadline: Optional[float] = None
        self.stale_plans: Set[str] = set()
        self._slot_map: Dict[str, int] = {}

    @property
    def is_transitioning(self) -> bool:
        return self.state == FormationState.TRANSITIONING

    def initialize(
        self,
        swarm: Swarm,
        agents: Sequence[Agent],
        center: Optional[Vector3] = None,
    ) -> FormationTemplate:
        """Build the first template for the swarm.

        Args:
            swarm: Swarm record (formation kind and parameters)
            agents: Member agent snapshots
            center: Formation center, defaults to the members' centroid
                at the swarm altitude

        Returns:
            Initial template (absolute positions)

        Raises:
            InfeasibleFormationError: fewer agents than any formation supports
        """
        members = self._members(swarm, agents)
        if center is None:
            located = [a.position for a in members if a.position is not None]
            mid = centroid(located)
            center = Vector3(mid.x, mid.y, swarm.parameters.altitude)
        self.center = center

        self.template = self._base_template(swarm, len(members)).translated(center)
        self._slot_map = {a.agent_id: i for i, a in enumerate(members[: self.template.size])}
        self.state = FormationState.STABLE
        logger.info(
            f"Swarm {swarm.swarm_id}: initialized {self.template.formation.value} "
            f"formation with {self.template.size} slots"
        )
        return self.template

    def update(
        self,
        swarm: Swarm,
        agents: Sequence[Agent],
        environment: Optional[EnvironmentalData] = None,
        obstacles: Sequence[Obstacle] = (),
        mission_type: Optional[TaskType] = None,
        threat_level: int = 0,
        center: Optional[Vector3] = None,
        force: bool = False,
    ) -> FormationUpdate:
        """Re-evaluate the formation and plan a transition if needed.

        Args:
            swarm: Swarm record
            agents: Current agent snapshots
            environment: Weather, if known
            obstacles: Obstacles near the swarm
            mission_type: Current mission type for the overlay
            threat_level: Mission threat level (0-4)
            center: New formation center, keeps the current one if None
            force: Supersede an in-flight transition

        Returns:
            FormationUpdate

        Raises:
            FormationNotInitializedError: initialize() was not called
        """
        if self.template is None:
            raise FormationNotInitializedError("Call initialize() before update()")

        now = self._clock()
        if self.is_transitioning and now >= self.transition_deadline:
            logger.info(f"Swarm {swarm.swarm_id}: transition complete")
            self.state = FormationState.STABLE
            self.active_plan = None
            self.transition_deadline = None

        if center is not None:
            self.center = center

        members = self._members(swarm, agents)
        try:
            desired = self.desired_template(
                swarm, len(members), environment, obstacles, mission_type, threat_level
            )
        except InfeasibleFormationError as e:
            # Too few agents left for any formation: hold the current template
            logger.warning(f"Swarm {swarm.swarm_id}: keeping current formation, {e}")
            return FormationUpdate(
                template=self.template,
                commands=(),
                stability=self.stability_score(agents),
                state=self.state,
            )

        plan = None
        if formations_differ(self.template, desired, self.config.slot_change_threshold):
            if not self.is_transitioning or force:
                plan = self._start_transition(swarm, members, desired, now)
            else:
                logger.debug(f"Swarm {swarm.swarm_id}: change deferred, transition in flight")

        return FormationUpdate(
            template=self.template,
            commands=plan.commands if plan else (),
            stability=self.stability_score(agents),
            state=self.state,
            plan=plan,
        )

    def change_formation(
        self,
        swarm: Swarm,
        agents: Sequence[Agent],
        formation: FormationType,
        force: bool = True,
    ) -> FormationUpdate:
        """Switch the swarm to another formation kind (operator override)."""
        swarm.formation = formation
        return self.update(swarm, agents, force=force)

    def desired_template(
        self,
        swarm: Swarm,
        count: int,
        environment: Optional[EnvironmentalData] = None,
        obstacles: Sequence[Obstacle] = (),
        mission_type: Optional[TaskType] = None,
        threat_level: int = 0,
    ) -> FormationTemplate:
        """Template the swarm should fly now (absolute positions)."""
        template = self._base_template(swarm, count)
        template = self.controller.adapt_to_environment(template, environment)
        template = self.controller.optimize_for_mission(template, mission_type, threat_level)
        template = self.controller.avoid_obstacles(template, obstacles, self.center)
        return template.translated(self.center)

    def stability_score(self, agents: Sequence[Agent]) -> float:
        """1 when every located agent sits on its slot, 0 at 30% of spacing error."""
        if self.template is None:
            return 0.0
        errors = []
        for agent in agents:
            slot = self._slot_map.get(agent.agent_id)
            if agent.position is None or slot is None or slot >= self.template.size:
                continue
            errors.append(agent.position.distance_to(self.template.positions[slot]))
        if not errors:
            return 0.0
        mean_error = sum(errors) / len(errors)
        return max(0.0, 1.0 - mean_error / (0.3 * self.template.parameters.spacing))

    def slot_for(self, agent_id: str) -> Optional[Vector3]:
        """Absolute slot position currently assigned to an agent."""
        slot = self._slot_map.get(agent_id)
        if self.template is None or slot is None or slot >= self.template.size:
            return None
        return self.template.positions[slot]

    def slot_targets(self) -> Dict[str, Vector3]:
        return {
            agent_id: self.template.positions[slot]
            for agent_id, slot in self._slot_map.items()
            if self.template is not None and slot < self.template.size
        }

    def is_stale(self, plan_id: str) -> bool:
        return plan_id in self.stale_plans

    def _start_transition(
        self,
        swarm: Swarm,
        members: Sequence[Agent],
        desired: FormationTemplate,
        now: float,
    ) -> TransitionPlan:
        if self.active_plan is not None:
            self.stale_plans.add(self.active_plan.plan_id)
            logger.warning(
                f"Swarm {swarm.swarm_id}: transition {self.active_plan.plan_id} superseded"
            )

        plan = self.planner.plan(swarm.swarm_id, members, desired)
        self.template = desired
        self.active_plan = plan
        self._slot_map = plan.slot_map()
        self.state = FormationState.TRANSITIONING
        self.transition_deadline = now + plan.total_time + self.config.transition_buffer
        return plan

    def _members(self, swarm: Swarm, agents: Sequence[Agent]) -> list:
        """Available agents that belong to the swarm, in membership order."""
        by_id = {a.agent_id: a for a in agents}
        return [
            by_id[agent_id]
            for agent_id in swarm.agent_ids
            if agent_id in by_id and by_id[agent_id].is_available
        ]

    def _base_template(self, swarm: Swarm, count: int) -> FormationTemplate:
        """Unadapted template, with infeasible sizes recovered locally."""
        formation = swarm.formation
        min_agents, max_agents = FORMATION_LIMITS[formation]
        if count < min_agents:
            fallback = FormationType.GRID
            if count < FORMATION_LIMITS[fallback][0]:
                raise InfeasibleFormationError(formation, count, min_agents, max_agents)
            logger.warning(
                f"{formation.value} needs {min_agents} agents, falling back to grid for {count}"
            )
            formation = fallback
        elif count > max_agents:
            logger.warning(
                f"{formation.value} holds at most {max_agents} agents, "
                f"{count - max_agents} left without a slot"
            )
            count = clamp_count(formation, count)
        return build_template(formation, count, swarm.parameters)
