"""Rule-based formation adaptation to weather, obstacles and mission type."""

import logging
from typing import Optional, Sequence

from ..core.models import (
    EnvironmentalData,
    FormationTemplate,
    FormationType,
    Obstacle,
    SwarmParameters,
    TaskType,
)
from ..core.vector import Vector3
from .formations import build_template, clamp_count, is_feasible

logger = logging.getLogger(__name__)

WIND_BEARINGS = {
    "N": 0.0,
    "NE": 45.0,
    "E": 90.0,
    "SE": 135.0,
    "S": 180.0,
    "SW": 225.0,
    "W": 270.0,
    "NW": 315.0,
}

HIGH_WIND = 20.0  # knots
LOW_VISIBILITY = 1.0  # km
OBSTACLE_CLEARANCE = 20.0  # meters beyond obstacle radius
OBSTACLE_MARGIN = 10.0  # extra push beyond the clearance

PROTECTIVE_FORMATIONS = (FormationType.DIAMOND, FormationType.WEDGE, FormationType.VEE)
PATROL_FORMATIONS = (FormationType.LINE, FormationType.COLUMN)


def wind_bearing(direction: str) -> float:
    """Compass point to bearing in degrees (unknown points map to 0)."""
    return WIND_BEARINGS.get(direction.upper(), 0.0)


class AdaptiveFormationController:
    """Derives an adapted template from a base one.

    Every method takes a template of offsets centered on the origin and
    returns a new template; the input is never modified.

    Example:
        controller = AdaptiveFormationController()
        adapted = controller.adapt_to_environment(base, EnvironmentalData(wind_speed=25))
        adapted = controller.optimize_for_mission(adapted, TaskType.ESCORT, threat_level=3)
        adapted = controller.avoid_obstacles(adapted, obstacles, center)
    """

    def adapt_to_environment(
        self,
        template: FormationTemplate,
        environment: Optional[EnvironmentalData],
    ) -> FormationTemplate:
        """Apply wind and visibility rules."""
        if environment is None:
            return template

        params = template.parameters
        heading = template.heading

        if environment.wind_speed > HIGH_WIND:
            params = params.with_changes(
                separation=params.separation * 1.5,
                spacing=params.spacing * 1.2,
            )
            heading = wind_bearing(environment.wind_direction)
            logger.debug(
                f"Wind {environment.wind_speed:.0f}kt from {environment.wind_direction}: "
                f"spacing {params.spacing:.1f}m, heading {heading:.0f}"
            )

        if environment.visibility < LOW_VISIBILITY:
            params = params.with_changes(
                spacing=params.spacing * 0.8,
                communication_range=params.communication_range * 1.2,
            )

        if params == template.parameters and heading == template.heading:
            return template
        return self._regenerate(template, template.formation, params, heading)

    def optimize_for_mission(
        self,
        template: FormationTemplate,
        mission_type: Optional[TaskType],
        threat_level: int = 0,
    ) -> FormationTemplate:
        """Apply the mission-type overlay and threat tightening."""
        formation = template.formation
        params = template.parameters

        if mission_type == TaskType.SURVEILLANCE:
            if formation != FormationType.GRID:
                formation = FormationType.LINE
            params = params.with_changes(spacing=params.spacing * 1.5)
        elif mission_type == TaskType.RECONNAISSANCE:
            formation = FormationType.ECHELON
        elif mission_type == TaskType.ESCORT:
            if formation not in PROTECTIVE_FORMATIONS:
                formation = FormationType.DIAMOND
        elif mission_type == TaskType.PATROL:
            if formation not in PATROL_FORMATIONS:
                formation = FormationType.LINE

        if threat_level > 2:
            params = params.with_changes(
                spacing=params.spacing * 0.8,
                cohesion=min(params.cohesion * 1.2, 1.0),
                communication_range=params.communication_range * 1.1,
            )

        if formation == template.formation and params == template.parameters:
            return template
        return self._regenerate(template, formation, params, template.heading)

    def avoid_obstacles(
        self,
        template: FormationTemplate,
        obstacles: Sequence[Obstacle],
        center: Vector3,
    ) -> FormationTemplate:
        """Push slots that fall inside an obstacle's clearance zone outward.

        Args:
            template: Offsets centered on the origin
            obstacles: Obstacles in absolute coordinates
            center: Where the formation will be centered

        Returns:
            Template with pushed offsets
        """
        if not obstacles:
            return template

        positions = list(template.positions)
        moved = 0
        for i, offset in enumerate(positions):
            slot = center + offset
            for obstacle in obstacles:
                safe_distance = obstacle.radius + OBSTACLE_CLEARANCE
                away = slot - obstacle.position
                distance = away.magnitude()
                if distance < safe_distance:
                    if distance == 0:
                        # Slot on the obstacle center: push along the slot's own offset
                        away = offset if offset.magnitude() > 0 else Vector3(1.0, 0.0, 0.0)
                    slot = slot + away.normalize() * (safe_distance - distance + OBSTACLE_MARGIN)
                    moved += 1
            positions[i] = slot - center

        if not moved:
            return template
        logger.debug(f"Moved {moved} slots clear of obstacles")
        return FormationTemplate(
            formation=template.formation,
            positions=tuple(positions),
            min_agents=template.min_agents,
            max_agents=template.max_agents,
            parameters=template.parameters,
            heading=template.heading,
        )

    def _regenerate(
        self,
        template: FormationTemplate,
        formation: FormationType,
        params: SwarmParameters,
        heading: float,
    ) -> FormationTemplate:
        count = template.size
        if not is_feasible(formation, count):
            logger.warning(
                f"{formation.value} cannot hold {count} agents, keeping "
                f"{template.formation.value}"
            )
            formation = template.formation
            count = clamp_count(formation, count)
        return build_template(formation, count, params, heading)
