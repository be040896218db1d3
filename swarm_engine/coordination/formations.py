"""Formation geometry for agent swarms.

Provides mathematical generators for formation patterns that scale to any
number of agents. Offsets are centered on the origin in the horizontal
plane (z = 0); the formation manager translates them to the swarm center.

Available formations:
- GRID: Row-major rectangular grid (default)
- CIRCLE: Evenly spaced ring
- LINE: Straight line along the X axis
- COLUMN: Straight line along the Y axis
- VEE: Apex leader with alternating 60-degree wings
- DIAMOND: Center, four cardinal slots, outer ring
- WEDGE: Layered grid stepping back from the front
- ECHELON: Stepped diagonal
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..core.errors import InfeasibleFormationError
from ..core.models import FormationTemplate, FormationType, SwarmParameters
from ..core.vector import Vector3

logger = logging.getLogger(__name__)

# (min_agents, max_agents) per formation kind
FORMATION_LIMITS: Dict[FormationType, Tuple[int, int]] = {
    FormationType.GRID: (2, 100),
    FormationType.CIRCLE: (3, 50),
    FormationType.LINE: (2, 30),
    FormationType.VEE: (3, 25),
    FormationType.DIAMOND: (2, 20),
    FormationType.WEDGE: (3, 40),
    FormationType.ECHELON: (2, 25),
    FormationType.COLUMN: (2, 30),
}

# sin(60 deg), used by the swept formations
SWEEP = 0.866

CIRCLE_MIN_SPACING = 20.0


class FormationCalculator:
    """Calculates slot offsets for the supported formations.

    Generators are pure: the same kind, count and spacing always give the
    same ordered offsets.

    Example:
        calc = FormationCalculator()
        offsets = calc.calculate(FormationType.VEE, 5, spacing=25.0)
        for i, p in enumerate(offsets):
            print(f"Slot {i}: x={p.x:.1f}, y={p.y:.1f}")
    """

    def __init__(self):
        self._generators: Dict[FormationType, Callable[[int, float], List[Vector3]]] = {
            FormationType.GRID: self._grid_formation,
            FormationType.CIRCLE: self._circle_formation,
            FormationType.LINE: self._line_formation,
            FormationType.COLUMN: self._column_formation,
            FormationType.VEE: self._vee_formation,
            FormationType.DIAMOND: self._diamond_formation,
            FormationType.WEDGE: self._wedge_formation,
            FormationType.ECHELON: self._echelon_formation,
        }

    def calculate(
        self,
        formation_type: FormationType,
        count: int,
        spacing: float,
        heading: float = 0.0,
    ) -> List[Vector3]:
        """Calculate offsets for count agents in the given formation.

        Args:
            formation_type: Formation kind
            count: Number of agents
            spacing: Distance between adjacent slots (meters)
            heading: Rotation about the vertical axis (degrees)

        Returns:
            Ordered list of offsets, one per agent
        """
        if count <= 0:
            return []

        positions = self._generators[formation_type](count, spacing)
        return self._rotate_formation(positions, heading)

    def _grid_formation(self, count: int, spacing: float) -> List[Vector3]:
        """Row-major grid, roughly square, centered at origin."""
        cols = math.ceil(math.sqrt(count))
        rows = math.ceil(count / cols)

        positions = []
        for i in range(count):
            row, col = divmod(i, cols)
            positions.append(Vector3(
                (col - (cols - 1) / 2) * spacing,
                (row - (rows - 1) / 2) * spacing,
                0.0,
            ))
        return positions

    def _circle_formation(self, count: int, spacing: float) -> List[Vector3]:
        """Ring whose circumference gives each agent one spacing of arc."""
        radius = spacing * count / (2 * math.pi)
        positions = []
        for i in range(count):
            angle = 2 * math.pi * i / count
            positions.append(Vector3(radius * math.cos(angle), radius * math.sin(angle), 0.0))
        return positions

    def _line_formation(self, count: int, spacing: float) -> List[Vector3]:
        center_offset = (count - 1) / 2
        return [Vector3((i - center_offset) * spacing, 0.0, 0.0) for i in range(count)]

    def _column_formation(self, count: int, spacing: float) -> List[Vector3]:
        # Index 0 at the front (positive y)
        center_offset = (count - 1) / 2
        return [Vector3(0.0, (center_offset - i) * spacing, 0.0) for i in range(count)]

    def _vee_formation(self, count: int, spacing: float) -> List[Vector3]:
        """Apex at index 0, wings alternate right/left behind it."""
        positions = [Vector3()]
        for i in range(1, count):
            side = 1 if (i - 1) % 2 == 0 else -1
            rank = (i - 1) // 2 + 1
            positions.append(Vector3(
                -rank * spacing * 0.5,
                side * rank * spacing * SWEEP,
                0.0,
            ))
        return positions

    def _diamond_formation(self, count: int, spacing: float) -> List[Vector3]:
        """Center, front, back, left, right, then an outer ring at 1.5x spacing."""
        core = [
            Vector3(0.0, 0.0, 0.0),
            Vector3(0.0, spacing, 0.0),
            Vector3(0.0, -spacing, 0.0),
            Vector3(-spacing, 0.0, 0.0),
            Vector3(spacing, 0.0, 0.0),
        ]
        positions = core[:count]

        outer = count - len(core)
        radius = spacing * 1.5
        for i in range(max(outer, 0)):
            angle = 2 * math.pi * i / max(outer, 1)
            positions.append(Vector3(radius * math.cos(angle), radius * math.sin(angle), 0.0))
        return positions

    def _wedge_formation(self, count: int, spacing: float) -> List[Vector3]:
        """Layers of ceil(sqrt(count)) agents, each layer one spacing back."""
        layer_size = math.ceil(math.sqrt(count))
        positions = []
        for i in range(count):
            layer, pos_in_layer = divmod(i, layer_size)
            positions.append(Vector3(
                -layer * spacing,
                (pos_in_layer - (layer_size - 1) / 2) * spacing,
                0.0,
            ))
        return positions

    def _echelon_formation(self, count: int, spacing: float) -> List[Vector3]:
        return [
            Vector3(-i * spacing * 0.5, -i * spacing * SWEEP, 0.0)
            for i in range(count)
        ]

    def _rotate_formation(self, positions: List[Vector3], heading: float) -> List[Vector3]:
        """Rotate formation around vertical axis.

        Args:
            positions: Offsets to rotate
            heading: Rotation angle in degrees

        Returns:
            Rotated offsets
        """
        if heading == 0.0:
            return positions
        return [p.rotated(heading) for p in positions]


_calculator = FormationCalculator()


def positions_for(formation_type: FormationType, count: int, spacing: float) -> Tuple[Vector3, ...]:
    """Ordered slot offsets for count agents (pure, deterministic)."""
    return tuple(_calculator.calculate(formation_type, count, spacing))


def formation_limits(formation_type: FormationType) -> Tuple[int, int]:
    return FORMATION_LIMITS[formation_type]


def is_feasible(formation_type: FormationType, count: int) -> bool:
    min_agents, max_agents = FORMATION_LIMITS[formation_type]
    return min_agents <= count <= max_agents


def clamp_count(formation_type: FormationType, count: int) -> int:
    """Nearest agent count the formation supports."""
    min_agents, max_agents = FORMATION_LIMITS[formation_type]
    return max(min_agents, min(count, max_agents))


def rotate(positions, heading: float) -> Tuple[Vector3, ...]:
    """Rotate offsets about the vertical axis by heading degrees."""
    if heading == 0.0:
        return tuple(positions)
    return tuple(p.rotated(heading) for p in positions)


def build_template(
    formation_type: FormationType,
    count: int,
    parameters: Optional[SwarmParameters] = None,
    heading: float = 0.0,
) -> FormationTemplate:
    """Generate an immutable template for count agents.

    Args:
        formation_type: Formation kind
        count: Number of agents
        parameters: Parameters to generate with (defaults if None)
        heading: Rotation about the vertical axis (degrees)

    Returns:
        FormationTemplate

    Raises:
        InfeasibleFormationError: count outside the formation's supported range
    """
    params = parameters or SwarmParameters()
    min_agents, max_agents = FORMATION_LIMITS[formation_type]
    if not min_agents <= count <= max_agents:
        raise InfeasibleFormationError(formation_type, count, min_agents, max_agents)

    if formation_type == FormationType.CIRCLE and params.spacing < CIRCLE_MIN_SPACING:
        params = params.with_changes(spacing=CIRCLE_MIN_SPACING)
    positions = _calculator.calculate(formation_type, count, params.spacing, heading)

    return FormationTemplate(
        formation=formation_type,
        positions=tuple(positions),
        min_agents=min_agents,
        max_agents=max_agents,
        parameters=params,
        heading=heading,
    )


@dataclass
class FormationTransition:
    """Smooth preview of a transition between two slot layouts.

    Uses cosine interpolation for smooth acceleration/deceleration.

    Example:
        transition = FormationTransition(
            start_positions=positions_for(FormationType.LINE, 4, 25.0),
            end_positions=positions_for(FormationType.GRID, 4, 25.0),
            duration=5.0
        )
        positions = transition.get_positions_at_time(2.5)
    """

    start_positions: Tuple[Vector3, ...]
    end_positions: Tuple[Vector3, ...]
    duration: float = 5.0

    def get_positions_at_time(self, t: float) -> List[Vector3]:
        """Get interpolated positions at time t.

        Args:
            t: Time since transition start (seconds)

        Returns:
            Interpolated positions for all slots
        """
        if self.duration <= 0:
            return list(self.end_positions)

        # Clamp progress to [0, 1]
        progress = min(1.0, max(0.0, t / self.duration))

        # Cosine interpolation for smooth ease-in-out
        progress = 0.5 - 0.5 * math.cos(progress * math.pi)

        return [
            start + (end - start) * progress
            for start, end in zip(self.start_positions, self.end_positions)
        ]

    def is_complete(self, t: float) -> bool:
        """Check if transition is complete."""
        return t >= self.duration
