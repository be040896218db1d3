"""Behavior profiles: parameter bundles tuned per mission family."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..core.models import EnvironmentalData, FormationType, SwarmParameters, TaskType


@dataclass(frozen=True)
class PerformanceWeights:
    cohesion: float = 0.25
    efficiency: float = 0.25
    safety: float = 0.25
    mission_success: float = 0.25

    def score(self, values: Dict[str, float]) -> float:
        """Weighted mean of projected cohesion, efficiency, safety and mission success."""
        pairs = (
            (values.get("cohesion", 0.0), self.cohesion),
            (values.get("efficiency", 0.0), self.efficiency),
            (values.get("safety", 0.0), self.safety),
            (values.get("mission_success", 0.0), self.mission_success),
        )
        total = sum(w for _, w in pairs)
        if total <= 0:
            return 0.0
        return sum(v * w for v, w in pairs) / total


@dataclass(frozen=True)
class BehaviorProfile:
    """Optimal parameters and preferences for a family of missions.

    Attributes:
        profile_id: Unique identifier
        name: Display name
        mission_types: Task types the profile supports
        parameters: Optimal swarm parameters
        formations: Preferred formations, best first
        wind_threshold: Wind (knots) above which the profile degrades
        visibility_threshold: Visibility (km) below which the profile degrades
        wind_adjustments: Parameter overrides when wind exceeds wind_threshold
        visibility_adjustments: Parameter overrides when visibility drops
            below visibility_threshold
        weights: Relative importance of projected performance dimensions
    """
    profile_id: str
    name: str
    mission_types: Tuple[TaskType, ...]
    parameters: SwarmParameters
    formations: Tuple[FormationType, ...]
    wind_threshold: float
    visibility_threshold: float
    wind_adjustments: Dict[str, float] = field(default_factory=dict)
    visibility_adjustments: Dict[str, float] = field(default_factory=dict)
    weights: PerformanceWeights = PerformanceWeights()

    def supports(self, mission_type: TaskType) -> bool:
        return mission_type in self.mission_types

    @property
    def preferred_formation(self) -> Optional[FormationType]:
        return self.formations[0] if self.formations else None

    def adapted_parameters(self, environment: Optional[EnvironmentalData]) -> SwarmParameters:
        """Optimal parameters with the weather overrides applied.

        Wind overrides go first, so visibility overrides win where both
        touch the same parameter.
        """
        params = self.parameters
        if environment is None:
            return params
        if environment.wind_speed > self.wind_threshold and self.wind_adjustments:
            params = params.with_changes(**self.wind_adjustments)
        if environment.visibility < self.visibility_threshold and self.visibility_adjustments:
            params = params.with_changes(**self.visibility_adjustments)
        return params

    def environment_score(self, environment: EnvironmentalData) -> float:
        """Suitability multiplier of this profile under the given weather."""
        score = 1.0
        score *= 0.8 if environment.wind_speed > self.wind_threshold else 1.2
        score *= 0.8 if environment.visibility < self.visibility_threshold else 1.1
        return score


SURVEILLANCE_PROFILE = BehaviorProfile(
    profile_id="surveillance",
    name="Surveillance Operations",
    mission_types=(TaskType.SURVEILLANCE, TaskType.PATROL),
    parameters=SwarmParameters(
        spacing=30, altitude=150, speed=12, cohesion=0.6, separation=25,
        alignment=0.7, adaptive_threshold=0.4, collision_avoidance_radius=25,
        communication_range=300,
    ),
    formations=(FormationType.GRID, FormationType.LINE, FormationType.CIRCLE),
    wind_threshold=25.0,
    visibility_threshold=1.0,
    wind_adjustments={"spacing": 35.0, "cohesion": 0.7},
    visibility_adjustments={"spacing": 25.0, "communication_range": 250.0},
    weights=PerformanceWeights(cohesion=0.2, efficiency=0.3, safety=0.2, mission_success=0.3),
)

COMBAT_PROFILE = BehaviorProfile(
    profile_id="combat",
    name="Combat Operations",
    mission_types=(TaskType.ESCORT, TaskType.AREA_DENIAL, TaskType.PERIMETER_DEFENSE),
    parameters=SwarmParameters(
        spacing=20, altitude=100, speed=18, cohesion=0.8, separation=15,
        alignment=0.9, adaptive_threshold=0.2, collision_avoidance_radius=20,
        communication_range=200,
    ),
    formations=(FormationType.VEE, FormationType.DIAMOND, FormationType.WEDGE),
    wind_threshold=20.0,
    visibility_threshold=0.5,
    wind_adjustments={"cohesion": 0.9, "alignment": 0.95},
    visibility_adjustments={"spacing": 15.0, "communication_range": 150.0},
    weights=PerformanceWeights(cohesion=0.3, efficiency=0.2, safety=0.3, mission_success=0.2),
)

SEARCH_RESCUE_PROFILE = BehaviorProfile(
    profile_id="search_rescue",
    name="Search and Rescue",
    mission_types=(TaskType.SEARCH_AND_RESCUE,),
    parameters=SwarmParameters(
        spacing=40, altitude=120, speed=15, cohesion=0.7, separation=30,
        alignment=0.6, adaptive_threshold=0.3, collision_avoidance_radius=35,
        communication_range=400,
    ),
    formations=(FormationType.GRID, FormationType.LINE, FormationType.ECHELON),
    wind_threshold=30.0,
    visibility_threshold=0.8,
    wind_adjustments={"spacing": 50.0, "altitude": 150.0},
    visibility_adjustments={"spacing": 30.0, "communication_range": 300.0},
    weights=PerformanceWeights(cohesion=0.15, efficiency=0.35, safety=0.25, mission_success=0.25),
)

DEFAULT_PROFILE = BehaviorProfile(
    profile_id="default",
    name="General Operations",
    mission_types=(TaskType.FORMATION_FLIGHT,),
    parameters=SwarmParameters(
        spacing=25, altitude=100, speed=15, cohesion=0.7, separation=20,
        alignment=0.8, adaptive_threshold=0.3, collision_avoidance_radius=25,
        communication_range=200,
    ),
    formations=(FormationType.GRID, FormationType.VEE),
    wind_threshold=25.0,
    visibility_threshold=1.0,
    wind_adjustments={"cohesion": 0.8},
    visibility_adjustments={"spacing": 20.0},
)

BUILTIN_PROFILES: Tuple[BehaviorProfile, ...] = (
    SURVEILLANCE_PROFILE,
    COMBAT_PROFILE,
    SEARCH_RESCUE_PROFILE,
)


def select_profile(
    profiles: List[BehaviorProfile],
    mission_type: TaskType,
    environment: Optional[EnvironmentalData] = None,
    default: BehaviorProfile = DEFAULT_PROFILE,
) -> BehaviorProfile:
    """Best profile for a mission type.

    When several profiles support the type, weather decides (first profile
    wins ties); without weather the first one is used.
    """
    compatible = [p for p in profiles if p.supports(mission_type)]
    if not compatible:
        return default
    if len(compatible) == 1 or environment is None:
        return compatible[0]

    best = compatible[0]
    best_score = 0.0
    for profile in compatible:
        score = profile.environment_score(environment)
        if score > best_score:
            best, best_score = profile, score
    return best
