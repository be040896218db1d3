"""Per-mission optimization strategies.

Each strategy starts from a profile's optimal parameters with the
profile's weather overrides applied, then applies a small table of
deterministic adjustments, returning parameters and a recommended formation.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from ..core.models import EnvironmentalData, FormationType, SwarmParameters, TaskType
from .profiles import BehaviorProfile


@dataclass(frozen=True)
class PerformanceRecord:
    """Observed performance of a swarm over one evaluation period."""
    timestamp: float
    parameters: SwarmParameters
    formation: FormationType
    mission_type: TaskType
    cohesion: float
    efficiency: float
    safety: float
    mission_success: float


class OptimizationStrategy:
    """Base strategy: the profile's parameters in its preferred formation."""

    formation = FormationType.GRID

    def optimize(
        self,
        current: SwarmParameters,
        profile: BehaviorProfile,
        environment: Optional[EnvironmentalData],
        history: Sequence[PerformanceRecord],
    ) -> Tuple[SwarmParameters, FormationType]:
        return profile.adapted_parameters(environment), profile.preferred_formation or self.formation


class SurveillanceStrategy(OptimizationStrategy):
    """Coverage first: wider spacing in wind, faster when history lags."""

    formation = FormationType.GRID

    def optimize(self, current, profile, environment, history):
        params = profile.adapted_parameters(environment)
        if environment is not None:
            if environment.wind_speed > 20:
                params = params.with_changes(
                    spacing=params.spacing * 1.2,
                    cohesion=min(1.0, params.cohesion + 0.1),
                )
            if environment.visibility < 1.0:
                params = params.with_changes(
                    communication_range=params.communication_range * 0.9
                )
        if history:
            mean_efficiency = sum(r.efficiency for r in history) / len(history)
            if mean_efficiency < 0.7:
                params = params.with_changes(speed=params.speed * 1.1)
        return params, self.formation


class ReconnaissanceStrategy(OptimizationStrategy):
    formation = FormationType.ECHELON

    def optimize(self, current, profile, environment, history):
        params = profile.adapted_parameters(environment)
        params = params.with_changes(
            speed=params.speed * 1.1,
            adaptive_threshold=params.adaptive_threshold * 0.9,
        )
        return params, self.formation


class EscortStrategy(OptimizationStrategy):
    formation = FormationType.DIAMOND

    def optimize(self, current, profile, environment, history):
        params = profile.adapted_parameters(environment)
        params = params.with_changes(
            cohesion=min(1.0, params.cohesion + 0.1),
            collision_avoidance_radius=params.collision_avoidance_radius * 1.2,
        )
        return params, self.formation


STRATEGIES: Dict[TaskType, OptimizationStrategy] = {
    TaskType.SURVEILLANCE: SurveillanceStrategy(),
    TaskType.RECONNAISSANCE: ReconnaissanceStrategy(),
    TaskType.ESCORT: EscortStrategy(),
}

DEFAULT_STRATEGY = OptimizationStrategy()


def strategy_for(mission_type: TaskType) -> OptimizationStrategy:
    return STRATEGIES.get(mission_type, DEFAULT_STRATEGY)
