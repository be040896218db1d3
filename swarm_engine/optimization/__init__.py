"""Behavior optimization: profiles, strategies and the optimizer."""

from .profiles import (
    BUILTIN_PROFILES,
    DEFAULT_PROFILE,
    BehaviorProfile,
    PerformanceWeights,
    select_profile,
)

from .strategies import (
    OptimizationStrategy,
    PerformanceRecord,
    strategy_for,
)

from .optimizer import (
    BehaviorAdjustment,
    BehaviorOptimizer,
    FormationPlan,
    FormationScores,
    MissionOptimization,
    Objective,
    OperationalScenario,
    OptimizationConstraints,
    ParetoResult,
    PerformanceProjection,
    RoleAssignment,
    ScenarioObjective,
    SizeRecommendation,
    TuningResult,
    profile_objectives,
    project_performance,
    suitability_score,
)

__all__ = [
    # Profiles
    "BUILTIN_PROFILES",
    "DEFAULT_PROFILE",
    "BehaviorProfile",
    "PerformanceWeights",
    "select_profile",
    # Strategies
    "OptimizationStrategy",
    "PerformanceRecord",
    "strategy_for",
    # Optimizer
    "BehaviorAdjustment",
    "BehaviorOptimizer",
    "FormationPlan",
    "FormationScores",
    "MissionOptimization",
    "Objective",
    "OperationalScenario",
    "OptimizationConstraints",
    "ParetoResult",
    "PerformanceProjection",
    "RoleAssignment",
    "ScenarioObjective",
    "SizeRecommendation",
    "TuningResult",
    "profile_objectives",
    "project_performance",
    "suitability_score",
]
