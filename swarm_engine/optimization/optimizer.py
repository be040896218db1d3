"""Swarm behavior optimizer.

Chooses swarm parameters and formations for a mission: profile plus
strategy for the initial plan, gap-driven tuning while a mission runs,
Pareto search over perturbed parameters, formation and role selection,
and swarm size selection with diminishing returns.

All projections are closed-form; the only randomness is the candidate
generator of the Pareto search, which is seeded.
"""

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.errors import InfeasibleRequestError
from ..core.models import (
    Agent,
    AgentCategory,
    AgentStatus,
    EnvironmentalData,
    FormationType,
    Mission,
    Swarm,
    SwarmMetrics,
    SwarmParameters,
    TaskType,
)
from ..core.vector import Vector3
from ..coordination.formations import build_template, is_feasible
from .profiles import BUILTIN_PROFILES, DEFAULT_PROFILE, BehaviorProfile, select_profile
from .strategies import PerformanceRecord, strategy_for

logger = logging.getLogger(__name__)

HISTORY_SIZE = 100
ADJUSTMENT_THRESHOLD = 5.0  # percent
BOTTLENECK_GAP = 0.1
MAX_BOTTLENECKS = 3
MAX_SWARM_SIZE = 20
PREFERRED_FORMATION_BONUS = 0.1

FORMATION_BONUS: Dict[FormationType, Dict[str, float]] = {
    FormationType.GRID: {"efficiency": 0.1, "cohesion": 0.05},
    FormationType.CIRCLE: {"cohesion": 0.15, "safety": 0.05},
    FormationType.LINE: {"efficiency": 0.05, "mission_success": 0.1},
    FormationType.VEE: {"mission_success": 0.15, "efficiency": 0.05},
    FormationType.DIAMOND: {"safety": 0.1, "cohesion": 0.1},
    FormationType.WEDGE: {"mission_success": 0.1, "safety": 0.05},
    FormationType.ECHELON: {"efficiency": 0.08, "mission_success": 0.07},
    FormationType.COLUMN: {"efficiency": 0.05, "cohesion": 0.1},
}

MISSION_BONUS: Dict[TaskType, Dict[str, float]] = {
    TaskType.SURVEILLANCE: {"efficiency": 0.1},
    TaskType.RECONNAISSANCE: {"mission_success": 0.1},
    TaskType.SEARCH_AND_RESCUE: {"safety": 0.05, "mission_success": 0.05},
    TaskType.PATROL: {"efficiency": 0.05, "cohesion": 0.05},
    TaskType.ESCORT: {"safety": 0.15},
    TaskType.FORMATION_FLIGHT: {"cohesion": 0.2},
    TaskType.AREA_DENIAL: {"mission_success": 0.1},
    TaskType.PERIMETER_DEFENSE: {"safety": 0.1},
    TaskType.SUPPLY_DELIVERY: {"efficiency": 0.1},
    TaskType.COMMUNICATION_RELAY: {"efficiency": 0.05},
}

SIZE_MODIFIERS: Dict[TaskType, Dict[str, float]] = {
    TaskType.SURVEILLANCE: {"efficiency": 1.1, "mission_success": 1.2},
    TaskType.RECONNAISSANCE: {"efficiency": 1.2, "safety": 0.9},
    TaskType.SEARCH_AND_RESCUE: {"safety": 1.1, "mission_success": 1.1},
    TaskType.PATROL: {"efficiency": 1.1, "cohesion": 1.1},
    TaskType.ESCORT: {"safety": 1.2, "cohesion": 1.1},
}

TYPE_COMPATIBILITY: Dict[TaskType, Dict[AgentCategory, float]] = {
    TaskType.SURVEILLANCE: {
        AgentCategory.SURVEILLANCE: 1.0, AgentCategory.RECONNAISSANCE: 0.8,
        AgentCategory.MULTI_ROLE: 0.7, AgentCategory.ATTACK: 0.3, AgentCategory.TRANSPORT: 0.2,
    },
    TaskType.RECONNAISSANCE: {
        AgentCategory.RECONNAISSANCE: 1.0, AgentCategory.SURVEILLANCE: 0.8,
        AgentCategory.MULTI_ROLE: 0.7, AgentCategory.ATTACK: 0.4, AgentCategory.TRANSPORT: 0.3,
    },
    TaskType.SEARCH_AND_RESCUE: {
        AgentCategory.TRANSPORT: 1.0, AgentCategory.MULTI_ROLE: 0.9,
        AgentCategory.SURVEILLANCE: 0.7, AgentCategory.RECONNAISSANCE: 0.6, AgentCategory.ATTACK: 0.3,
    },
    TaskType.PATROL: {
        AgentCategory.SURVEILLANCE: 0.9, AgentCategory.RECONNAISSANCE: 0.8,
        AgentCategory.MULTI_ROLE: 0.8, AgentCategory.ATTACK: 0.6, AgentCategory.TRANSPORT: 0.4,
    },
    TaskType.ESCORT: {
        AgentCategory.ATTACK: 1.0, AgentCategory.MULTI_ROLE: 0.8,
        AgentCategory.SURVEILLANCE: 0.6, AgentCategory.RECONNAISSANCE: 0.5, AgentCategory.TRANSPORT: 0.4,
    },
}

STATUS_BONUS: Dict[AgentStatus, float] = {
    AgentStatus.ACTIVE: 20.0,
    AgentStatus.IDLE: 30.0,
    AgentStatus.MAINTENANCE: -50.0,
    AgentStatus.OFFLINE: -100.0,
}

ADJUSTMENT_REASONS: Dict[str, Tuple[str, str]] = {
    "spacing": (
        "Increased spacing for better coverage and reduced collision risk",
        "Reduced spacing for tighter coordination and communication",
    ),
    "altitude": (
        "Higher altitude for better surveillance range and obstacle avoidance",
        "Lower altitude for better target resolution and stealth",
    ),
    "speed": (
        "Increased speed for faster mission completion and threat response",
        "Reduced speed for better precision and energy conservation",
    ),
    "cohesion": (
        "Enhanced cohesion for better swarm coordination",
        "Reduced cohesion for more independent operation",
    ),
    "separation": (
        "Increased separation for safety and independent maneuvering",
        "Reduced separation for tighter formation and coordination",
    ),
    "alignment": (
        "Improved alignment for coordinated movement",
        "Reduced alignment for more flexible individual responses",
    ),
    "adaptive_threshold": (
        "Higher adaptive threshold for more stable behavior",
        "Lower adaptive threshold for more responsive adaptation",
    ),
    "collision_avoidance_radius": (
        "Expanded safety margins for collision avoidance",
        "Reduced safety margins for closer operations",
    ),
    "communication_range": (
        "Extended communication range for better coordination",
        "Reduced communication range for focused local coordination",
    ),
}


class ScenarioObjective(Enum):
    SURVEILLANCE = "surveillance"
    PROTECTION = "protection"
    RECONNAISSANCE = "reconnaissance"
    TRANSPORT = "transport"


# Mission family whose profile ranks formations for each scenario
SCENARIO_MISSIONS: Dict[ScenarioObjective, TaskType] = {
    ScenarioObjective.SURVEILLANCE: TaskType.SURVEILLANCE,
    ScenarioObjective.PROTECTION: TaskType.ESCORT,
    ScenarioObjective.RECONNAISSANCE: TaskType.RECONNAISSANCE,
    ScenarioObjective.TRANSPORT: TaskType.FORMATION_FLIGHT,
}


@dataclass(frozen=True)
class OperationalScenario:
    primary_objective: ScenarioObjective


@dataclass(frozen=True)
class OptimizationConstraints:
    """Hard limits applied after a strategy runs.

    Attributes:
        max_speed: Speed cap (m/s)
        min_spacing: Spacing floor (meters)
        max_spacing: Spacing cap (meters)
        required_formations: Allowed formations; first one replaces a
            recommendation outside the set
    """
    max_speed: Optional[float] = None
    min_spacing: Optional[float] = None
    max_spacing: Optional[float] = None
    required_formations: Tuple[FormationType, ...] = ()


@dataclass(frozen=True)
class PerformanceProjection:
    cohesion: float
    efficiency: float
    safety: float
    mission_success: float
    overall: float
    confidence: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "cohesion": self.cohesion,
            "efficiency": self.efficiency,
            "safety": self.safety,
            "mission_success": self.mission_success,
        }


@dataclass(frozen=True)
class BehaviorAdjustment:
    parameter: str
    current_value: float
    optimized_value: float
    change: float
    percent_change: float
    reason: str


@dataclass(frozen=True)
class MissionOptimization:
    """Result of optimize_for_mission.

    score is the projection weighted by the selected profile's performance
    weights.
    """
    profile_id: str
    parameters: SwarmParameters
    formation: FormationType
    adjustments: Tuple[BehaviorAdjustment, ...]
    projection: PerformanceProjection
    score: float = 0.0


@dataclass(frozen=True)
class Bottleneck:
    metric: str
    severity: float
    current_value: float
    target_value: float


@dataclass(frozen=True)
class TuningResult:
    """Parameter changes proposed by adaptive_tuning.

    Attributes:
        adjustments: Parameter name to new value (absent = unchanged)
        reason: Comma separated bottleneck names
        expected_improvement: Estimated mean gain (0-0.2)
        bottlenecks: Bottlenecks that drove the adjustments
    """
    adjustments: Dict[str, float]
    reason: str
    expected_improvement: float
    bottlenecks: Tuple[Bottleneck, ...] = ()

    def apply(self, parameters: SwarmParameters) -> SwarmParameters:
        if not self.adjustments:
            return parameters
        return parameters.with_changes(**self.adjustments)


@dataclass(frozen=True)
class Objective:
    name: str
    weight: float = 1.0
    target: float = 1.0


@dataclass
class Candidate:
    parameters: SwarmParameters
    objective_values: Dict[str, float]
    dominance_rank: int = 0


@dataclass(frozen=True)
class ParetoResult:
    front: Tuple[Candidate, ...]
    recommended: SwarmParameters
    tradeoffs: Dict[str, float]


@dataclass(frozen=True)
class FormationScores:
    coverage: float = 0.5
    coordination: float = 0.5
    safety: float = 0.5
    efficiency: float = 0.5

    @property
    def overall(self) -> float:
        return (self.coverage + self.coordination + self.safety + self.efficiency) / 4


@dataclass(frozen=True)
class RoleAssignment:
    agent_id: str
    position: Vector3
    role: str


@dataclass(frozen=True)
class FormationPlan:
    formation: FormationType
    parameters: SwarmParameters
    assignments: Tuple[RoleAssignment, ...]
    scores: FormationScores


@dataclass(frozen=True)
class SizeRecommendation:
    size: int
    agents: Tuple[Agent, ...]
    justification: str
    projection: PerformanceProjection
    cost_benefit: float


FORMATION_SCORES: Dict[FormationType, FormationScores] = {
    FormationType.GRID: FormationScores(coverage=0.9, coordination=0.7),
    FormationType.CIRCLE: FormationScores(coordination=0.9, safety=0.8),
    FormationType.LINE: FormationScores(coverage=0.8, efficiency=0.7),
    FormationType.VEE: FormationScores(efficiency=0.8, coordination=0.7),
    FormationType.DIAMOND: FormationScores(safety=0.9, coordination=0.8),
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def project_performance(
    parameters: SwarmParameters,
    formation: FormationType,
    mission_type: TaskType,
    environment: Optional[EnvironmentalData] = None,
) -> PerformanceProjection:
    """Closed-form performance estimate for a parameter set.

    Starts from base values, adds formation and mission bonuses, applies
    weather penalties and parameter terms, then clamps each to [0, 1].
    """
    values = {"cohesion": 0.8, "efficiency": 0.7, "safety": 0.9, "mission_success": 0.75}

    for key, bonus in FORMATION_BONUS.get(formation, {}).items():
        values[key] += bonus
    for key, bonus in MISSION_BONUS.get(mission_type, {}).items():
        values[key] += bonus

    if environment is not None:
        if environment.wind_speed > 20:
            values["cohesion"] *= 0.9
            values["safety"] *= 0.95
        if environment.visibility < 1.0:
            values["efficiency"] *= 0.9
            values["safety"] *= 0.9

    values["cohesion"] += (parameters.cohesion - 0.7) * 0.3
    values["efficiency"] += (parameters.speed - 15) / 30 * 0.2
    values["safety"] += (parameters.collision_avoidance_radius - 20) / 20 * 0.1

    values = {k: _clamp(v) for k, v in values.items()}
    return PerformanceProjection(
        overall=sum(values.values()) / len(values),
        confidence=0.8,
        **values,
    )


def behavior_adjustments(current: SwarmParameters, optimized: SwarmParameters) -> List[BehaviorAdjustment]:
    """Parameters that moved more than 5%, with a reason each."""
    adjustments = []
    optimized_values = optimized.as_dict()
    for name, value in current.as_dict().items():
        new_value = optimized_values[name]
        if value == 0:
            continue
        percent = abs(new_value - value) / abs(value) * 100
        if percent <= ADJUSTMENT_THRESHOLD:
            continue
        increase, decrease = ADJUSTMENT_REASONS.get(name, ("Parameter optimization",) * 2)
        adjustments.append(BehaviorAdjustment(
            parameter=name,
            current_value=value,
            optimized_value=new_value,
            change=new_value - value,
            percent_change=percent,
            reason=increase if new_value > value else decrease,
        ))
    return adjustments


def apply_constraints(
    parameters: SwarmParameters,
    formation: FormationType,
    constraints: Optional[OptimizationConstraints],
) -> Tuple[SwarmParameters, FormationType]:
    if constraints is None:
        return parameters, formation

    speed = parameters.speed
    if constraints.max_speed is not None:
        speed = min(speed, constraints.max_speed)
    spacing = parameters.spacing
    if constraints.min_spacing is not None:
        spacing = max(spacing, constraints.min_spacing)
    if constraints.max_spacing is not None:
        spacing = min(spacing, constraints.max_spacing)
    if constraints.required_formations and formation not in constraints.required_formations:
        formation = constraints.required_formations[0]

    return parameters.with_changes(speed=speed, spacing=spacing), formation


def dominates(a: Dict[str, float], b: Dict[str, float], names: Sequence[str]) -> bool:
    """True when a is at least as good as b everywhere and better somewhere."""
    better = False
    for name in names:
        if a.get(name, 0.0) < b.get(name, 0.0):
            return False
        if a.get(name, 0.0) > b.get(name, 0.0):
            better = True
    return better


def suitability_score(agent: Agent, mission_type: TaskType) -> float:
    """How well an agent suits a mission, for swarm sizing."""
    score = agent.battery * 0.3 + agent.signal * 0.2
    score += min(agent.mission_count / 10, 5) * 0.1
    score += STATUS_BONUS.get(agent.status, 0.0)

    compatibility = TYPE_COMPATIBILITY.get(mission_type)
    if compatibility is not None:
        score += compatibility.get(agent.category, 0.5) * 30
    return score


def project_size_performance(size: int, mission_type: TaskType, threat_level: int) -> PerformanceProjection:
    size_efficiency = math.log(size + 1) / math.log(11)
    values = {
        "cohesion": 0.5 + size_efficiency * 0.3,
        "efficiency": 0.6 + size_efficiency * 0.2,
        "safety": 0.7 + min(size / 10, 1.0) * 0.2,
        "mission_success": 0.6 + size_efficiency * 0.3,
    }
    for key, factor in SIZE_MODIFIERS.get(mission_type, {}).items():
        values[key] *= factor
    values["safety"] *= 1 - threat_level * 0.05

    values = {k: _clamp(v) for k, v in values.items()}
    return PerformanceProjection(
        overall=sum(values.values()) / len(values),
        confidence=0.7,
        **values,
    )


def profile_objectives(profile: BehaviorProfile) -> List[Objective]:
    """Pareto objectives weighted like the profile's projected performance."""
    weights = profile.weights
    return [
        Objective("cohesion", weight=weights.cohesion),
        Objective("efficiency", weight=weights.efficiency),
        Objective("safety", weight=weights.safety),
        Objective("mission_success", weight=weights.mission_success),
    ]


def assign_role(index: int, agent: Agent) -> str:
    if index == 0:
        return "leader"
    if index < 3:
        return "sub_leader"
    if agent.category == AgentCategory.SURVEILLANCE:
        return "observer"
    if agent.category == AgentCategory.ATTACK:
        return "guardian"
    return "follower"


class BehaviorOptimizer:
    """Tunes swarm parameters and formations for missions.

    Keeps a bounded performance history per swarm that strategies use to
    adjust their recommendations.

    Example:
        optimizer = BehaviorOptimizer()
        plan = optimizer.optimize_for_mission(swarm, TaskType.SURVEILLANCE, env)
        swarm.parameters = plan.parameters
        swarm.formation = plan.formation
    """

    def __init__(
        self,
        profiles: Sequence[BehaviorProfile] = BUILTIN_PROFILES,
        default_profile: BehaviorProfile = DEFAULT_PROFILE,
        clock: Callable[[], float] = time.time,
    ):
        self.profiles = list(profiles)
        self.default_profile = default_profile
        self._clock = clock
        self._history: Dict[str, Deque[PerformanceRecord]] = {}

    def record_performance(self, swarm_id: str, record: PerformanceRecord) -> None:
        history = self._history.setdefault(swarm_id, deque(maxlen=HISTORY_SIZE))
        history.append(record)

    def history(self, swarm_id: str) -> List[PerformanceRecord]:
        return list(self._history.get(swarm_id, ()))

    def optimize_for_mission(
        self,
        swarm: Swarm,
        mission_type: TaskType,
        environment: Optional[EnvironmentalData] = None,
        constraints: Optional[OptimizationConstraints] = None,
    ) -> MissionOptimization:
        """Parameters, formation and projected performance for a mission.

        Args:
            swarm: Swarm whose current parameters are the baseline
            mission_type: Mission being flown
            environment: Current weather, if known
            constraints: Hard limits on the result

        Returns:
            MissionOptimization
        """
        profile = select_profile(self.profiles, mission_type, environment, self.default_profile)
        strategy = strategy_for(mission_type)
        parameters, formation = strategy.optimize(
            swarm.parameters, profile, environment, self.history(swarm.swarm_id)
        )
        parameters, formation = apply_constraints(parameters, formation, constraints)

        adjustments = behavior_adjustments(swarm.parameters, parameters)
        projection = project_performance(parameters, formation, mission_type, environment)
        logger.debug(
            f"Swarm {swarm.swarm_id} optimized with profile {profile.profile_id}: "
            f"{formation.value}, {len(adjustments)} adjustments, overall {projection.overall:.2f}"
        )
        return MissionOptimization(
            profile_id=profile.profile_id,
            parameters=parameters,
            formation=formation,
            adjustments=tuple(adjustments),
            projection=projection,
            score=profile.weights.score(projection.as_dict()),
        )

    def adaptive_tuning(
        self,
        swarm: Swarm,
        metrics: SwarmMetrics,
        mission_type: TaskType,
        targets: Dict[str, float],
    ) -> TuningResult:
        """Propose parameter changes that close the largest metric gaps.

        Gaps above 0.1 (target minus observed) become bottlenecks; the
        three most severe drive bounded parameter deltas.
        """
        observed = metrics.as_dict()
        bottlenecks = []
        for name in ("cohesion", "efficiency", "adaptability", "resilience"):
            if name not in targets:
                continue
            gap = targets[name] - observed[name]
            if gap > BOTTLENECK_GAP:
                bottlenecks.append(Bottleneck(
                    metric=name,
                    severity=min(gap, 1.0),
                    current_value=observed[name],
                    target_value=targets[name],
                ))
        bottlenecks.sort(key=lambda b: -b.severity)
        bottlenecks = bottlenecks[:MAX_BOTTLENECKS]

        params = swarm.parameters
        adjustments: Dict[str, float] = {}
        for bottleneck in bottlenecks:
            severity = bottleneck.severity
            if bottleneck.metric == "cohesion":
                adjustments["cohesion"] = min(1.0, params.cohesion + severity * 0.2)
                adjustments["communication_range"] = params.communication_range * (1 + severity * 0.1)
            elif bottleneck.metric == "efficiency":
                adjustments["speed"] = min(30.0, params.speed + severity * 5)
                adjustments["spacing"] = max(10.0, params.spacing - severity * 5)
            elif bottleneck.metric == "adaptability":
                adjustments["adaptive_threshold"] = max(0.1, params.adaptive_threshold - severity * 0.1)
            elif bottleneck.metric == "resilience":
                adjustments["separation"] = min(30.0, params.separation + severity * 5)
                adjustments["collision_avoidance_radius"] = min(
                    50.0, params.collision_avoidance_radius + severity * 10
                )

        current = params.as_dict()
        gains = []
        for name, value in adjustments.items():
            base = current[name]
            relative = abs(value - base) / abs(base) if base else 0.0
            gains.append(min(0.2, relative))
        expected = sum(gains) / len(gains) if gains else 0.0

        if bottlenecks:
            logger.info(
                f"Swarm {swarm.swarm_id} tuning for {mission_type.value}: "
                f"{', '.join(b.metric for b in bottlenecks)}"
            )
        return TuningResult(
            adjustments=adjustments,
            reason=", ".join(b.metric for b in bottlenecks),
            expected_improvement=expected,
            bottlenecks=tuple(bottlenecks),
        )

    def multi_objective_optimization(
        self,
        swarm: Swarm,
        objectives: Optional[Sequence[Objective]],
        mission_type: TaskType,
        samples: int = 50,
        seed: int = 0,
    ) -> ParetoResult:
        """Pareto search over perturbed copies of the swarm's parameters.

        Args:
            swarm: Swarm whose parameters seed the search
            objectives: Objectives to maximize; unknown names score 0.5.
                None uses the performance weights of the mission's profile
            mission_type: Mission used in the projection
            samples: Number of candidates
            seed: RNG seed, same seed gives the same result

        Returns:
            ParetoResult with the first front, the weighted-sum pick and the
            value range of each objective across the front

        Raises:
            ValueError: no objectives or no samples
        """
        profile = select_profile(self.profiles, mission_type, None, self.default_profile)
        if objectives is None:
            objectives = profile_objectives(profile)
        if not objectives:
            raise ValueError("at least one objective is required")
        if samples <= 0:
            raise ValueError(f"samples must be positive, got {samples}")
        formation = profile.preferred_formation or FormationType.GRID

        rng = np.random.default_rng(seed)
        base = swarm.parameters
        names = [o.name for o in objectives]

        candidates = []
        for _ in range(samples):
            scale = rng.uniform(0.8, 1.2, size=3)
            shift = rng.uniform(-0.2, 0.2, size=2)
            params = base.with_changes(
                spacing=base.spacing * scale[0],
                speed=base.speed * scale[1],
                separation=base.separation * scale[2],
                cohesion=_clamp(base.cohesion + shift[0]),
                alignment=_clamp(base.alignment + shift[1]),
            )
            projection = project_performance(params, formation, mission_type).as_dict()
            values = {name: projection.get(name, 0.5) for name in names}
            candidates.append(Candidate(parameters=params, objective_values=values))

        for candidate in candidates:
            candidate.dominance_rank = sum(
                1 for other in candidates
                if other is not candidate and dominates(other.objective_values, candidate.objective_values, names)
            )
        front = [c for c in candidates if c.dominance_rank == 0]

        total_weight = sum(o.weight for o in objectives)
        best = front[0]
        best_score = -1.0
        for candidate in front:
            weighted = sum(candidate.objective_values[o.name] * o.weight for o in objectives)
            score = weighted / total_weight if total_weight > 0 else 0.0
            if score > best_score:
                best, best_score = candidate, score

        tradeoffs = {}
        for name in names:
            values = np.array([c.objective_values[name] for c in front])
            tradeoffs[name] = float(values.max() - values.min())

        return ParetoResult(front=tuple(front), recommended=best.parameters, tradeoffs=tradeoffs)

    def optimize_formation(
        self,
        swarm: Swarm,
        scenario: OperationalScenario,
        agents: Sequence[Agent],
    ) -> FormationPlan:
        """Best formation for a scenario plus a role for each member.

        Formations the scenario's mission profile prefers get a bonus on
        top of their scenario-weighted scores.

        Raises:
            InfeasibleRequestError: no formation supports the member count
        """
        members_ids = set(swarm.agent_ids)
        members = [a for a in agents if a.agent_id in members_ids and a.is_available]
        count = len(members)
        feasible = [f for f in FormationType if is_feasible(f, count)]
        if not feasible:
            raise InfeasibleRequestError(f"no formation supports {count} agents")

        mission_type = SCENARIO_MISSIONS[scenario.primary_objective]
        preferred = select_profile(self.profiles, mission_type, None, self.default_profile).formations

        best_kind = feasible[0]
        best_scores = None
        best_rank = 0.0
        for kind in feasible:
            scores = FORMATION_SCORES.get(kind, FormationScores())
            if scenario.primary_objective == ScenarioObjective.SURVEILLANCE:
                scores = FormationScores(scores.coverage * 1.2, scores.coordination, scores.safety, scores.efficiency)
            elif scenario.primary_objective == ScenarioObjective.PROTECTION:
                scores = FormationScores(scores.coverage, scores.coordination, scores.safety * 1.2, scores.efficiency)
            rank = scores.overall + (PREFERRED_FORMATION_BONUS if kind in preferred else 0.0)
            if best_scores is None or rank > best_rank:
                best_kind, best_scores, best_rank = kind, scores, rank

        template = build_template(best_kind, count, swarm.parameters)
        ranked = sorted(
            members,
            key=lambda a: (-(a.battery + a.signal + a.mission_count * 5), a.agent_id),
        )
        assignments = tuple(
            RoleAssignment(agent.agent_id, position, assign_role(i, agent))
            for i, (agent, position) in enumerate(zip(ranked, template.positions))
        )
        return FormationPlan(
            formation=best_kind,
            parameters=template.parameters,
            assignments=assignments,
            scores=best_scores,
        )

    def optimize_swarm_size(
        self,
        mission: Mission,
        agents: Sequence[Agent],
        mission_type: TaskType,
        min_size: int = 2,
        max_size: Optional[int] = None,
    ) -> SizeRecommendation:
        """Pick the swarm size with the best cost-benefit.

        Cost is size relative to max_size (or 20); a size whose overall
        gain over the previous size is below 0.05 takes a 20% penalty.

        Raises:
            InfeasibleRequestError: fewer available agents than min_size
        """
        available = [a for a in agents if a.is_available]
        upper = min(len(available), MAX_SWARM_SIZE) if max_size is None else min(max_size, len(available))
        if upper < min_size:
            raise InfeasibleRequestError(
                f"need at least {min_size} available agents, have {len(available)}"
            )

        ranked = sorted(available, key=lambda a: (-suitability_score(a, mission_type), a.agent_id))
        cost_norm = max_size or MAX_SWARM_SIZE

        evaluations = []
        for size in range(min_size, upper + 1):
            projection = project_size_performance(size, mission_type, mission.threat_level)
            cost_benefit = projection.overall / max(size / cost_norm, 0.1)
            evaluations.append((size, projection, cost_benefit))

        best_index = 0
        best_score = 0.0
        for i, (size, projection, cost_benefit) in enumerate(evaluations):
            score = cost_benefit
            if i > 0 and projection.overall - evaluations[i - 1][1].overall < 0.05:
                score *= 0.8
            if score > best_score:
                best_index, best_score = i, score

        size, projection, cost_benefit = evaluations[best_index]
        reasons = [
            f"Optimal size of {size} agents provides best cost-benefit ratio ({cost_benefit:.2f})",
            f"Expected overall performance: {projection.overall * 100:.1f}%",
        ]
        if best_index > 0:
            prev_size, prev, _ = evaluations[best_index - 1]
            reasons.append(
                f"{(projection.overall - prev.overall) * 100:.1f}% performance improvement over {prev_size} agents"
            )
        if best_index + 1 < len(evaluations):
            next_size, nxt, _ = evaluations[best_index + 1]
            reasons.append(
                f"Diminishing returns: only {(nxt.overall - projection.overall) * 100:.1f}% "
                f"additional performance from {next_size} agents"
            )

        return SizeRecommendation(
            size=size,
            agents=tuple(ranked[:size]),
            justification=". ".join(reasons),
            projection=projection,
            cost_benefit=cost_benefit,
        )
