"""Unit tests for behavior profiles, strategies and the optimizer."""

import dataclasses

import pytest

from swarm_engine.core import (
    AgentCategory,
    AgentStatus,
    EnvironmentalData,
    FormationType,
    InfeasibleRequestError,
    Mission,
    Swarm,
    SwarmMetrics,
    SwarmParameters,
    TaskType,
)
from swarm_engine.optimization import (
    BUILTIN_PROFILES,
    BehaviorOptimizer,
    Objective,
    OperationalScenario,
    OptimizationConstraints,
    PerformanceRecord,
    PerformanceWeights,
    ScenarioObjective,
    project_performance,
    select_profile,
    strategy_for,
    suitability_score,
)
from swarm_engine.optimization.optimizer import (
    apply_constraints,
    behavior_adjustments,
    dominates,
    project_size_performance,
)
from swarm_engine.optimization.profiles import (
    DEFAULT_PROFILE,
    SEARCH_RESCUE_PROFILE,
    SURVEILLANCE_PROFILE,
)

TARGETS = {"cohesion": 0.8, "efficiency": 0.7, "adaptability": 0.6, "resilience": 0.7}


@pytest.fixture
def optimizer(clock):
    return BehaviorOptimizer(clock=clock)


def record(efficiency: float) -> PerformanceRecord:
    return PerformanceRecord(
        timestamp=0.0,
        parameters=SwarmParameters(),
        formation=FormationType.GRID,
        mission_type=TaskType.SURVEILLANCE,
        cohesion=0.8,
        efficiency=efficiency,
        safety=0.9,
        mission_success=0.8,
    )


class TestProfiles:
    """Tests for profile selection and strategies."""

    def test_select_by_mission_type(self):
        """Test the profile supporting the mission type is chosen."""
        assert select_profile(BUILTIN_PROFILES, TaskType.PATROL).profile_id == "surveillance"
        assert select_profile(BUILTIN_PROFILES, TaskType.ESCORT).profile_id == "combat"
        assert select_profile(BUILTIN_PROFILES, TaskType.SEARCH_AND_RESCUE).profile_id == (
            "search_rescue"
        )

    def test_fallback_to_default(self):
        """Test unsupported mission types use the default profile."""
        assert select_profile(BUILTIN_PROFILES, TaskType.RECONNAISSANCE) is DEFAULT_PROFILE

    def test_weather_decides_between_profiles(self):
        """Test the profile that tolerates the wind wins."""
        windy = dataclasses.replace(SURVEILLANCE_PROFILE, profile_id="windy", wind_threshold=40.0)
        profiles = [SURVEILLANCE_PROFILE, windy]

        gusty = EnvironmentalData(wind_speed=30.0)

        assert select_profile(profiles, TaskType.SURVEILLANCE, gusty) is windy
        assert select_profile(profiles, TaskType.SURVEILLANCE, EnvironmentalData()) is (
            SURVEILLANCE_PROFILE
        )
        assert select_profile(profiles, TaskType.SURVEILLANCE) is SURVEILLANCE_PROFILE

    def test_environment_score(self):
        """Test weather multipliers."""
        assert SURVEILLANCE_PROFILE.environment_score(EnvironmentalData()) == pytest.approx(1.32)
        bad = EnvironmentalData(wind_speed=30.0, visibility=0.5)
        assert SURVEILLANCE_PROFILE.environment_score(bad) == pytest.approx(0.64)

    def test_surveillance_strategy_wind(self):
        """Test surveillance widens spacing in strong wind."""
        params, formation = strategy_for(TaskType.SURVEILLANCE).optimize(
            SwarmParameters(), SURVEILLANCE_PROFILE, EnvironmentalData(wind_speed=22.0), []
        )

        assert formation == FormationType.GRID
        assert params.spacing == pytest.approx(36.0)
        assert params.cohesion == pytest.approx(0.7)

    def test_weather_overrides(self):
        """Test wind then visibility overrides replace profile parameters."""
        storm = EnvironmentalData(wind_speed=30.0, visibility=0.5)

        params = SURVEILLANCE_PROFILE.adapted_parameters(storm)

        assert params.spacing == 25.0
        assert params.cohesion == 0.7
        assert params.communication_range == 250.0
        assert SURVEILLANCE_PROFILE.adapted_parameters(None) is SURVEILLANCE_PROFILE.parameters
        assert SURVEILLANCE_PROFILE.adapted_parameters(EnvironmentalData()) == (
            SURVEILLANCE_PROFILE.parameters
        )

    def test_strategy_starts_from_overrides(self):
        """Test strong wind applies the profile override before widening."""
        params, _ = strategy_for(TaskType.SURVEILLANCE).optimize(
            SwarmParameters(), SURVEILLANCE_PROFILE, EnvironmentalData(wind_speed=30.0), []
        )

        assert params.spacing == pytest.approx(42.0)
        assert params.cohesion == pytest.approx(0.8)

    def test_default_strategy_uses_preferred_formation(self):
        """Test the default strategy flies the profile's first formation."""
        vee_first = dataclasses.replace(DEFAULT_PROFILE, formations=(FormationType.VEE,))
        unranked = dataclasses.replace(DEFAULT_PROFILE, formations=())

        _, formation = strategy_for(TaskType.PATROL).optimize(SwarmParameters(), vee_first, None, [])
        _, fallback = strategy_for(TaskType.PATROL).optimize(SwarmParameters(), unranked, None, [])

        assert formation == FormationType.VEE
        assert fallback == FormationType.GRID

    def test_surveillance_strategy_history(self):
        """Test poor past efficiency speeds the swarm up."""
        params, _ = strategy_for(TaskType.SURVEILLANCE).optimize(
            SwarmParameters(), SURVEILLANCE_PROFILE, None, [record(0.5), record(0.6)]
        )
        assert params.speed == pytest.approx(13.2)

    def test_recon_and_escort_strategies(self):
        """Test formation recommendations of the other strategies."""
        _, recon = strategy_for(TaskType.RECONNAISSANCE).optimize(
            SwarmParameters(), DEFAULT_PROFILE, None, []
        )
        _, escort = strategy_for(TaskType.ESCORT).optimize(
            SwarmParameters(), DEFAULT_PROFILE, None, []
        )
        _, patrol = strategy_for(TaskType.PATROL).optimize(
            SwarmParameters(), DEFAULT_PROFILE, None, []
        )

        assert recon == FormationType.ECHELON
        assert escort == FormationType.DIAMOND
        assert patrol == FormationType.GRID


class TestProjections:
    """Tests for closed-form performance projections."""

    def test_grid_surveillance(self):
        """Test base values plus formation and mission bonuses."""
        projection = project_performance(SwarmParameters(), FormationType.GRID, TaskType.SURVEILLANCE)

        assert projection.cohesion == pytest.approx(0.85)
        assert projection.efficiency == pytest.approx(0.9)
        assert projection.safety == pytest.approx(0.9)
        assert projection.mission_success == pytest.approx(0.75)
        assert projection.overall == pytest.approx(0.85)
        assert projection.confidence == 0.8

    def test_clamped(self):
        """Test values never exceed 1."""
        projection = project_performance(
            SwarmParameters(), FormationType.DIAMOND, TaskType.ESCORT
        )
        assert projection.safety == 1.0

    def test_weather_penalties(self):
        """Test wind and low visibility degrade the projection."""
        bad = EnvironmentalData(wind_speed=25.0, visibility=0.5)

        projection = project_performance(
            SwarmParameters(), FormationType.GRID, TaskType.SURVEILLANCE, bad
        )

        assert projection.cohesion == pytest.approx(0.765)
        assert projection.efficiency == pytest.approx(0.81)
        assert projection.safety == pytest.approx(0.9 * 0.95 * 0.9)

    def test_behavior_adjustments(self):
        """Test only changes above 5% are reported."""
        adjustments = behavior_adjustments(
            SwarmParameters(), SwarmParameters(spacing=30.0, speed=15.5)
        )

        assert [a.parameter for a in adjustments] == ["spacing"]
        assert adjustments[0].percent_change == pytest.approx(20.0)
        assert adjustments[0].reason.startswith("Increased spacing")

    def test_apply_constraints(self):
        """Test hard limits on speed, spacing and formation."""
        constraints = OptimizationConstraints(
            max_speed=10.0, min_spacing=40.0, required_formations=(FormationType.VEE,)
        )

        params, formation = apply_constraints(SwarmParameters(), FormationType.GRID, constraints)

        assert params.speed == 10.0
        assert params.spacing == 40.0
        assert formation == FormationType.VEE
        assert apply_constraints(SwarmParameters(), FormationType.GRID, None) == (
            SwarmParameters(), FormationType.GRID
        )

    def test_dominates(self):
        """Test Pareto dominance."""
        names = ["a", "b"]
        assert dominates({"a": 1, "b": 1}, {"a": 1, "b": 0}, names)
        assert not dominates({"a": 1, "b": 1}, {"a": 1, "b": 1}, names)
        assert not dominates({"a": 1, "b": 0}, {"a": 0, "b": 1}, names)

    def test_size_projection_grows(self):
        """Test larger swarms project better overall."""
        small = project_size_performance(2, TaskType.PATROL, 0)
        large = project_size_performance(10, TaskType.PATROL, 0)

        assert large.overall > small.overall
        assert small.confidence == 0.7


class TestMissionOptimization:
    """Tests for optimize_for_mission."""

    def test_surveillance(self, optimizer):
        """Test surveillance uses the surveillance profile in a grid."""
        swarm = Swarm(swarm_id="alpha")

        result = optimizer.optimize_for_mission(swarm, TaskType.SURVEILLANCE)

        assert result.profile_id == "surveillance"
        assert result.formation == FormationType.GRID
        assert result.parameters == SURVEILLANCE_PROFILE.parameters
        assert {a.parameter for a in result.adjustments} >= {"spacing", "altitude", "speed"}

    def test_escort(self, optimizer):
        """Test escort tightens cohesion and widens the safety radius."""
        result = optimizer.optimize_for_mission(Swarm(swarm_id="alpha"), TaskType.ESCORT)

        assert result.profile_id == "combat"
        assert result.formation == FormationType.DIAMOND
        assert result.parameters.cohesion == pytest.approx(0.9)
        assert result.parameters.collision_avoidance_radius == pytest.approx(24.0)

    def test_constraints_applied(self, optimizer):
        """Test constraints bound the optimized result."""
        constraints = OptimizationConstraints(max_speed=10.0)

        result = optimizer.optimize_for_mission(
            Swarm(swarm_id="alpha"), TaskType.SURVEILLANCE, constraints=constraints
        )

        assert result.parameters.speed == 10.0

    def test_score_uses_profile_weights(self, optimizer, clock):
        """Test the mission score weighs the projection by the profile weights."""
        safety_only = dataclasses.replace(
            SURVEILLANCE_PROFILE,
            weights=PerformanceWeights(cohesion=0.0, efficiency=0.0, safety=1.0, mission_success=0.0),
        )
        swarm = Swarm(swarm_id="alpha")

        result = optimizer.optimize_for_mission(swarm, TaskType.SURVEILLANCE)
        weighted = BehaviorOptimizer(profiles=[safety_only], clock=clock).optimize_for_mission(
            swarm, TaskType.SURVEILLANCE
        )

        assert result.score == pytest.approx(
            SURVEILLANCE_PROFILE.weights.score(result.projection.as_dict())
        )
        assert weighted.score == pytest.approx(weighted.projection.safety)

    def test_preferred_formation(self, optimizer, clock):
        """Test missions without a strategy fly the profile's first formation."""
        vee_first = dataclasses.replace(DEFAULT_PROFILE, formations=(FormationType.VEE,))
        custom = BehaviorOptimizer(profiles=[], default_profile=vee_first, clock=clock)
        swarm = Swarm(swarm_id="alpha")

        assert optimizer.optimize_for_mission(swarm, TaskType.FORMATION_FLIGHT).formation == (
            FormationType.GRID
        )
        assert custom.optimize_for_mission(swarm, TaskType.FORMATION_FLIGHT).formation == (
            FormationType.VEE
        )

    def test_weather_override_applied(self, optimizer):
        """Test strong wind swaps in the profile's wind parameters."""
        result = optimizer.optimize_for_mission(
            Swarm(swarm_id="alpha"), TaskType.SURVEILLANCE, EnvironmentalData(wind_speed=30.0)
        )

        assert result.parameters.spacing == pytest.approx(42.0)
        assert result.parameters.cohesion == pytest.approx(0.8)

    def test_history_is_bounded(self, optimizer):
        """Test the performance history keeps the latest 100 records."""
        for i in range(120):
            optimizer.record_performance("alpha", record(i / 120))

        history = optimizer.history("alpha")
        assert len(history) == 100
        assert history[0].efficiency == pytest.approx(20 / 120)
        assert optimizer.history("other") == []


class TestAdaptiveTuning:
    """Tests for gap-driven parameter tuning."""

    def test_bottlenecks_drive_adjustments(self, optimizer):
        """Test the largest gaps become bottlenecks with bounded deltas."""
        swarm = Swarm(swarm_id="alpha")
        metrics = SwarmMetrics(cohesion=0.5, efficiency=0.65, adaptability=0.6, resilience=0.3)

        result = optimizer.adaptive_tuning(swarm, metrics, TaskType.PATROL, TARGETS)

        assert [b.metric for b in result.bottlenecks] == ["resilience", "cohesion"]
        assert result.reason == "resilience, cohesion"
        assert result.adjustments["separation"] == pytest.approx(17.0)
        assert result.adjustments["collision_avoidance_radius"] == pytest.approx(24.0)
        assert result.adjustments["cohesion"] == pytest.approx(0.76)
        assert result.adjustments["communication_range"] == pytest.approx(206.0)
        assert "speed" not in result.adjustments
        expected = (2 / 15 + 4 / 20 + 0.06 / 0.7 + 0.03) / 4
        assert result.expected_improvement == pytest.approx(expected)

    def test_apply(self, optimizer):
        """Test applying a tuning result derives new parameters."""
        swarm = Swarm(swarm_id="alpha")
        metrics = SwarmMetrics(cohesion=0.8, efficiency=0.4, adaptability=0.6, resilience=0.7)

        result = optimizer.adaptive_tuning(swarm, metrics, TaskType.PATROL, TARGETS)
        params = result.apply(swarm.parameters)

        assert params.speed == pytest.approx(16.5)
        assert params.spacing == pytest.approx(23.5)
        assert swarm.parameters.speed == 15.0

    def test_no_gaps(self, optimizer):
        """Test metrics at target change nothing."""
        swarm = Swarm(swarm_id="alpha")
        metrics = SwarmMetrics(cohesion=0.9, efficiency=0.9, adaptability=0.9, resilience=0.9)

        result = optimizer.adaptive_tuning(swarm, metrics, TaskType.PATROL, TARGETS)

        assert result.adjustments == {}
        assert result.expected_improvement == 0.0
        assert result.apply(swarm.parameters) is swarm.parameters


class TestMultiObjective:
    """Tests for the seeded Pareto search."""

    OBJECTIVES = [Objective("cohesion", weight=2.0), Objective("efficiency")]

    def test_same_seed_same_result(self, optimizer):
        """Test the search is reproducible for a fixed seed."""
        swarm = Swarm(swarm_id="alpha")

        first = optimizer.multi_objective_optimization(swarm, self.OBJECTIVES, TaskType.PATROL, seed=7)
        second = optimizer.multi_objective_optimization(swarm, self.OBJECTIVES, TaskType.PATROL, seed=7)

        assert first.recommended == second.recommended
        assert len(first.front) == len(second.front)

    def test_front_is_non_dominated(self, optimizer):
        """Test no front member dominates another."""
        result = optimizer.multi_objective_optimization(
            Swarm(swarm_id="alpha"), self.OBJECTIVES, TaskType.PATROL, samples=30
        )
        names = ["cohesion", "efficiency"]

        assert result.front
        for a in result.front:
            assert a.dominance_rank == 0
            for b in result.front:
                assert not dominates(a.objective_values, b.objective_values, names)
        assert set(result.tradeoffs) == set(names)
        assert result.recommended in [c.parameters for c in result.front]

    def test_unknown_objective(self, optimizer):
        """Test unknown objective names score a flat 0.5."""
        result = optimizer.multi_objective_optimization(
            Swarm(swarm_id="alpha"), [Objective("stealth")], TaskType.PATROL, samples=5
        )

        assert result.tradeoffs == {"stealth": 0.0}
        assert len(result.front) == 5

    def test_profile_weights_by_default(self, optimizer):
        """Test omitted objectives fall back to the mission profile's weights."""
        result = optimizer.multi_objective_optimization(
            Swarm(swarm_id="alpha"), None, TaskType.SEARCH_AND_RESCUE, samples=20
        )
        weights = SEARCH_RESCUE_PROFILE.weights
        expected = max(result.front, key=lambda c: weights.score(c.objective_values))

        assert set(result.tradeoffs) == {"cohesion", "efficiency", "safety", "mission_success"}
        assert result.recommended == expected.parameters

    def test_invalid_requests(self, optimizer):
        """Test empty objectives and non-positive samples are rejected."""
        swarm = Swarm(swarm_id="alpha")
        with pytest.raises(ValueError):
            optimizer.multi_objective_optimization(swarm, [], TaskType.PATROL)
        with pytest.raises(ValueError):
            optimizer.multi_objective_optimization(swarm, self.OBJECTIVES, TaskType.PATROL, samples=0)


class TestFormationAndSize:
    """Tests for formation choice, roles and swarm sizing."""

    @pytest.fixture
    def team(self, make_agent):
        categories = [
            AgentCategory.SURVEILLANCE,
            AgentCategory.SURVEILLANCE,
            AgentCategory.RECONNAISSANCE,
            AgentCategory.TRANSPORT,
            AgentCategory.ATTACK,
            AgentCategory.MULTI_ROLE,
        ]
        return [
            make_agent(f"u{i}", (i * 30.0, 0.0), category=c, mission_count=10 * (6 - i))
            for i, c in enumerate(categories)
        ]

    def test_protection_prefers_diamond(self, optimizer, team):
        """Test a protection scenario chooses the safest formation."""
        swarm = Swarm(swarm_id="alpha", agent_ids=tuple(a.agent_id for a in team))

        plan = optimizer.optimize_formation(
            swarm, OperationalScenario(ScenarioObjective.PROTECTION), team
        )

        assert plan.formation == FormationType.DIAMOND
        assert plan.scores.safety == pytest.approx(1.08)
        assert len(plan.assignments) == 6

    def test_roles(self, optimizer, team):
        """Test the most experienced agent leads and roles follow category."""
        swarm = Swarm(swarm_id="alpha", agent_ids=tuple(a.agent_id for a in team))

        plan = optimizer.optimize_formation(
            swarm, OperationalScenario(ScenarioObjective.PROTECTION), team
        )
        roles = {a.agent_id: a.role for a in plan.assignments}

        assert roles == {
            "u0": "leader",
            "u1": "sub_leader",
            "u2": "sub_leader",
            "u3": "follower",
            "u4": "guardian",
            "u5": "follower",
        }

    def test_transport_follows_preferred_formations(self, optimizer, clock, team):
        """Test formations the scenario profile prefers win close calls."""
        swarm = Swarm(swarm_id="alpha", agent_ids=tuple(a.agent_id for a in team))
        scenario = OperationalScenario(ScenarioObjective.TRANSPORT)
        line_first = dataclasses.replace(DEFAULT_PROFILE, formations=(FormationType.LINE,))
        custom = BehaviorOptimizer(default_profile=line_first, clock=clock)

        assert optimizer.optimize_formation(swarm, scenario, team).formation == FormationType.GRID
        assert custom.optimize_formation(swarm, scenario, team).formation == FormationType.LINE

    def test_formation_needs_members(self, optimizer, make_agent):
        """Test a single member cannot form anything."""
        swarm = Swarm(swarm_id="alpha", agent_ids=("a",))
        with pytest.raises(InfeasibleRequestError):
            optimizer.optimize_formation(
                swarm, OperationalScenario(ScenarioObjective.TRANSPORT), [make_agent("a")]
            )

    def test_suitability(self, make_agent):
        """Test category compatibility and status feed suitability."""
        sensor = make_agent("s", category=AgentCategory.SURVEILLANCE)
        hauler = make_agent("t", category=AgentCategory.TRANSPORT)
        idle = make_agent("i", category=AgentCategory.SURVEILLANCE, status=AgentStatus.IDLE)

        assert suitability_score(sensor, TaskType.SURVEILLANCE) == pytest.approx(100.0)
        assert suitability_score(hauler, TaskType.SURVEILLANCE) == pytest.approx(76.0)
        assert suitability_score(idle, TaskType.SURVEILLANCE) == pytest.approx(110.0)

    def test_swarm_size(self, optimizer, team):
        """Test small swarms win on cost and the best-suited agents are picked."""
        mission = Mission("m1", "Area surveillance")

        recommendation = optimizer.optimize_swarm_size(mission, team, TaskType.SURVEILLANCE)

        assert recommendation.size == 2
        assert [a.agent_id for a in recommendation.agents] == ["u0", "u1"]
        assert recommendation.justification.startswith("Optimal size of 2 agents")
        assert "Diminishing returns" in recommendation.justification

    def test_swarm_size_infeasible(self, optimizer, make_agent):
        """Test too few available agents is rejected."""
        agents = [make_agent("a"), make_agent("b", status=AgentStatus.OFFLINE)]

        with pytest.raises(InfeasibleRequestError):
            optimizer.optimize_swarm_size(Mission("m1", "patrol"), agents, TaskType.PATROL)
