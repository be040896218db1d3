"""Unit tests for formation geometry, adaptation and the formation manager.

Run with: python scripts/run_tests.py --unit
"""

import math

import pytest

from swarm_engine.coordination import (
    AdaptiveFormationController,
    FormationCalculator,
    FormationManager,
    FormationState,
    FormationTransition,
    build_template,
    clamp_count,
    formations_differ,
    is_feasible,
    positions_for,
    rotate,
    wind_bearing,
)
from swarm_engine.core import (
    EnvironmentalData,
    FormationConfig,
    FormationNotInitializedError,
    FormationType,
    InfeasibleFormationError,
    Obstacle,
    Swarm,
    SwarmParameters,
    TaskType,
    Vector3,
)


def xy(positions):
    return [(round(p.x, 2), round(p.y, 2)) for p in positions]


class TestFormationGeometry:
    """Unit tests for the per-kind offset generators."""

    def test_grid_is_centered(self):
        """Test 4 agents form a 2x2 grid around the origin."""
        positions = positions_for(FormationType.GRID, 4, 10.0)

        assert xy(positions) == [(-5.0, -5.0), (5.0, -5.0), (-5.0, 5.0), (5.0, 5.0)]

    def test_circle_radius(self):
        """Test circle radius gives each agent one spacing of arc."""
        positions = positions_for(FormationType.CIRCLE, 5, 25.0)

        expected_radius = 25.0 * 5 / (2 * math.pi)
        assert expected_radius == pytest.approx(19.89, abs=0.01)
        for p in positions:
            assert p.magnitude() == pytest.approx(expected_radius)
        assert positions[0].x == pytest.approx(expected_radius)
        assert positions[0].y == pytest.approx(0.0, abs=1e-9)

    def test_line_along_x(self):
        """Test line formation is centered along X."""
        positions = positions_for(FormationType.LINE, 3, 10.0)

        assert xy(positions) == [(-10.0, 0.0), (0.0, 0.0), (10.0, 0.0)]

    def test_column_front_first(self):
        """Test column puts index 0 at the front."""
        positions = positions_for(FormationType.COLUMN, 3, 10.0)

        assert xy(positions) == [(0.0, 10.0), (0.0, 0.0), (0.0, -10.0)]

    def test_vee_wings_alternate(self):
        """Test vee apex at origin with wings alternating right and left."""
        positions = positions_for(FormationType.VEE, 5, 20.0)

        assert xy(positions) == [
            (0.0, 0.0),
            (-10.0, 17.32),
            (-10.0, -17.32),
            (-20.0, 34.64),
            (-20.0, -34.64),
        ]

    def test_diamond_outer_ring(self):
        """Test diamond fills the core then an outer ring at 1.5x spacing."""
        positions = positions_for(FormationType.DIAMOND, 7, 10.0)

        assert xy(positions[:5]) == [
            (0.0, 0.0), (0.0, 10.0), (0.0, -10.0), (-10.0, 0.0), (10.0, 0.0)
        ]
        assert xy(positions[5:]) == [(15.0, 0.0), (-15.0, 0.0)]

    def test_wedge_layers(self):
        """Test wedge layers step back by one spacing."""
        positions = positions_for(FormationType.WEDGE, 5, 10.0)

        assert xy(positions) == [
            (0.0, -10.0), (0.0, 0.0), (0.0, 10.0), (-10.0, -10.0), (-10.0, 0.0)
        ]

    def test_echelon_diagonal(self):
        """Test echelon steps back diagonally."""
        positions = positions_for(FormationType.ECHELON, 3, 10.0)

        assert xy(positions) == [(0.0, 0.0), (-5.0, -8.66), (-10.0, -17.32)]

    def test_offsets_on_ground_plane(self):
        """Test every generator leaves z at zero."""
        for formation_type in FormationType:
            for p in positions_for(formation_type, 6, 25.0):
                assert p.z == 0.0

    def test_zero_agents(self):
        """Test zero agents gives no offsets."""
        assert FormationCalculator().calculate(FormationType.LINE, 0, 10.0) == []

    def test_generators_are_deterministic(self):
        """Test same inputs give same ordered offsets."""
        for formation_type in FormationType:
            assert positions_for(formation_type, 9, 20.0) == positions_for(formation_type, 9, 20.0)

    def test_rotate_quarter_turn(self):
        """Test rotation about the vertical axis."""
        rotated = rotate([Vector3(10.0, 0.0, 5.0)], 90.0)

        assert rotated[0].x == pytest.approx(0.0, abs=1e-9)
        assert rotated[0].y == pytest.approx(10.0)
        assert rotated[0].z == 5.0

    def test_rotate_zero_is_identity(self):
        """Test zero heading leaves offsets unchanged."""
        positions = positions_for(FormationType.VEE, 3, 10.0)
        assert rotate(positions, 0.0) == positions


class TestFormationLimits:
    """Tests for feasibility checks and template generation."""

    def test_feasibility(self):
        """Test per-kind agent count ranges."""
        assert is_feasible(FormationType.VEE, 3)
        assert not is_feasible(FormationType.VEE, 2)
        assert not is_feasible(FormationType.DIAMOND, 21)
        assert is_feasible(FormationType.GRID, 100)

    def test_clamp_count(self):
        """Test clamping to the nearest supported count."""
        assert clamp_count(FormationType.CIRCLE, 1) == 3
        assert clamp_count(FormationType.LINE, 40) == 30
        assert clamp_count(FormationType.GRID, 12) == 12

    def test_build_template_rejects_too_few(self):
        """Test vee with two agents is infeasible."""
        with pytest.raises(InfeasibleFormationError) as exc_info:
            build_template(FormationType.VEE, 2)

        assert exc_info.value.min_agents == 3
        assert exc_info.value.count == 2
        assert isinstance(exc_info.value, ValueError)

    def test_build_template_rejects_too_many(self):
        """Test grid above its maximum is infeasible."""
        with pytest.raises(InfeasibleFormationError):
            build_template(FormationType.GRID, 101)

    def test_build_template_records_parameters(self):
        """Test template carries kind, limits and parameters."""
        params = SwarmParameters(spacing=30.0)
        template = build_template(FormationType.WEDGE, 6, params, heading=45.0)

        assert template.formation == FormationType.WEDGE
        assert template.size == 6
        assert (template.min_agents, template.max_agents) == (3, 40)
        assert template.parameters == params
        assert template.heading == 45.0

    def test_circle_spacing_floor(self):
        """Test circle raises spacing to 20 m."""
        template = build_template(FormationType.CIRCLE, 3, SwarmParameters(spacing=10.0))

        assert template.parameters.spacing == 20.0
        assert template.positions[0].magnitude() == pytest.approx(20.0 * 3 / (2 * math.pi))

    def test_template_translation(self):
        """Test translated template moves every slot."""
        template = build_template(FormationType.LINE, 2, SwarmParameters(spacing=10.0))
        moved = template.translated(Vector3(100.0, 0.0, 50.0))

        assert xy(moved.positions) == [(95.0, 0.0), (105.0, 0.0)]
        assert all(p.z == 50.0 for p in moved.positions)
        assert xy(template.positions) == [(-5.0, 0.0), (5.0, 0.0)]


class TestFormationTransition:
    """Tests for the cosine-eased transition preview."""

    def test_start_mid_end(self):
        """Test interpolation at start, midpoint and end."""
        transition = FormationTransition(
            start_positions=(Vector3(0.0, 0.0, 0.0),),
            end_positions=(Vector3(10.0, 0.0, 0.0),),
            duration=4.0,
        )

        assert transition.get_positions_at_time(0.0)[0].x == pytest.approx(0.0)
        assert transition.get_positions_at_time(2.0)[0].x == pytest.approx(5.0)
        assert transition.get_positions_at_time(10.0)[0].x == pytest.approx(10.0)

    def test_is_complete(self):
        """Test completion check."""
        transition = FormationTransition((), (), duration=5.0)

        assert not transition.is_complete(4.9)
        assert transition.is_complete(5.0)

    def test_zero_duration(self):
        """Test zero duration jumps to the end layout."""
        end = (Vector3(1.0, 2.0, 3.0),)
        transition = FormationTransition((Vector3(),), end, duration=0.0)

        assert transition.get_positions_at_time(0.0) == list(end)


class TestAdaptiveFormation:
    """Tests for weather, mission and obstacle adaptation."""

    @pytest.fixture
    def controller(self):
        return AdaptiveFormationController()

    @pytest.fixture
    def grid(self):
        return build_template(FormationType.GRID, 4, SwarmParameters())

    def test_wind_bearing(self):
        """Test compass points map to bearings."""
        assert wind_bearing("E") == 90.0
        assert wind_bearing("sw") == 225.0
        assert wind_bearing("XYZ") == 0.0

    def test_no_environment(self, controller, grid):
        """Test unknown weather leaves the template untouched."""
        assert controller.adapt_to_environment(grid, None) is grid

    def test_calm_weather(self, controller, grid):
        """Test calm weather returns the same template."""
        assert controller.adapt_to_environment(grid, EnvironmentalData()) is grid

    def test_high_wind(self, controller, grid):
        """Test high wind widens spacing and turns into the wind."""
        adapted = controller.adapt_to_environment(
            grid, EnvironmentalData(wind_speed=25.0, wind_direction="E")
        )

        assert adapted.parameters.spacing == pytest.approx(30.0)
        assert adapted.parameters.separation == pytest.approx(22.5)
        assert adapted.heading == 90.0
        assert grid.parameters.spacing == 25.0

    def test_low_visibility(self, controller, grid):
        """Test low visibility tightens spacing and extends comms."""
        adapted = controller.adapt_to_environment(grid, EnvironmentalData(visibility=0.5))

        assert adapted.parameters.spacing == pytest.approx(20.0)
        assert adapted.parameters.communication_range == pytest.approx(240.0)

    def test_escort_prefers_diamond(self, controller, grid):
        """Test escort switches non-protective formations to diamond."""
        adapted = controller.optimize_for_mission(grid, TaskType.ESCORT)
        assert adapted.formation == FormationType.DIAMOND

    def test_escort_keeps_protective(self, controller):
        """Test escort keeps a formation that is already protective."""
        vee = build_template(FormationType.VEE, 5)
        assert controller.optimize_for_mission(vee, TaskType.ESCORT) is vee

    def test_surveillance_widens(self, controller, grid):
        """Test surveillance keeps grid but widens spacing."""
        adapted = controller.optimize_for_mission(grid, TaskType.SURVEILLANCE)

        assert adapted.formation == FormationType.GRID
        assert adapted.parameters.spacing == pytest.approx(37.5)

    def test_surveillance_switches_to_line(self, controller):
        """Test surveillance turns non-grid formations into a line."""
        vee = build_template(FormationType.VEE, 5)
        assert controller.optimize_for_mission(vee, TaskType.SURVEILLANCE).formation == (
            FormationType.LINE
        )

    def test_reconnaissance_echelon(self, controller, grid):
        """Test reconnaissance uses echelon."""
        adapted = controller.optimize_for_mission(grid, TaskType.RECONNAISSANCE)
        assert adapted.formation == FormationType.ECHELON

    def test_patrol_keeps_column(self, controller):
        """Test patrol keeps column formation."""
        column = build_template(FormationType.COLUMN, 4)
        assert controller.optimize_for_mission(column, TaskType.PATROL) is column

    def test_threat_tightens(self, controller, grid):
        """Test threat level above 2 tightens the formation."""
        adapted = controller.optimize_for_mission(grid, None, threat_level=3)

        assert adapted.parameters.spacing == pytest.approx(20.0)
        assert adapted.parameters.cohesion == pytest.approx(0.84)
        assert adapted.parameters.communication_range == pytest.approx(220.0)

    def test_infeasible_overlay_keeps_kind(self, controller):
        """Test overlay keeps the current kind when the new one cannot hold the swarm."""
        big_grid = build_template(FormationType.GRID, 22)
        adapted = controller.optimize_for_mission(big_grid, TaskType.ESCORT)

        assert adapted.formation == FormationType.GRID
        assert adapted.size == 22

    def test_obstacle_push(self, controller):
        """Test slots inside an obstacle's clearance are pushed out."""
        template = build_template(FormationType.GRID, 4, SwarmParameters(spacing=10.0))
        center = Vector3(0.0, 0.0, 100.0)
        obstacle = Obstacle(position=Vector3(5.0, 5.0, 100.0), radius=5.0)

        adapted = controller.avoid_obstacles(template, [obstacle], center)

        for offset in adapted.positions:
            assert (center + offset).distance_to(obstacle.position) >= 25.0
        assert adapted.formation == FormationType.GRID

    def test_no_obstacles(self, controller, grid):
        """Test no obstacles returns the same template."""
        assert controller.avoid_obstacles(grid, [], Vector3()) is grid


class TestFormationManager:
    """Tests for the formation lifecycle."""

    @pytest.fixture
    def manager(self, clock):
        return FormationManager(FormationConfig(), clock=clock)

    def test_update_before_initialize(self, manager, swarm, line_agents):
        """Test update without initialize raises."""
        with pytest.raises(FormationNotInitializedError):
            manager.update(swarm, line_agents)

    def test_initialize_centers_on_agents(self, manager, swarm, line_agents):
        """Test initial template is centered on the members at swarm altitude."""
        template = manager.initialize(swarm, line_agents)

        assert manager.state == FormationState.STABLE
        assert template.formation == FormationType.GRID
        assert template.size == 6
        assert manager.center == Vector3(75.0, 0.0, 100.0)
        assert template.positions[0] == Vector3(50.0, -12.5, 100.0)

    def test_unchanged_update(self, manager, swarm, line_agents):
        """Test update with nothing changed plans no transition."""
        manager.initialize(swarm, line_agents)
        result = manager.update(swarm, line_agents)

        assert not result.changed
        assert result.commands == ()
        assert 0.0 <= result.stability <= 1.0

    def test_change_formation(self, manager, swarm, line_agents):
        """Test switching kind plans a transition with one command per agent."""
        manager.initialize(swarm, line_agents)
        result = manager.change_formation(swarm, line_agents, FormationType.LINE)

        assert result.changed
        assert len(result.commands) == 6
        assert result.state == FormationState.TRANSITIONING
        assert swarm.formation == FormationType.LINE
        assert manager.template.formation == FormationType.LINE

    def test_change_deferred_during_transition(self, manager, swarm, line_agents):
        """Test a second change waits for the in-flight transition."""
        manager.initialize(swarm, line_agents)
        manager.change_formation(swarm, line_agents, FormationType.LINE)

        swarm.formation = FormationType.CIRCLE
        result = manager.update(swarm, line_agents)

        assert not result.changed
        assert manager.template.formation == FormationType.LINE

    def test_forced_change_supersedes(self, manager, swarm, line_agents):
        """Test a forced change marks the previous plan stale."""
        manager.initialize(swarm, line_agents)
        first = manager.change_formation(swarm, line_agents, FormationType.LINE)
        second = manager.change_formation(swarm, line_agents, FormationType.CIRCLE)

        assert second.changed
        assert manager.is_stale(first.plan.plan_id)
        assert not manager.is_stale(second.plan.plan_id)

    def test_transition_completes(self, manager, swarm, line_agents, clock):
        """Test the manager returns to stable after the transition deadline."""
        manager.initialize(swarm, line_agents)
        manager.change_formation(swarm, line_agents, FormationType.LINE)

        clock.advance(3600.0)
        result = manager.update(swarm, line_agents)

        assert result.state == FormationState.STABLE
        assert manager.active_plan is None

    def test_stability_on_slots(self, manager, swarm, line_agents, make_agent):
        """Test agents sitting on their slots give stability 1."""
        template = manager.initialize(swarm, line_agents)
        on_slot = [
            make_agent(a.agent_id, p.as_tuple())
            for a, p in zip(line_agents, template.positions)
        ]

        assert manager.stability_score(on_slot) == pytest.approx(1.0)
        assert manager.slot_for("a0") == template.positions[0]
        assert manager.slot_for("nobody") is None

    def test_fallback_to_grid(self, manager, make_agent):
        """Test too few agents for the kind falls back to grid."""
        agents = [make_agent("a", (0, 0)), make_agent("b", (10, 0))]
        swarm = Swarm(swarm_id="s", agent_ids=("a", "b"), formation=FormationType.VEE)

        template = manager.initialize(swarm, agents)

        assert template.formation == FormationType.GRID
        assert template.size == 2

    def test_single_agent_infeasible(self, manager, make_agent):
        """Test a lone agent cannot form anything."""
        swarm = Swarm(swarm_id="s", agent_ids=("a",))
        with pytest.raises(InfeasibleFormationError):
            manager.initialize(swarm, [make_agent("a")])

    def test_formations_differ(self):
        """Test difference detection by kind, size and slot drift."""
        a = build_template(FormationType.LINE, 3, SwarmParameters(spacing=10.0))
        b = build_template(FormationType.LINE, 3, SwarmParameters(spacing=12.0))
        c = build_template(FormationType.LINE, 3, SwarmParameters(spacing=20.0))

        assert not formations_differ(a, b)
        assert formations_differ(a, c)
        assert formations_differ(a, build_template(FormationType.COLUMN, 3))
        assert formations_differ(a, build_template(FormationType.LINE, 4))
