"""Formation and multi-agent coordination.

This package provides:
- Formation geometry for eight formation kinds
- Transition planning with conflict-aware waypoints
- Rule-based adaptation to weather, obstacles and mission type
- Formation lifecycle management
- Flocking, collision avoidance and formation-keeping forces
- Leadership scoring and quorum elections
- Emergent pattern detection
"""

from .formations import (
    FORMATION_LIMITS,
    FormationCalculator,
    FormationTransition,
    positions_for,
    build_template,
    clamp_count,
    is_feasible,
    rotate,
)

from .transitions import (
    SlotAssignment,
    TransitionPlan,
    TransitionPlanner,
    cost_matrix,
    greedy_assignment,
    optimal_assignment,
)

from .adaptive import (
    AdaptiveFormationController,
    wind_bearing,
)

from .formation_manager import (
    FormationManager,
    FormationState,
    FormationUpdate,
    formations_differ,
)

from .flocking import (
    AgentForces,
    CollisionRisk,
    FlockingForces,
    ForceComputer,
    avoidance_force,
    collision_warning,
    compute_agent_forces,
    detect_collision_risks,
    flocking_forces,
    formation_force,
)

from .leadership import (
    ElectionResult,
    LeaderElection,
    consensus_proposal,
    leadership_score,
    quorum_size,
    select_backup_leaders,
)

from .emergent import (
    EmergentPatterns,
    detect_patterns,
    flocking_state,
)

__all__ = [
    # Formations
    "FORMATION_LIMITS",
    "FormationCalculator",
    "FormationTransition",
    "positions_for",
    "build_template",
    "clamp_count",
    "is_feasible",
    "rotate",
    # Transitions
    "SlotAssignment",
    "TransitionPlan",
    "TransitionPlanner",
    "cost_matrix",
    "greedy_assignment",
    "optimal_assignment",
    # Adaptation
    "AdaptiveFormationController",
    "wind_bearing",
    # Manager
    "FormationManager",
    "FormationState",
    "FormationUpdate",
    "formations_differ",
    # Forces
    "AgentForces",
    "CollisionRisk",
    "FlockingForces",
    "ForceComputer",
    "avoidance_force",
    "collision_warning",
    "compute_agent_forces",
    "detect_collision_risks",
    "flocking_forces",
    "formation_force",
    # Leadership
    "ElectionResult",
    "LeaderElection",
    "consensus_proposal",
    "leadership_score",
    "quorum_size",
    "select_backup_leaders",
    # Patterns
    "EmergentPatterns",
    "detect_patterns",
    "flocking_state",
]
