"""Data model for agents, swarms, tasks, missions and metrics.

Snapshots received from telemetry (Agent) and generated layouts are
frozen dataclasses; use dataclasses.replace() (or the with_changes helpers)
to derive updated values. Records owned by the coordinator (Swarm, Task)
are mutable.
"""

import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .vector import Vector3


class AgentCategory(Enum):
    """Agent airframe/mission category."""
    SURVEILLANCE = "surveillance"
    RECONNAISSANCE = "reconnaissance"
    ATTACK = "attack"
    TRANSPORT = "transport"
    MULTI_ROLE = "multi_role"


class AgentStatus(Enum):
    """Operational status reported by telemetry."""
    ACTIVE = "active"
    IDLE = "idle"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


@dataclass(frozen=True)
class Agent:
    """Telemetry snapshot of one agent.

    Position, heading and speed are optional: an agent without them is
    left out of any computation that needs them rather than treated as
    sitting at the origin.

    Attributes:
        agent_id: Unique identifier
        category: Agent category (drives capabilities and leadership score)
        status: Operational status
        position: Current position (meters), None if unknown
        heading: Heading in degrees, None if unknown
        speed: Ground speed (m/s), None if unknown
        battery: Battery level (0-100)
        signal: Link quality (0-100)
        mission_count: Completed missions, used as an experience measure
        next_maintenance: Unix timestamp of next scheduled maintenance
    """
    agent_id: str
    category: AgentCategory = AgentCategory.MULTI_ROLE
    status: AgentStatus = AgentStatus.ACTIVE
    position: Optional[Vector3] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    battery: float = 100.0
    signal: float = 100.0
    mission_count: int = 0
    next_maintenance: Optional[float] = None

    @property
    def velocity(self) -> Optional[Vector3]:
        """Velocity vector, None unless both heading and speed are known."""
        if self.heading is None or self.speed is None:
            return None
        return Vector3.from_heading(self.heading, self.speed)

    @property
    def altitude(self) -> Optional[float]:
        return self.position.z if self.position is not None else None

    @property
    def is_available(self) -> bool:
        return self.status in (AgentStatus.ACTIVE, AgentStatus.IDLE)

    @property
    def is_active(self) -> bool:
        return self.status == AgentStatus.ACTIVE

    @property
    def has_position(self) -> bool:
        return self.position is not None

    def with_changes(self, **changes) -> "Agent":
        return replace(self, **changes)


class FormationType(Enum):
    """Available formation kinds."""
    GRID = "grid"
    CIRCLE = "circle"
    LINE = "line"
    VEE = "vee"
    DIAMOND = "diamond"
    WEDGE = "wedge"
    ECHELON = "echelon"
    COLUMN = "column"


class SwarmBehavior(Enum):
    FLOCKING = "flocking"
    CONSENSUS = "consensus"
    HIERARCHICAL = "hierarchical"
    DISTRIBUTED = "distributed"
    EMERGENT = "emergent"


class CoordinationMode(Enum):
    LEADER_FOLLOWER = "leader_follower"
    CONSENSUS_BASED = "consensus_based"
    DISTRIBUTED_AUTONOMOUS = "distributed_autonomous"
    HYBRID = "hybrid"


class SwarmStatus(Enum):
    FORMING = "forming"
    ACTIVE = "active"
    STANDBY = "standby"
    DISPERSING = "dispersing"
    EMERGENCY = "emergency"
    REFORMED = "reformed"


@dataclass(frozen=True)
class SwarmParameters:
    """Tunable swarm behavior parameters.

    Attributes:
        spacing: Nominal distance between neighbouring slots (meters)
        altitude: Formation altitude (meters)
        speed: Cruise speed (m/s)
        cohesion: Cohesion weight (0-1)
        separation: Minimum comfortable separation (meters)
        alignment: Alignment weight (0-1)
        adaptive_threshold: Change threshold that triggers adaptation (0-1)
        collision_avoidance_radius: Radius used around obstacles (meters)
        communication_range: Neighbour radius for local rules (meters)
    """
    spacing: float = 25.0
    altitude: float = 100.0
    speed: float = 15.0
    cohesion: float = 0.7
    separation: float = 15.0
    alignment: float = 0.8
    adaptive_threshold: float = 0.3
    collision_avoidance_radius: float = 20.0
    communication_range: float = 200.0

    def with_changes(self, **changes) -> "SwarmParameters":
        return replace(self, **changes)

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class FormationTemplate:
    """Generated formation layout plus the parameters it was built with.

    Templates are values: a changed layout is a new template.

    Attributes:
        formation: Formation kind
        positions: Slot positions, one per agent
        min_agents: Minimum supported agent count for this kind
        max_agents: Maximum supported agent count for this kind
        parameters: Parameters active when the template was generated
        heading: Rotation applied to the offsets (degrees)
    """
    formation: FormationType
    positions: Tuple[Vector3, ...]
    min_agents: int
    max_agents: int
    parameters: SwarmParameters = SwarmParameters()
    heading: float = 0.0

    @property
    def size(self) -> int:
        return len(self.positions)

    def translated(self, offset: Vector3) -> "FormationTemplate":
        return replace(self, positions=tuple(p + offset for p in self.positions))


@dataclass
class ConsensusState:
    """Progress of the current proposal or election."""
    proposal: Optional[str] = None
    term: float = 0.0
    votes: Dict[str, bool] = field(default_factory=dict)
    quorum: int = 0
    phase: str = "idle"


@dataclass(frozen=True)
class FlockingState:
    """Aggregate motion statistics of the swarm."""
    center_of_mass: Vector3 = Vector3()
    average_velocity: Vector3 = Vector3()
    is_flocking: bool = False
    is_converging: bool = False
    is_diverging: bool = False
    entropy: float = 0.0


@dataclass
class EmergencyState:
    active: bool = False
    reason: Optional[str] = None
    since: Optional[float] = None


@dataclass
class CoordinationState:
    consensus: ConsensusState = field(default_factory=ConsensusState)
    flocking: FlockingState = field(default_factory=FlockingState)
    emergency: EmergencyState = field(default_factory=EmergencyState)


@dataclass
class SwarmPerformance:
    """Rolling performance indicators (0-1 unless noted)."""
    mission_success_rate: float = 1.0
    average_response_time: float = 0.0  # seconds
    formation_stability: float = 1.0
    communication_efficiency: float = 1.0
    resource_utilization: float = 0.0
    adaptability_score: float = 0.5


@dataclass
class Swarm:
    """Swarm record owned by the coordinator.

    Attributes:
        swarm_id: Unique identifier
        agent_ids: Member agent ids, in slot order
        formation: Current formation kind
        behavior: High level behavior
        coordination_mode: How decisions are made
        mission_id: Mission currently executed, if any
        status: Lifecycle status
        leader_id: Elected leader, if any
        backup_leader_ids: Ranked successors to the leader
        parameters: Active swarm parameters
        coordination_state: Consensus, flocking and emergency sub-state
        performance: Rolling performance indicators
    """
    swarm_id: str
    agent_ids: Tuple[str, ...] = ()
    formation: FormationType = FormationType.GRID
    behavior: SwarmBehavior = SwarmBehavior.FLOCKING
    coordination_mode: CoordinationMode = CoordinationMode.HYBRID
    mission_id: Optional[str] = None
    status: SwarmStatus = SwarmStatus.FORMING
    leader_id: Optional[str] = None
    backup_leader_ids: Tuple[str, ...] = ()
    parameters: SwarmParameters = field(default_factory=SwarmParameters)
    coordination_state: CoordinationState = field(default_factory=CoordinationState)
    performance: SwarmPerformance = field(default_factory=SwarmPerformance)
    created_at: float = field(default_factory=time.time)

    @property
    def size(self) -> int:
        return len(self.agent_ids)


class TaskType(Enum):
    """Kinds of tasks a mission decomposes into."""
    SURVEILLANCE = "surveillance"
    RECONNAISSANCE = "reconnaissance"
    SEARCH_AND_RESCUE = "search_and_rescue"
    PATROL = "patrol"
    ESCORT = "escort"
    FORMATION_FLIGHT = "formation_flight"
    AREA_DENIAL = "area_denial"
    PERIMETER_DEFENSE = "perimeter_defense"
    SUPPLY_DELIVERY = "supply_delivery"
    COMMUNICATION_RELAY = "communication_relay"


class TaskStatus(Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class SkillRequirement:
    """One required skill of a task.

    Attributes:
        skill: Capability name
        min_proficiency: Proficiency that counts as fully qualified (0-1)
        priority: Relative weight of this skill (1-10)
    """
    skill: str
    min_proficiency: float
    priority: float


@dataclass(frozen=True)
class TaskRequirements:
    """What a task needs from the agents that take it.

    Empty skills means the matcher uses the default table for the task type.
    """
    agent_count: int = 1
    categories: Tuple[AgentCategory, ...] = ()
    skills: Tuple[SkillRequirement, ...] = ()
    location: Optional[Vector3] = None
    duration: Optional[float] = None  # seconds


@dataclass
class Task:
    """Unit of work assigned to one or more agents.

    Attributes:
        task_id: Unique identifier
        task_type: Task kind
        priority: 0 (lowest) to 10 (highest)
        requirements: Agent count, categories, skills, location, duration
        assigned_agents: Ids of agents holding the task
        status: Lifecycle status
        created_at: Unix timestamp of creation
        deadline: Unix timestamp the task must finish by, if any
        progress: Completion fraction (0-1)
        mission_id: Owning mission, if any
        description: Human readable summary
    """
    task_id: str
    task_type: TaskType
    priority: int = 5
    requirements: TaskRequirements = field(default_factory=TaskRequirements)
    assigned_agents: List[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    created_at: float = field(default_factory=time.time)
    deadline: Optional[float] = None
    progress: float = 0.0
    mission_id: Optional[str] = None
    description: str = ""
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class Mission:
    """Operator-level mission description.

    Attributes:
        mission_id: Unique identifier
        name: Short name (used for category inference)
        description: Free text (used for category inference)
        threat_level: 0 (none) to 4 (severe)
        duration_hours: Planned duration, sets task deadlines
        coordinates: Area of operations, if known
    """
    mission_id: str
    name: str
    description: str = ""
    threat_level: int = 0
    duration_hours: float = 1.0
    coordinates: Optional[Vector3] = None


@dataclass(frozen=True)
class EnvironmentalData:
    """Weather conditions around the swarm.

    Attributes:
        wind_speed: Knots
        wind_direction: Compass point (N, NE, E, SE, S, SW, W, NW)
        visibility: Kilometers
        temperature: Celsius
        precipitation: mm/h
        pressure: hPa
        humidity: Percent
    """
    wind_speed: float = 0.0
    wind_direction: str = "N"
    visibility: float = 10.0
    temperature: float = 15.0
    precipitation: float = 0.0
    pressure: float = 1013.25
    humidity: float = 50.0


@dataclass(frozen=True)
class Obstacle:
    position: Vector3
    radius: float


@dataclass(frozen=True)
class SwarmMetrics:
    """Aggregate swarm metrics computed by the slow loop.

    Attributes:
        cohesion: 0-1, higher is tighter
        separation: 0-1, how close mean neighbour distance is to spacing
        alignment: 0-1, heading agreement
        formation_error: RMS slot error (meters)
        communication_latency: Milliseconds
        decision_speed: Decisions per second
        adaptability: 0-1
        resilience: 0-1
        efficiency: 0-1
        timestamp: Unix timestamp of computation
    """
    cohesion: float = 0.0
    separation: float = 0.0
    alignment: float = 0.0
    formation_error: float = 0.0
    communication_latency: float = 0.0
    decision_speed: float = 0.0
    adaptability: float = 0.0
    resilience: float = 0.0
    efficiency: float = 0.0
    timestamp: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)
