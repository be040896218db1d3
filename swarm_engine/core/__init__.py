"""Core value types, messages and configuration."""

from .vector import Vector3, centroid
from .models import (
    Agent,
    AgentCategory,
    AgentStatus,
    FormationType,
    FormationTemplate,
    SwarmParameters,
    SwarmBehavior,
    CoordinationMode,
    SwarmStatus,
    ConsensusState,
    FlockingState,
    EmergencyState,
    CoordinationState,
    SwarmPerformance,
    Swarm,
    TaskType,
    TaskStatus,
    SkillRequirement,
    TaskRequirements,
    Task,
    Mission,
    EnvironmentalData,
    Obstacle,
    SwarmMetrics,
)
from .messages import (
    MessageType,
    MessagePriority,
    SwarmMessage,
    Subscription,
    MessageBus,
)
from .config import (
    FormationConfig,
    AllocationConfig,
    LoopConfig,
    EngineConfig,
)
from .errors import (
    SwarmEngineError,
    InfeasibleRequestError,
    InfeasibleFormationError,
    FormationNotInitializedError,
    NoEligibleAgentsError,
    UnknownAuctionError,
)

__all__ = [
    # Geometry
    "Vector3",
    "centroid",
    # Agents and swarms
    "Agent",
    "AgentCategory",
    "AgentStatus",
    "FormationType",
    "FormationTemplate",
    "SwarmParameters",
    "SwarmBehavior",
    "CoordinationMode",
    "SwarmStatus",
    "ConsensusState",
    "FlockingState",
    "EmergencyState",
    "CoordinationState",
    "SwarmPerformance",
    "Swarm",
    # Tasks and missions
    "TaskType",
    "TaskStatus",
    "SkillRequirement",
    "TaskRequirements",
    "Task",
    "Mission",
    "EnvironmentalData",
    "Obstacle",
    "SwarmMetrics",
    # Messaging
    "MessageType",
    "MessagePriority",
    "SwarmMessage",
    "Subscription",
    "MessageBus",
    # Config
    "FormationConfig",
    "AllocationConfig",
    "LoopConfig",
    "EngineConfig",
    # Errors
    "SwarmEngineError",
    "InfeasibleRequestError",
    "InfeasibleFormationError",
    "FormationNotInitializedError",
    "NoEligibleAgentsError",
    "UnknownAuctionError",
]
