"""Configuration for the swarm engine."""

import os
from dataclasses import dataclass, field


@dataclass
class FormationConfig:
    """Formation manager tuning.

    Attributes:
        slot_change_threshold: Slot displacement that counts as a new layout (m)
        transition_buffer: Extra time after planned transition time (s)
        checkpoint_interval: Path sampling interval for conflict checks (m)
        min_path_length: Paths shorter than this are not checked (m)
        conflict_distance: Checkpoint-to-agent distance counting as conflict (m)
        avoidance_offset: Lateral offset of an injected waypoint (m)
        command_ttl_margin: Added to transition time for command ttl (s)
        assignment_method: "greedy" or "hungarian"
    """
    slot_change_threshold: float = 5.0
    transition_buffer: float = 5.0
    checkpoint_interval: float = 50.0
    min_path_length: float = 5.0
    conflict_distance: float = 15.0
    avoidance_offset: float = 15.0
    command_ttl_margin: float = 30.0
    assignment_method: str = "greedy"


@dataclass
class AllocationConfig:
    """Auction and workload tuning.

    Attributes:
        auction_duration: Default bidding window (s)
        auction_retention: How long resolved auctions stay queryable (s)
        overload_threshold: Utilization above which an agent sheds tasks
        underload_threshold: Utilization below which an agent takes tasks
        max_assign_utilization: Agents above this are skipped for new work
        min_compatibility: Agents below this are skipped for new work
        movable_priority: Tasks with priority below this may be rebalanced
    """
    auction_duration: float = 30.0
    auction_retention: float = 60.0
    overload_threshold: float = 0.8
    underload_threshold: float = 0.3
    max_assign_utilization: float = 0.9
    min_compatibility: float = 0.3
    movable_priority: int = 7


@dataclass
class LoopConfig:
    """Tick loop rates.

    Attributes:
        fast_rate: Force/formation loop rate (Hz)
        slow_rate: Metrics/optimization/allocation loop rate (Hz)
        worker_threads: Thread pool size for per-agent force computation
        rebalance_interval: Seconds between workload rebalancing passes
        inbound_queue_size: Bound of the inbound telemetry/message queue
    """
    fast_rate: float = 10.0
    slow_rate: float = 1.0
    worker_threads: int = 4
    rebalance_interval: float = 30.0
    inbound_queue_size: int = 1000

    @property
    def fast_period(self) -> float:
        return 1.0 / self.fast_rate

    @property
    def slow_period(self) -> float:
        return 1.0 / self.slow_rate


@dataclass
class EngineConfig:
    """Configuration for the whole engine."""

    formation: FormationConfig = field(default_factory=FormationConfig)
    allocation: AllocationConfig = field(default_factory=AllocationConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    log_level: str = "INFO"

    @classmethod
    def for_testing(cls) -> "EngineConfig":
        """Small pools and short windows for unit tests."""
        return cls(
            allocation=AllocationConfig(auction_duration=5.0, auction_retention=10.0),
            loop=LoopConfig(worker_threads=2, rebalance_interval=5.0),
            log_level="DEBUG",
        )

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create config with overrides from SWARM_* environment variables.

        Recognized: SWARM_FAST_HZ, SWARM_SLOW_HZ, SWARM_WORKERS,
        SWARM_AUCTION_DURATION, SWARM_ASSIGNMENT, SWARM_LOG_LEVEL.
        """
        config = cls()
        config.loop.fast_rate = float(os.environ.get("SWARM_FAST_HZ", config.loop.fast_rate))
        config.loop.slow_rate = float(os.environ.get("SWARM_SLOW_HZ", config.loop.slow_rate))
        config.loop.worker_threads = int(
            os.environ.get("SWARM_WORKERS", config.loop.worker_threads)
        )
        config.allocation.auction_duration = float(
            os.environ.get("SWARM_AUCTION_DURATION", config.allocation.auction_duration)
        )
        config.formation.assignment_method = os.environ.get(
            "SWARM_ASSIGNMENT", config.formation.assignment_method
        )
        config.log_level = os.environ.get("SWARM_LOG_LEVEL", config.log_level).upper()
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ValueError on inconsistent settings."""
        if self.loop.fast_rate <= 0 or self.loop.slow_rate <= 0:
            raise ValueError("Loop rates must be positive")
        if self.loop.worker_threads < 1:
            raise ValueError("worker_threads must be at least 1")
        if self.allocation.auction_duration <= 0:
            raise ValueError("auction_duration must be positive")
        if self.formation.assignment_method not in ("greedy", "hungarian"):
            raise ValueError(
                f"Unknown assignment method: {self.formation.assignment_method}"
            )
