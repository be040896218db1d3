"""Task allocation: capability matching, auctions, workload, missions."""

from .capabilities import (
    CATEGORY_CAPABILITIES,
    TASK_REQUIREMENTS,
    Capability,
    capabilities_for,
    compatibility_score,
    estimate_duration,
    location_factor,
    resource_factor,
    timing_factor,
)

from .auction import (
    Auction,
    AuctionStats,
    AuctionStatus,
    AuctionSystem,
    Bid,
    score_bids,
)

from .workload import (
    AgentWorkload,
    Assignment,
    RebalanceAction,
    WorkloadBalancer,
    WorkloadStats,
    compute_utilization,
    task_complexity,
)

from .orchestrator import (
    ExecutionStatus,
    MissionCategory,
    MissionExecution,
    MissionOrchestrator,
    infer_category,
)

__all__ = [
    # Capabilities
    "CATEGORY_CAPABILITIES",
    "TASK_REQUIREMENTS",
    "Capability",
    "capabilities_for",
    "compatibility_score",
    "estimate_duration",
    "location_factor",
    "resource_factor",
    "timing_factor",
    # Auctions
    "Auction",
    "AuctionStats",
    "AuctionStatus",
    "AuctionSystem",
    "Bid",
    "score_bids",
    # Workload
    "AgentWorkload",
    "Assignment",
    "RebalanceAction",
    "WorkloadBalancer",
    "WorkloadStats",
    "compute_utilization",
    "task_complexity",
    # Missions
    "ExecutionStatus",
    "MissionCategory",
    "MissionExecution",
    "MissionOrchestrator",
    "infer_category",
]
