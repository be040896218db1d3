"""Runtime: the swarm coordinator, its tick loops and metrics."""

from .coordinator import (
    DEFAULT_TARGETS,
    SwarmCoordinator,
    SystemStatus,
    TickResult,
)

from .metrics import (
    compute_metrics,
    delivery_ratio,
    formation_error,
    heading_variance,
    mean_neighbor_distance,
)

from .logging_setup import configure_logging

__all__ = [
    # Coordinator
    "DEFAULT_TARGETS",
    "SwarmCoordinator",
    "SystemStatus",
    "TickResult",
    # Metrics
    "compute_metrics",
    "delivery_ratio",
    "formation_error",
    "heading_variance",
    "mean_neighbor_distance",
    # Logging
    "configure_logging",
]
