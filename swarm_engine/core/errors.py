"""Exception types raised by the swarm engine.

Boundary rejections subclass ValueError, state errors subclass RuntimeError,
so callers that only know the builtin hierarchy still catch them.
"""


class SwarmEngineError(Exception):
    """Base class for all engine errors."""


class InfeasibleRequestError(SwarmEngineError, ValueError):
    """Request cannot be satisfied with the given agents or parameters."""


class InfeasibleFormationError(InfeasibleRequestError):
    """Formation requested outside its supported agent count range."""

    def __init__(self, formation, count: int, min_agents: int, max_agents: int):
        self.formation = formation
        self.count = count
        self.min_agents = min_agents
        self.max_agents = max_agents
        super().__init__(
            f"{formation.value} formation supports {min_agents}-{max_agents} agents, "
            f"got {count}"
        )


class FormationNotInitializedError(SwarmEngineError, RuntimeError):
    """Formation manager used before initialize()."""


class NoEligibleAgentsError(SwarmEngineError, RuntimeError):
    """No agent can take part in a mission at all."""


class UnknownAuctionError(SwarmEngineError, KeyError):
    """Auction id is not (or no longer) tracked."""
