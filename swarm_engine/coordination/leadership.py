"""Leadership scoring, quorum elections and consensus proposals.

Elections are deterministic: a voter approves a candidate only when the
candidate outscores it, with ties going to the lexicographically smaller
id. A candidate wins with votes >= ceil(0.51 * available agents).
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..core.messages import MessagePriority, MessageType, SwarmMessage
from ..core.models import Agent, AgentCategory

logger = logging.getLogger(__name__)

CATEGORY_LEADERSHIP = {
    AgentCategory.MULTI_ROLE: 1.0,
    AgentCategory.RECONNAISSANCE: 0.8,
    AgentCategory.SURVEILLANCE: 0.7,
    AgentCategory.ATTACK: 0.6,
    AgentCategory.TRANSPORT: 0.5,
}

QUORUM_FRACTION = 0.51
ELECTION_TTL = 30.0
VOTE_TTL = 25.0
PROPOSAL_TTL = 60.0


def leadership_score(agent: Agent) -> float:
    """Weighted 0-1 fitness to lead.

    battery 40%, signal 20%, experience 20% (saturates at 100 missions),
    category 20%.
    """
    score = (
        agent.battery / 100 * 0.4
        + agent.signal / 100 * 0.2
        + min(agent.mission_count / 100, 1.0) * 0.2
        + CATEGORY_LEADERSHIP.get(agent.category, 0.5) * 0.2
    )
    return min(max(score, 0.0), 1.0)


def quorum_size(active_count: int) -> int:
    return math.ceil(QUORUM_FRACTION * active_count)


def prefers_candidate(candidate_id: str, candidate_score: float, voter_id: str, voter_score: float) -> bool:
    """Whether a voter approves a candidate over itself."""
    if candidate_id == voter_id:
        return True
    if candidate_score != voter_score:
        return candidate_score > voter_score
    return candidate_id < voter_id


def _rank_key(agent: Agent):
    return (-leadership_score(agent), agent.agent_id)


def select_backup_leaders(agents: Sequence[Agent], leader_id: Optional[str], count: int = 2) -> Tuple[str, ...]:
    """Next best available agents after the leader, best first."""
    ranked = sorted(
        (a for a in agents if a.is_available and a.agent_id != leader_id),
        key=_rank_key,
    )
    return tuple(a.agent_id for a in ranked[:count])


@dataclass
class ElectionResult:
    """Outcome of one election term.

    Attributes:
        term: Election term
        winner: Winning agent id, None if no candidate reached quorum
        votes: Approving vote count per candidate
        quorum: Votes required to win
        failed: True when there is no winner
    """
    term: float
    winner: Optional[str]
    votes: Dict[str, int] = field(default_factory=dict)
    quorum: int = 0

    @property
    def failed(self) -> bool:
        return self.winner is None


class LeaderElection:
    """Runs quorum elections over agent snapshots.

    The message flow mirrors what the transport carries: a candidacy
    broadcast per candidate, one vote per (voter, candidate), then a tally.
    Votes from an older term are ignored.

    Example:
        election = LeaderElection(swarm_id="swarm-1")
        result, messages = election.run(agents)
        if result.failed:
            result, messages = election.run(agents)  # new term
    """

    def __init__(self, swarm_id: str, clock: Callable[[], float] = time.monotonic):
        self.swarm_id = swarm_id
        self._clock = clock
        self.term: float = 0.0
        self._candidates: Dict[str, float] = {}
        self._votes: Dict[str, Set[str]] = {}
        self._last_term: float = 0.0

    def new_term(self) -> float:
        """Start a new term (strictly increasing)."""
        term = self._clock()
        if term <= self._last_term:
            term = self._last_term + 1e-6
        self._last_term = term
        self.term = term
        self._candidates = {}
        self._votes = {}
        return term

    def announce(self, candidate: Agent) -> SwarmMessage:
        """Register a candidate and build its candidacy broadcast."""
        score = leadership_score(candidate)
        self._candidates[candidate.agent_id] = score
        self._votes.setdefault(candidate.agent_id, set())
        return SwarmMessage(
            message_type=MessageType.LEADER_ELECTION,
            sender_id=candidate.agent_id,
            payload={
                "swarm_id": self.swarm_id,
                "candidate_id": candidate.agent_id,
                "score": score,
                "term": self.term,
            },
            priority=MessagePriority.HIGH,
            ttl=ELECTION_TTL,
        )

    def vote(self, voter: Agent, candidate_id: str) -> SwarmMessage:
        """Cast voter's ballot on one candidate and build the vote message."""
        score = self._candidates[candidate_id]
        approve = prefers_candidate(candidate_id, score, voter.agent_id, leadership_score(voter))
        message = SwarmMessage(
            message_type=MessageType.CONSENSUS_VOTE,
            sender_id=voter.agent_id,
            receiver_id=candidate_id,
            payload={
                "swarm_id": self.swarm_id,
                "candidate_id": candidate_id,
                "vote": approve,
                "term": self.term,
            },
            priority=MessagePriority.HIGH,
            ttl=VOTE_TTL,
        )
        self.record_vote(message)
        return message

    def record_vote(self, message: SwarmMessage) -> bool:
        """Count an inbound vote message. Duplicate voters count once."""
        payload = message.payload
        if payload.get("term") != self.term:
            logger.debug(f"Ignoring vote from {message.sender_id} for stale term")
            return False
        candidate_id = payload.get("candidate_id")
        if candidate_id not in self._candidates:
            return False
        if payload.get("vote"):
            self._votes[candidate_id].add(message.sender_id)
        return True

    def tally(self, active_count: int) -> ElectionResult:
        """Pick the candidate with the most votes among those at quorum.

        Ties go to the higher score, then the smaller id.
        """
        quorum = quorum_size(active_count)
        counts = {cid: len(voters) for cid, voters in self._votes.items()}
        qualified = [cid for cid, n in counts.items() if n >= quorum and n > 0]
        winner = None
        if qualified:
            winner = min(qualified, key=lambda cid: (-counts[cid], -self._candidates[cid], cid))
        result = ElectionResult(term=self.term, winner=winner, votes=counts, quorum=quorum)
        if winner is None:
            logger.warning(
                f"Swarm {self.swarm_id}: election failed, no candidate reached quorum {quorum}"
            )
        else:
            logger.info(
                f"Swarm {self.swarm_id}: {winner} elected with {counts[winner]}/{active_count} votes"
            )
        return result

    def run(
        self,
        agents: Sequence[Agent],
        candidates: Optional[Sequence[Agent]] = None,
    ) -> Tuple[ElectionResult, List[SwarmMessage]]:
        """Run a complete election term.

        Args:
            agents: All agent snapshots (available ones vote)
            candidates: Agents standing, defaults to every available agent

        Returns:
            (ElectionResult, candidacy and vote messages in send order)
        """
        voters = [a for a in agents if a.is_available]
        if candidates is None:
            candidates = voters
        candidates = [c for c in candidates if c.is_available]

        self.new_term()
        messages = [self.announce(c) for c in candidates]
        for candidate in candidates:
            for voter in voters:
                messages.append(self.vote(voter, candidate.agent_id))
        return self.tally(len(voters)), messages


def consensus_proposal(sender_id: str, swarm_id: str, proposal: str, term: float, value=None) -> SwarmMessage:
    """Prepare-phase proposal broadcast for a swarm-wide decision."""
    return SwarmMessage(
        message_type=MessageType.CONSENSUS_VOTE,
        sender_id=sender_id,
        payload={
            "swarm_id": swarm_id,
            "proposal": proposal,
            "value": value,
            "phase": "prepare",
            "term": term,
        },
        priority=MessagePriority.HIGH,
        ack_required=True,
        ttl=PROPOSAL_TTL,
    )
