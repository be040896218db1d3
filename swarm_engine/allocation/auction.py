"""Time-boxed task auctions.

An auction collects bids until its deadline; the tick loop calls
process_deadlines() to resolve expired auctions, so nothing here sleeps
or schedules timers. Bids may arrive from any thread.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..core.config import AllocationConfig
from ..core.errors import UnknownAuctionError
from ..core.messages import MessageBus, MessagePriority, MessageType, SwarmMessage
from ..core.models import Task, TaskStatus

logger = logging.getLogger(__name__)


class AuctionStatus(Enum):
    ACTIVE = "active"
    RESOLVING = "resolving"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Bid:
    """A bidder's offer for a task.

    Attributes:
        bidder_id: Bidding agent
        bid_value: Offered value (higher is better)
        capabilities: Declared capability values (0-1)
        estimated_completion_time: Seconds to complete the task
        submitted_at: Unix timestamp of submission
    """
    bidder_id: str
    bid_value: float
    capabilities: Dict[str, float]
    estimated_completion_time: float
    submitted_at: float


@dataclass
class Auction:
    """Auction record.

    Attributes:
        auction_id: Unique identifier
        task: Task being auctioned
        eligible_bidders: Agents allowed to bid
        deadline: Unix timestamp bidding closes
        bids: Latest bid per bidder
        status: Lifecycle status
        winners: Winning bidders, best first
        stale: Superseded; resolution is ignored
        resolved_at: Unix timestamp of resolution
        failure_reason: Why the auction failed, if it did
    """
    auction_id: str
    task: Task
    eligible_bidders: Tuple[str, ...]
    deadline: float
    bids: Dict[str, Bid] = field(default_factory=dict)
    status: AuctionStatus = AuctionStatus.ACTIVE
    winners: Tuple[str, ...] = ()
    stale: bool = False
    resolved_at: Optional[float] = None
    failure_reason: Optional[str] = None

    @property
    def winner(self) -> Optional[str]:
        return self.winners[0] if self.winners else None

    @property
    def is_open(self) -> bool:
        return self.status == AuctionStatus.ACTIVE and not self.stale


@dataclass(frozen=True)
class AuctionStats:
    total: int
    active: int
    completed: int
    failed: int
    average_bids: float


def score_bids(bids: Sequence[Bid], task_priority: int) -> Dict[str, float]:
    """Weighted multi-criteria score per bidder.

    0.3 bid value (relative to the best bid), 0.4 mean declared capability,
    0.2 speed (fastest completion time relative to this one), 0.1 task
    priority. Terms that cannot be computed are dropped and the remaining
    weights renormalized.
    """
    if not bids:
        return {}
    max_bid = max(b.bid_value for b in bids)
    min_time = min(b.estimated_completion_time for b in bids)

    scores = {}
    for bid in bids:
        score = 0.0
        weight = 0.0
        if max_bid > 0:
            score += bid.bid_value / max_bid * 0.3
            weight += 0.3
        if bid.capabilities:
            values = list(bid.capabilities.values())
            score += sum(values) / len(values) * 0.4
            weight += 0.4
        if min_time > 0 and bid.estimated_completion_time > 0:
            score += min_time / bid.estimated_completion_time * 0.2
            weight += 0.2
        score += task_priority / 10 * 0.1
        weight += 0.1
        scores[bid.bidder_id] = score / weight
    return scores


class AuctionSystem:
    """Runs task auctions and publishes their outcomes.

    Example:
        auctions = AuctionSystem(bus)
        auction = auctions.initiate_auction(task, ["a1", "a2"])
        auctions.submit_bid(auction.auction_id, "a1", 0.9, {"recon": 0.8}, 600)

        # In the slow loop:
        for resolved in auctions.process_deadlines():
            print(resolved.status, resolved.winner)
    """

    def __init__(
        self,
        bus: MessageBus,
        config: Optional[AllocationConfig] = None,
        clock: Callable[[], float] = time.time,
        sender_id: str = "auctioneer",
    ):
        self.bus = bus
        self.config = config or AllocationConfig()
        self._clock = clock
        self.sender_id = sender_id
        self._lock = threading.Lock()
        self._auctions: Dict[str, Auction] = {}
        self._on_resolved: List[Callable[[Auction], None]] = []

    def initiate_auction(
        self,
        task: Task,
        eligible_bidders: Sequence[str],
        duration: Optional[float] = None,
    ) -> Auction:
        """Open an auction and broadcast its announcement.

        Args:
            task: Task to allocate
            eligible_bidders: Agent ids allowed to bid
            duration: Bidding window in seconds (config default if None)

        Returns:
            The new Auction
        """
        duration = self.config.auction_duration if duration is None else duration
        now = self._clock()
        auction = Auction(
            auction_id=f"auction-{task.task_id}-{uuid.uuid4().hex[:6]}",
            task=task,
            eligible_bidders=tuple(eligible_bidders),
            deadline=now + duration,
        )
        with self._lock:
            self._auctions[auction.auction_id] = auction

        self.bus.publish(SwarmMessage(
            message_type=MessageType.MISSION_UPDATE,
            sender_id=self.sender_id,
            payload={
                "kind": "task_auction",
                "auction_id": auction.auction_id,
                "task_id": task.task_id,
                "task_type": task.task_type.value,
                "priority": task.priority,
                "agent_count": task.requirements.agent_count,
                "task_deadline": task.deadline,
                "deadline": auction.deadline,
                "eligible_bidders": list(auction.eligible_bidders),
            },
            priority=MessagePriority.NORMAL,
            ttl=duration,
            timestamp=now,
        ))
        logger.info(
            f"Auction {auction.auction_id} opened for {len(auction.eligible_bidders)} bidders "
            f"({duration:.0f}s)"
        )
        return auction

    def submit_bid(
        self,
        auction_id: str,
        bidder_id: str,
        bid_value: float,
        capabilities: Dict[str, float],
        estimated_completion_time: float,
    ) -> bool:
        """Record a bid, replacing the bidder's previous one.

        Returns:
            False if the auction is unknown, closed, past its deadline or the
            bidder is not eligible
        """
        now = self._clock()
        with self._lock:
            auction = self._auctions.get(auction_id)
            if auction is None or not auction.is_open or now > auction.deadline:
                return False
            if bidder_id not in auction.eligible_bidders:
                logger.debug(f"Rejected bid from ineligible {bidder_id} on {auction_id}")
                return False
            auction.bids[bidder_id] = Bid(
                bidder_id=bidder_id,
                bid_value=bid_value,
                capabilities=dict(capabilities),
                estimated_completion_time=estimated_completion_time,
                submitted_at=now,
            )
        return True

    def process_deadlines(self, now: Optional[float] = None) -> List[Auction]:
        """Resolve every open auction whose deadline has passed."""
        now = self._clock() if now is None else now
        with self._lock:
            due = [a.auction_id for a in self._auctions.values() if a.is_open and now >= a.deadline]
        return [self.resolve(auction_id) for auction_id in due]

    def resolve(self, auction_id: str) -> Auction:
        """Resolve an auction exactly once.

        Zero bids fail the auction; otherwise the best scoring bidders (as
        many as the task needs) win, the task is assigned and every
        eligible bidder is told the result.

        Raises:
            UnknownAuctionError: auction id not tracked
        """
        with self._lock:
            auction = self._auctions.get(auction_id)
            if auction is None:
                raise UnknownAuctionError(auction_id)
            if not auction.is_open:
                return auction
            auction.status = AuctionStatus.RESOLVING
            bids = list(auction.bids.values())

        now = self._clock()
        if not bids:
            with self._lock:
                auction.status = AuctionStatus.FAILED
                auction.failure_reason = "no bids received"
                auction.resolved_at = now
            logger.warning(f"Auction {auction_id} failed: no bids received")
            self._notify(auction)
            return auction

        scores = score_bids(bids, auction.task.priority)
        ranked = sorted(scores, key=lambda bidder: (-scores[bidder], bidder))
        winners = tuple(ranked[: max(auction.task.requirements.agent_count, 1)])

        with self._lock:
            auction.winners = winners
            auction.status = AuctionStatus.COMPLETED
            auction.resolved_at = now
            auction.task.assigned_agents = list(winners)
            auction.task.status = TaskStatus.ASSIGNED

        for winner in winners:
            self.bus.publish(self._assignment_message(auction, auction.bids[winner], now))
        for bidder_id in auction.eligible_bidders:
            self.bus.publish(self._result_message(auction, bidder_id, now))

        logger.info(
            f"Auction {auction_id} resolved: {', '.join(winners)} won "
            f"({len(bids)} bids, best score {scores[winners[0]]:.2f})"
        )
        self._notify(auction)
        return auction

    def on_resolved(self, callback: Callable[[Auction], None]) -> None:
        """Register callback for resolved auctions.

        Args:
            callback: Function called with each completed or failed auction
        """
        self._on_resolved.append(callback)

    def _notify(self, auction: Auction) -> None:
        for callback in self._on_resolved:
            callback(auction)

    def cancel(self, auction_id: str, reason: str = "superseded") -> bool:
        """Mark an open auction stale so it is never resolved."""
        with self._lock:
            auction = self._auctions.get(auction_id)
            if auction is None or not auction.is_open:
                return False
            auction.stale = True
            auction.status = AuctionStatus.FAILED
            auction.failure_reason = reason
            auction.resolved_at = self._clock()
        logger.info(f"Auction {auction_id} cancelled: {reason}")
        return True

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Drop resolved auctions older than the retention window."""
        now = self._clock() if now is None else now
        retention = self.config.auction_retention
        with self._lock:
            expired = [
                a.auction_id for a in self._auctions.values()
                if a.resolved_at is not None and now - a.resolved_at > retention
            ]
            for auction_id in expired:
                del self._auctions[auction_id]
        return len(expired)

    def get(self, auction_id: str) -> Auction:
        with self._lock:
            auction = self._auctions.get(auction_id)
        if auction is None:
            raise UnknownAuctionError(auction_id)
        return auction

    def active_auctions(self) -> List[Auction]:
        with self._lock:
            return [a for a in self._auctions.values() if a.is_open]

    def stats(self) -> AuctionStats:
        with self._lock:
            auctions = list(self._auctions.values())
        total = len(auctions)
        return AuctionStats(
            total=total,
            active=sum(1 for a in auctions if a.is_open),
            completed=sum(1 for a in auctions if a.status == AuctionStatus.COMPLETED),
            failed=sum(1 for a in auctions if a.status == AuctionStatus.FAILED),
            average_bids=sum(len(a.bids) for a in auctions) / total if total else 0.0,
        )

    def _assignment_message(self, auction: Auction, bid: Bid, now: float) -> SwarmMessage:
        task = auction.task
        return SwarmMessage(
            message_type=MessageType.TASK_ASSIGNMENT,
            sender_id=self.sender_id,
            receiver_id=bid.bidder_id,
            payload={
                "task_id": task.task_id,
                "task_type": task.task_type.value,
                "priority": task.priority,
                "deadline": task.deadline,
                "estimated_duration": bid.estimated_completion_time,
                "auction_id": auction.auction_id,
            },
            priority=MessagePriority.HIGH,
            ack_required=True,
            timestamp=now,
        )

    def _result_message(self, auction: Auction, bidder_id: str, now: float) -> SwarmMessage:
        return SwarmMessage(
            message_type=MessageType.MISSION_UPDATE,
            sender_id=self.sender_id,
            receiver_id=bidder_id,
            payload={
                "kind": "auction_result",
                "auction_id": auction.auction_id,
                "task_id": auction.task.task_id,
                "winners": list(auction.winners),
                "total_bids": len(auction.bids),
            },
            priority=MessagePriority.NORMAL,
            timestamp=now,
        )
