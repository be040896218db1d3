"""Swarm messages and the typed publish/subscribe bus.

The engine never talks to a radio. It publishes SwarmMessage values on a
MessageBus; the transport layer subscribes, delivers them, and reports
acknowledgments back with MessageBus.ack().
"""

import logging
import queue
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)


class MessageType(Enum):
    """Message categories exchanged inside the swarm."""
    POSITION_UPDATE = "position_update"
    FORMATION_COMMAND = "formation_command"
    LEADER_ELECTION = "leader_election"
    CONSENSUS_VOTE = "consensus_vote"
    EMERGENCY_ALERT = "emergency_alert"
    COLLISION_WARNING = "collision_warning"
    TASK_ASSIGNMENT = "task_assignment"
    STATUS_REPORT = "status_report"
    HEARTBEAT = "heartbeat"
    FORMATION_COMPLETE = "formation_complete"
    MISSION_UPDATE = "mission_update"


class MessagePriority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


def new_message_id() -> str:
    return f"msg-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class SwarmMessage:
    """Message produced or consumed by the engine.

    Attributes:
        message_type: Message category
        sender_id: Originating agent or component
        receiver_id: Target agent, None for broadcast
        payload: Message body
        priority: Delivery priority
        encrypted: Whether the transport must encrypt the body
        ack_required: Whether the receiver must acknowledge
        ttl: Seconds the message stays valid after timestamp
        timestamp: Unix timestamp of creation
        message_id: Unique identifier
    """
    message_type: MessageType
    sender_id: str
    receiver_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    priority: MessagePriority = MessagePriority.NORMAL
    encrypted: bool = True
    ack_required: bool = False
    ttl: float = 30.0
    timestamp: float = field(default_factory=time.time)
    message_id: str = field(default_factory=new_message_id)

    @property
    def is_broadcast(self) -> bool:
        return self.receiver_id is None

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now > self.timestamp + self.ttl


class Subscription:
    """Bounded queue of messages matching a set of types.

    Obtain one from MessageBus.subscribe(); read with get()/drain().
    When the queue is full the oldest message is dropped.
    """

    def __init__(self, message_types: Optional[Iterable[MessageType]] = None, maxsize: int = 256):
        self.subscription_id = f"sub-{uuid.uuid4().hex[:8]}"
        self.message_types: Optional[FrozenSet[MessageType]] = (
            frozenset(message_types) if message_types is not None else None
        )
        self.dropped = 0
        self._queue: "queue.Queue[SwarmMessage]" = queue.Queue(maxsize=maxsize)
        self.active = True

    def accepts(self, message: SwarmMessage) -> bool:
        return self.active and (
            self.message_types is None or message.message_type in self.message_types
        )

    def put(self, message: SwarmMessage) -> None:
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                pass
            self.dropped += 1
            logger.warning(
                f"Subscription {self.subscription_id} full, dropped oldest message"
            )
            self._queue.put_nowait(message)

    def get(self, timeout: Optional[float] = None) -> Optional[SwarmMessage]:
        """Next message, or None if nothing arrives within timeout."""
        try:
            return self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> List[SwarmMessage]:
        """Remove and return everything currently queued."""
        messages = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except queue.Empty:
                return messages

    def qsize(self) -> int:
        return self._queue.qsize()


class MessageBus:
    """Typed publish/subscribe channel for outbound swarm messages.

    Example:
        bus = MessageBus()
        commands = bus.subscribe([MessageType.FORMATION_COMMAND])
        bus.publish(message)
        for msg in commands.drain():
            transport.send(msg)
            bus.ack(msg.message_id)
    """

    def __init__(self, history_size: int = 500):
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, Subscription] = {}
        self._pending_acks: Dict[str, SwarmMessage] = {}
        self._history: deque = deque(maxlen=history_size)
        self.published_count = 0
        self.acked_count = 0
        self.expired_count = 0

    def subscribe(
        self,
        message_types: Optional[Iterable[MessageType]] = None,
        maxsize: int = 256,
    ) -> Subscription:
        """Create a subscription.

        Args:
            message_types: Types to receive, None for all
            maxsize: Queue bound

        Returns:
            New Subscription
        """
        subscription = Subscription(message_types, maxsize)
        with self._lock:
            self._subscriptions[subscription.subscription_id] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            removed = self._subscriptions.pop(subscription.subscription_id, None)
        subscription.active = False
        return removed is not None

    def publish(self, message: SwarmMessage) -> int:
        """Deliver a message to every matching subscription.

        Returns:
            Number of subscriptions that received it
        """
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.accepts(message)]
            if message.ack_required:
                self._pending_acks[message.message_id] = message
            self._history.append(message)
            self.published_count += 1

        for subscription in targets:
            subscription.put(message)
        logger.debug(
            f"Published {message.message_type.value} {message.message_id} "
            f"to {len(targets)} subscribers"
        )
        return len(targets)

    def publish_all(self, messages: Iterable[SwarmMessage]) -> int:
        return sum(self.publish(m) for m in messages)

    def ack(self, message_id: str) -> bool:
        """Mark an ack-required message as acknowledged."""
        with self._lock:
            if self._pending_acks.pop(message_id, None) is None:
                return False
            self.acked_count += 1
            return True

    def pending_acks(self, now: Optional[float] = None) -> List[SwarmMessage]:
        """Unacknowledged messages that have not yet expired."""
        now = time.time() if now is None else now
        with self._lock:
            return [m for m in self._pending_acks.values() if not m.is_expired(now)]

    def expire_pending(self, now: Optional[float] = None) -> List[SwarmMessage]:
        """Drop and return ack-required messages whose ttl ran out unacknowledged."""
        now = time.time() if now is None else now
        with self._lock:
            expired = [m for m in self._pending_acks.values() if m.is_expired(now)]
            for message in expired:
                del self._pending_acks[message.message_id]
            self.expired_count += len(expired)
        for message in expired:
            logger.warning(
                f"{message.message_type.value} {message.message_id} to "
                f"{message.receiver_id} expired without ack"
            )
        return expired

    def recent(self, limit: int = 50) -> List[SwarmMessage]:
        with self._lock:
            return list(self._history)[-limit:]
