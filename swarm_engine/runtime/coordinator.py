"""Swarm coordinator: owns one swarm's state and drives the tick loops.

External inputs (telemetry, bids, inbound messages) are queued by any
thread and drained at the start of each tick. The fast tick computes
forces and keeps the formation; the slow tick computes metrics, handles
emergencies and leadership, resolves auction deadlines, rebalances
workloads and tunes parameters. All outputs go to the message bus.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..allocation.auction import Auction, AuctionStats, AuctionSystem
from ..allocation.orchestrator import MissionExecution, MissionOrchestrator
from ..allocation.workload import WorkloadBalancer, WorkloadStats
from ..coordination.emergent import detect_patterns, flocking_state
from ..coordination.flocking import AgentForces, ForceComputer, collision_warning
from ..coordination.formation_manager import FormationManager, FormationState, FormationUpdate
from ..coordination.leadership import ElectionResult, LeaderElection, select_backup_leaders
from ..core.config import EngineConfig
from ..core.messages import MessageBus, MessagePriority, MessageType, SwarmMessage
from ..core.models import (
    Agent,
    EmergencyState,
    EnvironmentalData,
    FormationTemplate,
    Mission,
    Obstacle,
    Swarm,
    SwarmMetrics,
    SwarmStatus,
    TaskStatus,
    TaskType,
)
from ..optimization.optimizer import BehaviorOptimizer, TuningResult
from ..optimization.strategies import PerformanceRecord
from .metrics import compute_metrics, delivery_ratio

logger = logging.getLogger(__name__)

SENDER_ID = "coordinator"

DEFAULT_TARGETS: Dict[str, float] = {
    "cohesion": 0.8,
    "efficiency": 0.7,
    "adaptability": 0.6,
    "resilience": 0.7,
}

# Risks below this severity are left to the avoidance force
WARNING_SEVERITY = 0.3


@dataclass(frozen=True)
class TickResult:
    """Outcome of one fast tick."""
    timestamp: float
    formation: Optional[FormationUpdate]
    forces: Dict[str, AgentForces]
    warnings: int = 0


@dataclass(frozen=True)
class SystemStatus:
    """Snapshot of everything the coordinator tracks.

    Attributes:
        swarm_id: Swarm identifier
        swarm_status: Swarm lifecycle status
        formation_state: Formation manager state
        template: Current formation template, if initialized
        stability: Formation stability score (0-1)
        leader_id: Current leader, if elected
        metrics: Latest slow-loop metrics
        auctions: Auction statistics
        workload: Workload statistics
        missions: Mission executions
        pending_acks: Unacknowledged outbound messages
        tick_count: Fast ticks run so far
    """
    swarm_id: str
    swarm_status: SwarmStatus
    formation_state: FormationState
    template: Optional[FormationTemplate]
    stability: float
    leader_id: Optional[str]
    metrics: SwarmMetrics
    auctions: AuctionStats
    workload: WorkloadStats
    missions: Tuple[MissionExecution, ...]
    pending_acks: int
    tick_count: int


class SwarmCoordinator:
    """Coordinates one swarm.

    Example:
        coordinator = SwarmCoordinator(Swarm("alpha", agent_ids=ids))
        for agent in agents:
            coordinator.submit_telemetry(agent)
        coordinator.initialize()
        coordinator.assign_mission(mission)

        coordinator.start()
        ...
        coordinator.close()
    """

    def __init__(
        self,
        swarm: Swarm,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.time,
        bus: Optional[MessageBus] = None,
    ):
        self.swarm = swarm
        self.config = config or EngineConfig()
        self._clock = clock
        self.bus = bus or MessageBus()

        self.formation = FormationManager(self.config.formation, clock)
        self.forces = ForceComputer(self.config.loop.worker_threads)
        self.election = LeaderElection(swarm.swarm_id, clock)
        self.auctions = AuctionSystem(self.bus, self.config.allocation, clock)
        self.balancer = WorkloadBalancer(self.config.allocation, clock)
        self.orchestrator = MissionOrchestrator(self.bus, self.auctions, self.balancer, clock)
        self.optimizer = BehaviorOptimizer(clock=clock)
        self.auctions.on_resolved(self._on_auction_resolved)

        self.environment: Optional[EnvironmentalData] = None
        self.obstacles: Tuple[Obstacle, ...] = ()
        self.mission: Optional[Mission] = None
        self.mission_type: Optional[TaskType] = None
        self.targets: Dict[str, float] = dict(DEFAULT_TARGETS)

        self.metrics = SwarmMetrics()
        self.last_forces: Dict[str, AgentForces] = {}
        self.tick_count = 0

        self._agents: Dict[str, Agent] = {}
        self._inbound: queue.Queue = queue.Queue(maxsize=self.config.loop.inbound_queue_size)
        self._state_lock = threading.RLock()
        self._last_rebalance = 0.0
        self._last_tick_duration = 0.0

        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []

    # Inbound

    def submit_telemetry(self, agent: Agent) -> bool:
        """Queue an agent snapshot. Returns False when the queue is full."""
        return self._enqueue(("telemetry", agent))

    def submit_bid(
        self,
        auction_id: str,
        bidder_id: str,
        bid_value: float,
        capabilities: Dict[str, float],
        estimated_completion_time: float,
    ) -> bool:
        """Queue a bid for the next tick."""
        return self._enqueue(
            ("bid", (auction_id, bidder_id, bid_value, capabilities, estimated_completion_time))
        )

    def submit_message(self, message: SwarmMessage) -> bool:
        """Queue an inbound message (votes, acks, status reports)."""
        return self._enqueue(("message", message))

    def set_environment(self, environment: Optional[EnvironmentalData]) -> None:
        with self._state_lock:
            self.environment = environment

    def set_obstacles(self, obstacles: Sequence[Obstacle]) -> None:
        with self._state_lock:
            self.obstacles = tuple(obstacles)

    def agents(self) -> List[Agent]:
        with self._state_lock:
            return list(self._agents.values())

    def members(self) -> List[Agent]:
        """Known member snapshots, in swarm order."""
        with self._state_lock:
            return [self._agents[i] for i in self.swarm.agent_ids if i in self._agents]

    def _enqueue(self, item) -> bool:
        try:
            self._inbound.put_nowait(item)
        except queue.Full:
            logger.warning(f"Inbound queue full, dropping {item[0]}")
            return False
        return True

    def drain_inbound(self) -> int:
        """Apply every queued input. Returns the number applied."""
        applied = 0
        with self._state_lock:
            while True:
                try:
                    kind, item = self._inbound.get_nowait()
                except queue.Empty:
                    return applied
                if kind == "telemetry":
                    self._agents[item.agent_id] = item
                elif kind == "bid":
                    auction_id, bidder_id, value, capabilities, eta = item
                    self.auctions.submit_bid(auction_id, bidder_id, value, capabilities, eta)
                elif kind == "message":
                    self._handle_message(item)
                applied += 1

    def _handle_message(self, message: SwarmMessage) -> None:
        payload = message.payload
        if "ack_id" in payload:
            self.bus.ack(payload["ack_id"])

        if message.message_type == MessageType.CONSENSUS_VOTE:
            self.election.record_vote(message)
        elif message.message_type == MessageType.STATUS_REPORT and "task_id" in payload:
            try:
                status = TaskStatus(payload.get("status", TaskStatus.IN_PROGRESS.value))
            except ValueError:
                logger.warning(
                    f"Ignoring status report from {message.sender_id}: "
                    f"unknown task status {payload.get('status')!r}"
                )
                return
            progress = payload.get("progress")
            if progress is not None and not isinstance(progress, (int, float)):
                logger.warning(f"Dropping non-numeric progress {progress!r} from {message.sender_id}")
                progress = None
            if not self.orchestrator.mark_task(payload["task_id"], status, progress):
                logger.warning(
                    f"Ignoring status report from {message.sender_id}: "
                    f"unknown task {payload['task_id']}"
                )
        elif message.message_type == MessageType.FORMATION_COMPLETE:
            logger.debug(f"{message.sender_id} reached its formation slot")

    # Lifecycle

    def initialize(self, center=None) -> FormationTemplate:
        """Build the first formation and elect a leader."""
        with self._state_lock:
            self.drain_inbound()
            template = self.formation.initialize(self.swarm, self.members(), center)
            self.elect_leader()
            self.swarm.status = SwarmStatus.ACTIVE
            return template

    def elect_leader(self) -> ElectionResult:
        """Run an election among the available members."""
        with self._state_lock:
            members = self.members()
            result, messages = self.election.run(members)
            self.bus.publish_all(messages)

            consensus = self.swarm.coordination_state.consensus
            consensus.term = result.term
            consensus.quorum = result.quorum
            consensus.phase = "failed" if result.failed else "committed"
            if not result.failed:
                self.swarm.leader_id = result.winner
                self.swarm.backup_leader_ids = select_backup_leaders(members, result.winner)
            return result

    def assign_mission(self, mission: Mission) -> MissionExecution:
        """Decompose and allocate a mission, then optimize the swarm for it.

        Raises:
            NoEligibleAgentsError: no available agents
        """
        with self._state_lock:
            self.drain_inbound()
            agents = self.agents()
            execution = self.orchestrator.execute_mission(mission, self.swarm, agents)
            self.mission = mission
            self.mission_type = execution.task_type
            self.swarm.mission_id = mission.mission_id

            plan = self.optimizer.optimize_for_mission(self.swarm, self.mission_type, self.environment)
            self.swarm.parameters = plan.parameters
            self.swarm.formation = plan.formation
            for adjustment in plan.adjustments:
                logger.info(f"Swarm {self.swarm.swarm_id}: {adjustment.parameter}: {adjustment.reason}")
            return execution

    # Ticks

    def tick(self, now: Optional[float] = None) -> TickResult:
        """Fast loop: formation upkeep and per-agent forces."""
        started = time.perf_counter()
        with self._state_lock:
            now = self._clock() if now is None else now
            self.drain_inbound()
            members = self.members()

            update = None
            if self.formation.template is not None:
                update = self.formation.update(
                    self.swarm,
                    members,
                    environment=self.environment,
                    obstacles=self.obstacles,
                    mission_type=self.mission_type,
                    threat_level=self.mission.threat_level if self.mission else 0,
                )
                self.bus.publish_all(update.commands)
                if update.template.formation != self.swarm.formation:
                    logger.debug(
                        f"Swarm {self.swarm.swarm_id} flying {update.template.formation.value} "
                        f"for requested {self.swarm.formation.value}"
                    )

            forces = self.forces.compute(members, self.swarm.parameters, self.formation.slot_targets())
            warnings = 0
            for agent_forces in forces.values():
                urgent = [r for r in agent_forces.risks if r.severity >= WARNING_SEVERITY]
                if urgent:
                    self.bus.publish(collision_warning(SENDER_ID, urgent[0], now))
                    warnings += 1

            self.last_forces = forces
            self.tick_count += 1
            self._last_tick_duration = time.perf_counter() - started
            return TickResult(timestamp=now, formation=update, forces=forces, warnings=warnings)

    def slow_tick(self, now: Optional[float] = None) -> SwarmMetrics:
        """Slow loop: metrics, emergencies, leadership, allocation and tuning."""
        with self._state_lock:
            now = self._clock() if now is None else now
            self.drain_inbound()
            members = self.members()

            patterns = detect_patterns(members)
            self.swarm.coordination_state.flocking = flocking_state(patterns)
            self._update_emergency(patterns.emergency, patterns.entropy, now)

            if self.swarm.leader_id is not None and not self._is_available(self.swarm.leader_id):
                logger.warning(f"Swarm {self.swarm.swarm_id}: leader {self.swarm.leader_id} lost")
                self.swarm.leader_id = None
            if self.swarm.leader_id is None and members:
                self.elect_leader()

            self.auctions.process_deadlines(now)
            self.bus.expire_pending(now)
            self.auctions.purge_expired(now)

            workload = self.balancer.stats()
            pending = self.bus.pending_acks(now)
            latency = 0.0
            if pending:
                latency = sum(now - m.timestamp for m in pending) / len(pending) * 1000.0
            stability = self.formation.stability_score(members)
            self.metrics = compute_metrics(
                members,
                self.swarm.parameters,
                patterns,
                self.formation.slot_targets(),
                stability,
                communication_efficiency=delivery_ratio(self.bus),
                resource_utilization=workload.average_utilization,
                communication_latency=latency,
                decision_speed=1.0 / self._last_tick_duration if self._last_tick_duration > 0 else 0.0,
                now=now,
            )
            self.swarm.performance.formation_stability = stability
            self.swarm.performance.communication_efficiency = delivery_ratio(self.bus)
            self.swarm.performance.resource_utilization = workload.average_utilization

            if now - self._last_rebalance >= self.config.loop.rebalance_interval:
                self._last_rebalance = now
                self.balancer.rebalance(self.agents())
                self._tune(now)
            return self.metrics

    def _tune(self, now: float) -> Optional[TuningResult]:
        if self.mission_type is None:
            return None
        self.optimizer.record_performance(self.swarm.swarm_id, PerformanceRecord(
            timestamp=now,
            parameters=self.swarm.parameters,
            formation=self.swarm.formation,
            mission_type=self.mission_type,
            cohesion=self.metrics.cohesion,
            efficiency=self.metrics.efficiency,
            safety=self.metrics.resilience,
            mission_success=self.swarm.performance.mission_success_rate,
        ))
        result = self.optimizer.adaptive_tuning(self.swarm, self.metrics, self.mission_type, self.targets)
        self.swarm.parameters = result.apply(self.swarm.parameters)
        return result

    def _update_emergency(self, emergency: bool, entropy: float, now: float) -> None:
        state = self.swarm.coordination_state
        if emergency and not state.emergency.active:
            reason = f"swarm instability (entropy {entropy:.2f})"
            state.emergency = EmergencyState(active=True, reason=reason, since=now)
            self.swarm.status = SwarmStatus.EMERGENCY
            logger.warning(f"Swarm {self.swarm.swarm_id}: emergency, {reason}")
            self.bus.publish(SwarmMessage(
                message_type=MessageType.EMERGENCY_ALERT,
                sender_id=SENDER_ID,
                payload={"swarm_id": self.swarm.swarm_id, "reason": reason, "entropy": entropy},
                priority=MessagePriority.CRITICAL,
                timestamp=now,
            ))
        elif not emergency and state.emergency.active:
            state.emergency = replace(state.emergency, active=False)
            self.swarm.status = SwarmStatus.ACTIVE
            logger.info(f"Swarm {self.swarm.swarm_id}: emergency cleared")

    def _is_available(self, agent_id: str) -> bool:
        agent = self._agents.get(agent_id)
        return agent is not None and agent.is_available

    def _on_auction_resolved(self, auction: Auction) -> None:
        self.orchestrator.handle_auction(auction, self.agents())

    # Background loops

    def start(self) -> bool:
        """Run the fast and slow loops on background threads."""
        if self._threads:
            logger.warning("Coordinator already running")
            return True
        self._stop_event.clear()
        self._threads = [
            threading.Thread(
                target=self._run_loop,
                args=(self.tick, self.config.loop.fast_period),
                name="swarm-fast",
                daemon=True,
            ),
            threading.Thread(
                target=self._run_loop,
                args=(self.slow_tick, self.config.loop.slow_period),
                name="swarm-slow",
                daemon=True,
            ),
        ]
        for thread in self._threads:
            thread.start()
        logger.info(
            f"Coordinator started: fast {self.config.loop.fast_rate} Hz, "
            f"slow {self.config.loop.slow_rate} Hz"
        )
        return True

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the background loops."""
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info("Coordinator stopped")

    def close(self) -> None:
        self.stop()
        self.forces.shutdown()

    def __enter__(self) -> "SwarmCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _run_loop(self, step: Callable[[], object], period: float) -> None:
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                step()
            except Exception:
                logger.exception(f"{threading.current_thread().name} loop step failed")
            self._stop_event.wait(max(0.0, period - (time.monotonic() - started)))

    # Status

    def status(self) -> SystemStatus:
        with self._state_lock:
            members = self.members()
            stability = self.formation.stability_score(members)
            return SystemStatus(
                swarm_id=self.swarm.swarm_id,
                swarm_status=self.swarm.status,
                formation_state=self.formation.state,
                template=self.formation.template,
                stability=stability,
                leader_id=self.swarm.leader_id,
                metrics=self.metrics,
                auctions=self.auctions.stats(),
                workload=self.balancer.stats(),
                missions=tuple(self.orchestrator.executions()),
                pending_acks=len(self.bus.pending_acks(self._clock())),
                tick_count=self.tick_count,
            )
