"""Mission decomposition and task allocation.

A mission is turned into typed tasks by keyword category, then each task
goes to the auction system (high priority or multi-agent tasks) or
directly to the workload balancer.
"""

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from ..core.errors import NoEligibleAgentsError
from ..core.messages import MessageBus, MessagePriority, MessageType, SwarmMessage
from ..core.models import (
    Agent,
    AgentCategory,
    Mission,
    Swarm,
    Task,
    TaskRequirements,
    TaskStatus,
    TaskType,
)
from .auction import Auction, AuctionStatus, AuctionSystem
from .workload import WorkloadBalancer

logger = logging.getLogger(__name__)


class MissionCategory(Enum):
    AREA_SURVEILLANCE = "area_surveillance"
    SEARCH_AND_RESCUE = "search_and_rescue"
    RECONNAISSANCE = "reconnaissance"
    PATROL = "patrol"
    ESCORT = "escort"
    GENERIC = "generic"


# Checked in order; first match wins
CATEGORY_KEYWORDS = (
    (MissionCategory.AREA_SURVEILLANCE, ("surveillance", "monitor")),
    (MissionCategory.SEARCH_AND_RESCUE, ("search", "rescue")),
    (MissionCategory.RECONNAISSANCE, ("reconnaissance", "recon")),
    (MissionCategory.PATROL, ("patrol",)),
    (MissionCategory.ESCORT, ("escort", "protect")),
)

CATEGORY_TASK_TYPES = {
    MissionCategory.AREA_SURVEILLANCE: TaskType.SURVEILLANCE,
    MissionCategory.SEARCH_AND_RESCUE: TaskType.SEARCH_AND_RESCUE,
    MissionCategory.RECONNAISSANCE: TaskType.RECONNAISSANCE,
    MissionCategory.PATROL: TaskType.PATROL,
    MissionCategory.ESCORT: TaskType.ESCORT,
    MissionCategory.GENERIC: TaskType.FORMATION_FLIGHT,
}

AUCTION_PRIORITY = 7
MAX_SURVEILLANCE_AREAS = 4
MAX_PATROL_SECTORS = 3

_S = AgentCategory.SURVEILLANCE
_R = AgentCategory.RECONNAISSANCE
_A = AgentCategory.ATTACK
_T = AgentCategory.TRANSPORT
_M = AgentCategory.MULTI_ROLE


class ExecutionStatus(Enum):
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class MissionExecution:
    """Tracks one mission from decomposition to completion.

    Attributes:
        execution_id: Unique identifier
        mission_id: Mission being executed
        swarm_id: Executing swarm
        category: Inferred mission category
        tasks: Tasks the mission decomposed into
        assignments: Agent id -> ids of tasks it holds
        status: Lifecycle status
        started_at: Unix timestamp
        ended_at: Unix timestamp once completed or failed
        progress: Mean task progress (0-1)
        auctions: Auction id -> task id for auctions still tracked
    """
    execution_id: str
    mission_id: str
    swarm_id: str
    category: MissionCategory
    tasks: List[Task]
    assignments: Dict[str, List[str]] = field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.PLANNING
    started_at: float = 0.0
    ended_at: Optional[float] = None
    progress: float = 0.0
    auctions: Dict[str, str] = field(default_factory=dict)

    @property
    def task_type(self) -> TaskType:
        return CATEGORY_TASK_TYPES[self.category]

    def task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.task_id == task_id), None)


def infer_category(mission: Mission) -> MissionCategory:
    """Keyword match over mission name and description."""
    text = f"{mission.name} {mission.description}".lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in text for k in keywords):
            return category
    return MissionCategory.GENERIC


class MissionOrchestrator:
    """Decomposes missions and routes their tasks to allocation.

    Example:
        orchestrator = MissionOrchestrator(bus, auctions, balancer)
        execution = orchestrator.execute_mission(mission, swarm, agents)

        # When the tick loop resolves auctions:
        for auction in auctions.process_deadlines():
            orchestrator.handle_auction(auction)
    """

    def __init__(
        self,
        bus: MessageBus,
        auctions: AuctionSystem,
        balancer: WorkloadBalancer,
        clock: Callable[[], float] = time.time,
        sender_id: str = "orchestrator",
    ):
        self.bus = bus
        self.auctions = auctions
        self.balancer = balancer
        self._clock = clock
        self.sender_id = sender_id
        self._executions: Dict[str, MissionExecution] = {}

    def decompose(self, mission: Mission, swarm: Swarm, agents: Sequence[Agent]) -> List[Task]:
        """Tasks for a mission, by inferred category.

        Args:
            mission: Mission to decompose
            swarm: Executing swarm
            agents: Agents available to the mission

        Returns:
            Pending tasks
        """
        available = [a for a in agents if a.is_available]
        category = infer_category(mission)
        now = self._clock()
        duration = mission.duration_hours * 3600
        deadline = now + duration

        def make(suffix: str, task_type: TaskType, priority: int, count: int, categories) -> Task:
            return Task(
                task_id=f"{suffix}-{mission.mission_id}",
                task_type=task_type,
                priority=min(priority, 10),
                requirements=TaskRequirements(
                    agent_count=max(count, 1),
                    categories=tuple(categories),
                    location=mission.coordinates,
                    duration=duration,
                ),
                created_at=now,
                deadline=deadline,
                mission_id=mission.mission_id,
                description=mission.name,
            )

        def count_of(*categories) -> int:
            return sum(1 for a in available if a.category in categories)

        tasks = []
        if category == MissionCategory.AREA_SURVEILLANCE:
            areas = min(count_of(_S, _M), MAX_SURVEILLANCE_AREAS)
            for i in range(areas):
                tasks.append(make(f"surveillance-{i}", TaskType.SURVEILLANCE,
                                  7 + mission.threat_level, 1, (_S, _M)))
        elif category == MissionCategory.SEARCH_AND_RESCUE:
            tasks.append(make("search-coord", TaskType.SEARCH_AND_RESCUE, 9,
                              min(3, len(available)), (_S, _R, _M)))
            transports = count_of(_T)
            if transports:
                tasks.append(make("rescue-support", TaskType.SEARCH_AND_RESCUE, 8,
                                  min(2, transports), (_T, _M)))
        elif category == MissionCategory.RECONNAISSANCE:
            tasks.append(make("recon-primary", TaskType.RECONNAISSANCE, 8,
                              min(2, count_of(_R, _S)), (_R, _S)))
        elif category == MissionCategory.PATROL:
            sectors = min(math.ceil(len(available) / 2), MAX_PATROL_SECTORS)
            for i in range(sectors):
                tasks.append(make(f"patrol-sector-{i}", TaskType.PATROL, 6, 2, (_S, _R, _M)))
        elif category == MissionCategory.ESCORT:
            tasks.append(make("escort-main", TaskType.ESCORT, 8,
                              min(4, len(available)), (_A, _S, _M)))
        else:
            tasks.append(make("formation-flight", TaskType.FORMATION_FLIGHT, 5,
                              min(len(available), swarm.size or len(available)), ()))

        logger.info(
            f"Mission {mission.mission_id} ({category.value}) decomposed into {len(tasks)} tasks"
        )
        return tasks

    def execute_mission(self, mission: Mission, swarm: Swarm, agents: Sequence[Agent]) -> MissionExecution:
        """Decompose a mission and allocate every task.

        Raises:
            NoEligibleAgentsError: no agent is available at all
        """
        available = [a for a in agents if a.is_available]
        if not available:
            raise NoEligibleAgentsError(f"No available agents for mission {mission.mission_id}")

        execution = MissionExecution(
            execution_id=f"exec-{mission.mission_id}-{uuid.uuid4().hex[:6]}",
            mission_id=mission.mission_id,
            swarm_id=swarm.swarm_id,
            category=infer_category(mission),
            tasks=self.decompose(mission, swarm, available),
            started_at=self._clock(),
        )
        self._executions[execution.execution_id] = execution
        swarm.mission_id = mission.mission_id

        execution.status = ExecutionStatus.EXECUTING
        for task in execution.tasks:
            self.allocate_task(execution, task, available)
        self.refresh(execution.execution_id)
        return execution

    def allocate_task(self, execution: MissionExecution, task: Task, agents: Sequence[Agent]) -> None:
        """Route one task to an auction or a direct assignment."""
        allowed = task.requirements.categories
        eligible = [
            a for a in agents
            if a.is_available and (not allowed or a.category in allowed)
        ]
        if not eligible:
            self._fail_task(task, "no eligible agents")
            return

        if task.priority >= AUCTION_PRIORITY or task.requirements.agent_count > 1:
            auction = self.auctions.initiate_auction(task, [a.agent_id for a in eligible])
            execution.auctions[auction.auction_id] = task.task_id
            return

        choice = self.balancer.find_optimal_assignment(task, eligible)
        if choice is None:
            self._fail_task(task, "no compatible agent")
            return
        agent = next(a for a in eligible if a.agent_id == choice.agent_id)
        self.balancer.assign(agent, task)
        self._record_assignment(execution, choice.agent_id, task.task_id)
        self.bus.publish(SwarmMessage(
            message_type=MessageType.TASK_ASSIGNMENT,
            sender_id=self.sender_id,
            receiver_id=choice.agent_id,
            payload={
                "task_id": task.task_id,
                "task_type": task.task_type.value,
                "priority": task.priority,
                "deadline": task.deadline,
            },
            priority=MessagePriority.HIGH,
            ack_required=True,
            timestamp=self._clock(),
        ))
        logger.info(f"Task {task.task_id} assigned directly to {choice.agent_id}")

    def handle_auction(self, auction: Auction, agents: Sequence[Agent] = ()) -> Optional[MissionExecution]:
        """Apply a resolved auction to the execution that opened it."""
        execution = next(
            (e for e in self._executions.values() if auction.auction_id in e.auctions),
            None,
        )
        if execution is None:
            return None

        task = execution.task(execution.auctions.pop(auction.auction_id))
        if auction.status == AuctionStatus.COMPLETED:
            by_id = {a.agent_id: a for a in agents}
            for agent_id in auction.winners:
                self._record_assignment(execution, agent_id, task.task_id)
                if agent_id in by_id:
                    self.balancer.assign(by_id[agent_id], task)
        else:
            self._fail_task(task, auction.failure_reason or "auction failed")
        self.refresh(execution.execution_id)
        return execution

    def mark_task(self, task_id: str, status: TaskStatus, progress: Optional[float] = None) -> bool:
        """Record progress reported for a task."""
        for execution in self._executions.values():
            task = execution.task(task_id)
            if task is None:
                continue
            task.status = status
            if progress is not None:
                task.progress = min(max(progress, 0.0), 1.0)
            if status == TaskStatus.COMPLETED:
                task.progress = 1.0
            if status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
                for agent_id in task.assigned_agents:
                    self.balancer.release(agent_id, task_id)
            self.refresh(execution.execution_id)
            return True
        return False

    def refresh(self, execution_id: str) -> MissionExecution:
        """Recompute progress and status of an execution."""
        execution = self._executions[execution_id]
        tasks = execution.tasks
        if tasks:
            execution.progress = sum(t.progress for t in tasks) / len(tasks)

        terminal = (TaskStatus.COMPLETED, TaskStatus.FAILED)
        if execution.status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED):
            return execution
        if all(t.status in terminal for t in tasks):
            if tasks and all(t.status == TaskStatus.COMPLETED for t in tasks):
                execution.status = ExecutionStatus.COMPLETED
            else:
                execution.status = ExecutionStatus.FAILED
            execution.ended_at = self._clock()
            logger.info(f"Mission execution {execution_id} {execution.status.value}")
        return execution

    def get(self, execution_id: str) -> Optional[MissionExecution]:
        return self._executions.get(execution_id)

    def active_missions(self) -> List[MissionExecution]:
        return [
            e for e in self._executions.values()
            if e.status in (ExecutionStatus.PLANNING, ExecutionStatus.EXECUTING)
        ]

    def executions(self) -> List[MissionExecution]:
        return list(self._executions.values())

    def _record_assignment(self, execution: MissionExecution, agent_id: str, task_id: str) -> None:
        task_ids = execution.assignments.setdefault(agent_id, [])
        if task_id not in task_ids:
            task_ids.append(task_id)

    def _fail_task(self, task: Task, reason: str) -> None:
        task.status = TaskStatus.FAILED
        task.failure_reason = reason
        logger.warning(f"Task {task.task_id} failed: {reason}")
