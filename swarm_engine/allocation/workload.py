"""Per-agent workload tracking, direct assignment and rebalancing.

Utilization is the priority-weighted complexity of an agent's tasks
relative to its mean capability proficiency, clamped to [0, 1].
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from ..core.config import AllocationConfig
from ..core.models import Agent, AgentCategory, Task, TaskStatus, TaskType
from .capabilities import compatibility_score, mean_proficiency

logger = logging.getLogger(__name__)

TASK_COMPLEXITY: Dict[TaskType, float] = {
    TaskType.SURVEILLANCE: 0.3,
    TaskType.RECONNAISSANCE: 0.4,
    TaskType.SEARCH_AND_RESCUE: 0.8,
    TaskType.PATROL: 0.5,
    TaskType.ESCORT: 0.6,
    TaskType.FORMATION_FLIGHT: 0.2,
    TaskType.AREA_DENIAL: 0.7,
    TaskType.PERIMETER_DEFENSE: 0.9,
    TaskType.SUPPLY_DELIVERY: 0.4,
    TaskType.COMMUNICATION_RELAY: 0.2,
}

MAX_COMPLEXITY = 2.0
ASSIGNMENT_LOAD_FACTOR = 0.1


def task_complexity(task: Task) -> float:
    """Base complexity for the type, scaled by priority and team size."""
    complexity = TASK_COMPLEXITY.get(task.task_type, 0.5)
    complexity *= 1 + task.priority / 20
    if task.requirements.agent_count > 1:
        complexity *= 1 + task.requirements.agent_count * 0.1
    return min(complexity, MAX_COMPLEXITY)


def compute_utilization(tasks: Sequence[Task], category: AgentCategory) -> float:
    load = sum(t.priority / 10 * task_complexity(t) for t in tasks)
    if load == 0:
        return 0.0
    capacity = mean_proficiency(category)
    if capacity <= 0:
        return 1.0
    return min(load / capacity, 1.0)


@dataclass
class AgentWorkload:
    """Tracked load of one agent.

    Attributes:
        agent_id: Agent identifier
        category: Agent category (sets capacity)
        tasks: Tasks the agent currently holds
        utilization: 0-1
        updated_at: Unix timestamp of last recomputation
    """
    agent_id: str
    category: AgentCategory
    tasks: List[Task] = field(default_factory=list)
    utilization: float = 0.0
    updated_at: float = 0.0

    def recompute(self, now: float) -> float:
        self.utilization = compute_utilization(self.tasks, self.category)
        self.updated_at = now
        return self.utilization


@dataclass(frozen=True)
class Assignment:
    """Best agent found for a task."""
    agent_id: str
    task_id: str
    score: float
    compatibility: float
    balance: float
    expected_utilization: float


@dataclass(frozen=True)
class RebalanceAction:
    task_id: str
    from_agent: str
    to_agent: str
    from_utilization: float
    to_utilization: float


@dataclass(frozen=True)
class WorkloadStats:
    total_agents: int
    average_utilization: float
    utilization_variance: float
    overloaded: int
    underloaded: int


class WorkloadBalancer:
    """Tracks workloads and picks agents for directly assigned tasks.

    Example:
        balancer = WorkloadBalancer()
        choice = balancer.find_optimal_assignment(task, agents)
        if choice:
            balancer.assign(agents_by_id[choice.agent_id], task)

        # Periodically:
        actions = balancer.rebalance(agents)
    """

    def __init__(
        self,
        config: Optional[AllocationConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or AllocationConfig()
        self._clock = clock
        self._workloads: Dict[str, AgentWorkload] = {}

    def update_workload(self, agent: Agent, active_tasks: Sequence[Task]) -> AgentWorkload:
        """Replace the tracked task list of an agent and recompute utilization."""
        workload = AgentWorkload(agent.agent_id, agent.category, list(active_tasks))
        workload.recompute(self._clock())
        self._workloads[agent.agent_id] = workload
        return workload

    def workload(self, agent_id: str) -> Optional[AgentWorkload]:
        return self._workloads.get(agent_id)

    def utilization(self, agent_id: str) -> float:
        workload = self._workloads.get(agent_id)
        return workload.utilization if workload else 0.0

    def utilizations(self) -> Dict[str, float]:
        return {agent_id: w.utilization for agent_id, w in self._workloads.items()}

    def assign(self, agent: Agent, task: Task) -> AgentWorkload:
        """Give task to agent and recompute its utilization."""
        workload = self._workloads.get(agent.agent_id)
        if workload is None:
            workload = AgentWorkload(agent.agent_id, agent.category)
            self._workloads[agent.agent_id] = workload
        if all(t.task_id != task.task_id for t in workload.tasks):
            workload.tasks.append(task)
        if agent.agent_id not in task.assigned_agents:
            task.assigned_agents.append(agent.agent_id)
        task.status = TaskStatus.ASSIGNED
        workload.recompute(self._clock())
        return workload

    def release(self, agent_id: str, task_id: str) -> bool:
        """Remove a finished or failed task from an agent's queue."""
        workload = self._workloads.get(agent_id)
        if workload is None:
            return False
        before = len(workload.tasks)
        workload.tasks = [t for t in workload.tasks if t.task_id != task_id]
        workload.recompute(self._clock())
        return len(workload.tasks) < before

    def find_optimal_assignment(
        self,
        task: Task,
        agents: Sequence[Agent],
    ) -> Optional[Assignment]:
        """Best available agent for task, or None.

        Agents above the utilization ceiling or below the compatibility
        floor are skipped. Candidates score 0.6 * compatibility +
        0.4 * balance, where balance is 1 - variance of swarm utilization
        with the assignment applied.
        """
        now = self._clock()
        available = [a for a in agents if a.is_available]
        current = {a.agent_id: self.utilization(a.agent_id) for a in available}
        added_load = task_complexity(task) * ASSIGNMENT_LOAD_FACTOR

        best: Optional[Assignment] = None
        for agent in sorted(available, key=lambda a: a.agent_id):
            utilization = current[agent.agent_id]
            if utilization > self.config.max_assign_utilization:
                continue
            compatibility = compatibility_score(agent, task, utilization, now)
            if compatibility < self.config.min_compatibility:
                continue

            expected = min(utilization + added_load, 1.0)
            projected = dict(current)
            projected[agent.agent_id] = expected
            balance = max(0.0, 1.0 - float(np.var(list(projected.values()))))
            score = 0.6 * compatibility + 0.4 * balance

            if best is None or score > best.score:
                best = Assignment(
                    agent_id=agent.agent_id,
                    task_id=task.task_id,
                    score=score,
                    compatibility=compatibility,
                    balance=balance,
                    expected_utilization=expected,
                )
        return best

    def rebalance(self, agents: Sequence[Agent]) -> List[RebalanceAction]:
        """Move low-priority tasks off overloaded agents.

        A task moves only to a compatible underloaded agent and only if the
        receiver ends up no busier than the giver was, so the maximum
        utilization never rises.
        """
        now = self._clock()
        by_id = {a.agent_id: a for a in agents if a.is_available}
        cfg = self.config
        actions: List[RebalanceAction] = []

        overloaded = sorted(
            (w for w in self._workloads.values() if w.utilization > cfg.overload_threshold),
            key=lambda w: (-w.utilization, w.agent_id),
        )
        for source in overloaded:
            movable = sorted(
                (t for t in source.tasks
                 if t.priority < cfg.movable_priority and t.status == TaskStatus.ASSIGNED),
                key=lambda t: (t.priority, t.task_id),
            )
            for task in movable:
                if source.utilization <= cfg.overload_threshold:
                    break
                target = self._pick_target(task, source, by_id, now)
                if target is None:
                    continue

                before = source.utilization
                source.tasks = [t for t in source.tasks if t.task_id != task.task_id]
                source.recompute(now)
                target.tasks.append(task)
                target.recompute(now)
                task.assigned_agents = [
                    target.agent_id if a == source.agent_id else a for a in task.assigned_agents
                ]
                actions.append(RebalanceAction(
                    task_id=task.task_id,
                    from_agent=source.agent_id,
                    to_agent=target.agent_id,
                    from_utilization=source.utilization,
                    to_utilization=target.utilization,
                ))
                logger.info(
                    f"Rebalanced {task.task_id}: {source.agent_id} ({before:.2f}) -> "
                    f"{target.agent_id} ({target.utilization:.2f})"
                )
        return actions

    def _pick_target(
        self,
        task: Task,
        source: AgentWorkload,
        agents: Dict[str, Agent],
        now: float,
    ) -> Optional[AgentWorkload]:
        best = None
        best_score = 0.5
        for agent_id in sorted(agents):
            if agent_id == source.agent_id or agent_id in task.assigned_agents:
                continue
            agent = agents[agent_id]
            workload = self._workloads.get(agent_id) or AgentWorkload(agent_id, agent.category)
            if workload.utilization >= self.config.underload_threshold:
                continue
            after = compute_utilization(workload.tasks + [task], workload.category)
            if after > source.utilization:
                continue
            score = compatibility_score(agent, task, workload.utilization, now)
            if score > best_score:
                best, best_score = workload, score
        if best is not None and best.agent_id not in self._workloads:
            self._workloads[best.agent_id] = best
        return best

    def stats(self) -> WorkloadStats:
        values = [w.utilization for w in self._workloads.values()]
        if not values:
            return WorkloadStats(0, 0.0, 0.0, 0, 0)
        return WorkloadStats(
            total_agents=len(values),
            average_utilization=float(np.mean(values)),
            utilization_variance=float(np.var(values)),
            overloaded=sum(1 for v in values if v > self.config.overload_threshold),
            underloaded=sum(1 for v in values if v < self.config.underload_threshold),
        )
