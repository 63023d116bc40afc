"""Task registry with dependency-aware scheduling queries.

The board never changes a task's status; it answers questions about the
task graph (what is ready, what sits downstream of a failure, what the
deliverables depend on) so the TeamManager can decide.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Set

from ..enums import COMPLETED_TASK_STATUSES, TaskStatus
from ..errors import TaskNotFoundError
from . import prompts
from .task import Task

_RUNNABLE = frozenset({TaskStatus.TODO, TaskStatus.REVISE})


class TaskBoard:
    def __init__(self):
        self._tasks: Dict[str, Task] = {}

    # ── Task management ───────────────────────────────────────

    def add_task(self, task: Task) -> None:
        if task.id in self._tasks:
            raise ValueError(f"Duplicate task id: {task.id}")
        self._tasks[task.id] = task

    def add_tasks(self, tasks: Iterable[Task]) -> None:
        for t in tasks:
            self.add_task(t)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def require_task(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def get_all_tasks(self) -> List[Task]:
        """Tasks in their original list order."""
        return list(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def status_counts(self) -> Counter:
        return Counter(t.status for t in self._tasks.values())

    # ── Graph checks ──────────────────────────────────────────

    def validate_graph(self) -> List[str]:
        """Problems that make the workflow unrunnable (empty list if none)."""
        problems = []
        for task in self._tasks.values():
            for dep in task.dependencies:
                if dep not in self._tasks:
                    problems.append(f"task {task.id} depends on unknown task {dep}")
                elif dep == task.id:
                    problems.append(f"task {task.id} depends on itself")
        if not problems:
            cycle = self._find_cycle()
            if cycle:
                problems.append("dependency cycle: " + " -> ".join(cycle))
        return problems

    def _find_cycle(self) -> List[str]:
        visiting: Set[str] = set()
        done: Set[str] = set()
        path: List[str] = []

        def visit(tid: str) -> List[str]:
            if tid in done:
                return []
            if tid in visiting:
                return path[path.index(tid):] + [tid]
            visiting.add(tid)
            path.append(tid)
            for dep in self._tasks[tid].dependencies:
                found = visit(dep)
                if found:
                    return found
            path.pop()
            visiting.discard(tid)
            done.add(tid)
            return []

        for tid in self._tasks:
            found = visit(tid)
            if found:
                return found
        return []

    # ── Scheduling ────────────────────────────────────────────

    def deps_met(self, task: Task) -> bool:
        return all(
            self._tasks[d].status in COMPLETED_TASK_STATUSES
            for d in task.dependencies
        )

    def get_ready(self, running: Set[str], busy_agents: Set[str]) -> List[Task]:
        """Runnable tasks, in list order, at most one per idle agent."""
        ready = []
        claimed = set(busy_agents)
        for task in self._tasks.values():
            if task.status not in _RUNNABLE or task.id in running:
                continue
            if not self.deps_met(task):
                continue
            agent_id = getattr(task.agent, "id", None)
            if agent_id is not None and agent_id in claimed:
                continue
            claimed.add(agent_id)
            ready.append(task)
        return ready

    def downstream_of(self, task_id: str) -> List[Task]:
        """Every task that transitively depends on ``task_id``, in list order."""
        affected: Set[str] = {task_id}
        changed = True
        while changed:
            changed = False
            for task in self._tasks.values():
                if task.id not in affected and any(d in affected for d in task.dependencies):
                    affected.add(task.id)
                    changed = True
        affected.discard(task_id)
        return [t for t in self._tasks.values() if t.id in affected]

    def deliverables(self) -> List[Task]:
        """Deliverable tasks; the last task stands in when none is marked."""
        marked = [t for t in self._tasks.values() if t.is_deliverable]
        if marked:
            return marked
        tasks = list(self._tasks.values())
        return tasks[-1:] if tasks else []

    def deliverable_closure(self) -> Set[str]:
        """Ids of the marked deliverables and everything they depend on.

        With nothing marked every task counts.
        """
        marked = [t.id for t in self._tasks.values() if t.is_deliverable]
        if not marked:
            return set(self._tasks)
        closure: Set[str] = set()
        stack = marked
        while stack:
            tid = stack.pop()
            if tid in closure:
                continue
            closure.add(tid)
            stack.extend(self._tasks[tid].dependencies)
        return closure

    # ── Context passing ───────────────────────────────────────

    def get_context_for_task(self, task: Task) -> str:
        """Formatted results of the task's completed dependencies."""
        entries = []
        for dep_id in task.dependencies:
            dep = self._tasks.get(dep_id)
            if dep is None or dep.status not in COMPLETED_TASK_STATUSES:
                continue
            entries.append((dep.title, getattr(dep.agent, "name", "?"), dep.result))
        return prompts.format_context(entries)
