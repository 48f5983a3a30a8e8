# app/services/dependency_graph.py
"""
Dependency graph manager.

Edges are stored redundantly on both endpoints: the blocking task carries
``{"task_id": <blocked>, "type": "blocking"}`` and the blocked task carries
``{"task_id": <blocker>, "type": "blocked_by"}``. Every mutator writes both
sides in one transaction.
"""

import logging
from collections import deque
from typing import Dict, Iterable, List, Set, Tuple

from app.models import DependencyType, TaskStatus
from app.schemas import TaskOut
from app.services.store import EntityStore

logger = logging.getLogger(__name__)


def blocking_edge(target_task_id: str) -> dict:
    return {"task_id": target_task_id, "type": DependencyType.BLOCKING.value}


def blocked_by_edge(source_task_id: str) -> dict:
    return {"task_id": source_task_id, "type": DependencyType.BLOCKED_BY.value}


def compute_blocked(tasks: Iterable[TaskOut]) -> Set[str]:
    """
    Ids of the tasks that are currently blocked.

    A task is blocked when at least one of its ``blocked_by`` targets exists in the
    collection and is not done. Edges pointing at tasks missing from the collection
    (e.g. deleted tasks) never block.
    """
    tasks = list(tasks)
    status_by_id = {task.id: task.status for task in tasks}
    blocked = set()
    for task in tasks:
        for blocker_id in task.blocked_by_ids():
            status = status_by_id.get(blocker_id)
            if status is not None and status != TaskStatus.DONE:
                blocked.add(task.id)
                break
    return blocked


def find_cycle(tasks: Iterable[TaskOut], source_task_id: str, target_task_id: str) -> bool:
    """
    True if ``source`` blocking ``target`` closes a cycle, i.e. ``target`` already
    blocks ``source`` directly or transitively. Only used for diagnostics, cycles
    are not rejected.
    """
    if source_task_id == target_task_id:
        return True
    blocking_map: Dict[str, List[str]] = {task.id: task.blocking_ids() for task in tasks}
    visited = set()
    queue = deque([target_task_id])
    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        for blocked_id in blocking_map.get(current, []):
            if blocked_id == source_task_id:
                return True
            queue.append(blocked_id)
    return False


class DependencyGraphManager:
    def __init__(self, store: EntityStore):
        self.store = store

    def add_dependency(self, project_id: str, source_task_id: str, target_task_id: str) -> Tuple[TaskOut, TaskOut]:
        """Record that ``source`` blocks ``target`` on both endpoints"""
        with self.store.transaction() as session:
            source = self.store.get_task(session, source_task_id, project_id, for_update=True)
            target = self.store.get_task(session, target_task_id, project_id, for_update=True)

            self.store.array_union(source, "dependencies", blocking_edge(target_task_id))
            self.store.array_union(target, "dependencies", blocked_by_edge(source_task_id))

            source_out = TaskOut.model_validate(source)
            target_out = TaskOut.model_validate(target)

        if find_cycle(self.store.list_tasks(project_id), source_task_id, target_task_id):
            logger.warning(
                f"Dependency {source_task_id} -> {target_task_id} closes a cycle in project {project_id}; "
                f"the tasks involved stay blocked until an edge is removed"
            )
        logger.info(f"Task {source_task_id} now blocks task {target_task_id}")
        return source_out, target_out

    def remove_dependency(self, project_id: str, source_task_id: str, target_task_id: str) -> TaskOut:
        """
        Remove the ``source`` blocks ``target`` edge from both endpoints.

        The target may already be gone (tasks are deleted without touching the
        edges that point at them), in which case only the source side is cleaned.
        """
        with self.store.transaction() as session:
            source = self.store.get_task(session, source_task_id, project_id, for_update=True)
            self.store.array_remove(source, "dependencies", blocking_edge(target_task_id))

            targets = self.store.tasks_by_ids(session, [target_task_id])
            for target in targets:
                self.store.array_remove(target, "dependencies", blocked_by_edge(source_task_id))
            if not targets:
                logger.info(f"Dependency target {target_task_id} no longer exists, cleaned source side only")

            source_out = TaskOut.model_validate(source)

        logger.info(f"Task {source_task_id} no longer blocks task {target_task_id}")
        return source_out

    def blocked_task_ids(self, project_id: str) -> Set[str]:
        return compute_blocked(self.store.list_tasks(project_id))
