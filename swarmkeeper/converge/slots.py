"""Reduce the tasks of a service to one authoritative task per slot."""

import logging
from collections.abc import Iterable, Set

from ..models import Task
from .states import rank

logger = logging.getLogger(__name__)


def _wins_slot(candidate: Task, incumbent: Task) -> bool:
    """Decide whether ``candidate`` replaces ``incumbent`` in a shared slot.

    The task with the lower desired state wins, so an old task whose
    desired state was lowered to shutdown loses to its replacement. With
    equal desired states the observed state breaks ties, which happens
    with the "start-first" update order. Equal observed states keep the
    incumbent.
    """
    candidate_desired = rank(candidate.desired_state)
    incumbent_desired = rank(incumbent.desired_state)
    if candidate_desired != incumbent_desired:
        return candidate_desired < incumbent_desired
    return rank(candidate.state) > rank(incumbent.state)


def tasks_by_slot(tasks: Iterable[Task], active_nodes: Set[str]) -> dict[int, Task]:
    """Map tasks to their slots, keeping a single task per slot.

    A task is comparable to a slot in which the scheduler places a
    container on a node. Several tasks can report the same slot in restart
    scenarios, see ``_wins_slot`` for which one is kept.

    Tasks are skipped when their desired or observed state is unknown, or
    when they are placed on a node that is not active. Tasks without a
    node have not been placed yet and are kept.

    Args:
        tasks: Task snapshots of one service
        active_nodes: IDs of the nodes that are not down

    Returns:
        dict: slot number -> task
    """
    slots: dict[int, Task] = {}
    for task in tasks:
        if rank(task.desired_state) == 0 or rank(task.state) == 0:
            logger.debug(f"Skipping task {task.id} with unknown state")
            continue
        if task.node_id and task.node_id not in active_nodes:
            logger.debug(f"Skipping task {task.id} on inactive node {task.node_id}")
            continue

        incumbent = slots.get(task.slot)
        if incumbent is None or _wins_slot(task, incumbent):
            slots[task.slot] = task

    return slots
