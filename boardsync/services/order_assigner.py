"""Order assignment for insertions, reorders and cross-column moves.

Everything here is a pure function of the column contents: callers pass the
current visual sequence of a column and get back the ``task_order`` values to
write. Two strategies are available:

``renumber``
    The column is renumbered to consecutive integers starting at 1. Always
    correct; touches every task whose position shifted.

``gap``
    Only the moved task gets a new value, halfway between its new neighbours
    (or ``gap`` beyond the first/last task). When the column holds duplicate
    keys or the neighbours are closer than ``min_gap`` the whole column is
    renumbered with ``gap`` spacing instead.

In both cases sorting the column by the new values yields exactly the
intended sequence, without duplicates.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from boardsync.schemas.task import Task

DEFAULT_GAP = 1024.0
DEFAULT_MIN_GAP = 1e-6


class OrderStrategy(str, Enum):
    """How new task_order values are computed."""

    RENUMBER = "renumber"
    GAP = "gap"


@dataclass(frozen=True)
class OrderAssignment:
    """Result of planning one column.

    ``orders`` maps task id to its new task_order and only lists tasks whose
    value changes (always including the moved task). ``sequence`` is the
    intended visual order of the column after the change.
    """

    orders: Dict[str, float] = field(default_factory=dict)
    sequence: Tuple[str, ...] = ()
    renumbered: bool = False


@dataclass(frozen=True)
class MovePlan:
    """Both sides of a cross-column move."""

    source: OrderAssignment
    destination: OrderAssignment


def has_unique_orders(column: Sequence[Task]) -> bool:
    orders = [task.task_order for task in column]
    return len(orders) == len(set(orders))


def _sorted(column: Sequence[Task]) -> List[Task]:
    return sorted(column, key=lambda task: task.task_order)


def _index_of(sequence: Sequence[Task], task_id: str) -> int:
    for index, task in enumerate(sequence):
        if task.id == task_id:
            return index
    raise ValueError(f"task {task_id} is not in the column")


def _renumber(
    sequence: Sequence[str],
    current: Dict[str, Optional[float]],
    moved_id: Optional[str],
    step: float,
    start: float,
) -> OrderAssignment:
    orders: Dict[str, float] = {}
    for position, task_id in enumerate(sequence):
        value = start + position * step
        if task_id == moved_id or current.get(task_id) != value:
            orders[task_id] = value
    return OrderAssignment(orders=orders, sequence=tuple(sequence), renumbered=True)


def _target_index(
    remaining: Sequence[Task],
    index: Optional[int],
    before: Optional[str],
    after: Optional[str],
) -> int:
    given = [value is not None for value in (index, before, after)]
    if sum(given) > 1:
        raise ValueError("pass only one of index, before, after")
    if before is not None:
        return _index_of(remaining, before)
    if after is not None:
        return _index_of(remaining, after) + 1
    if index is None:
        return len(remaining)
    if index < 0:
        index += len(remaining) + 1
    return max(0, min(index, len(remaining)))


def plan_insert(
    column: Sequence[Task],
    task_id: str,
    *,
    index: Optional[int] = None,
    before: Optional[str] = None,
    after: Optional[str] = None,
    strategy: OrderStrategy = OrderStrategy.RENUMBER,
    gap: float = DEFAULT_GAP,
    min_gap: float = DEFAULT_MIN_GAP,
) -> OrderAssignment:
    """Plan placing ``task_id`` into ``column``.

    ``column`` is the destination column; it may already contain the task
    (pure reorder) or not (insertion, or the destination of a move). The
    target is a position in the column *without* the task: ``index`` (0 is the
    top, negative counts from the bottom, None is the bottom), or the anchor
    ``before``/``after`` which the task is placed next to.
    """
    ordered = _sorted(column)
    current: Dict[str, Optional[float]] = {task.id: task.task_order for task in ordered}
    remaining = [task for task in ordered if task.id != task_id]
    if before == task_id or after == task_id:
        raise ValueError("a task cannot be anchored on itself")
    position = _target_index(remaining, index, before, after)
    sequence = [task.id for task in remaining]
    sequence.insert(position, task_id)

    if strategy == OrderStrategy.RENUMBER:
        return _renumber(sequence, current, task_id, step=1.0, start=1.0)

    if not has_unique_orders(remaining):
        return _renumber(sequence, current, task_id, step=gap, start=gap)

    previous = remaining[position - 1].task_order if position > 0 else None
    following = remaining[position].task_order if position < len(remaining) else None
    if previous is None and following is None:
        value = gap
    elif previous is None:
        value = following - gap
    elif following is None:
        value = previous + gap
    else:
        if following - previous < min_gap:
            return _renumber(sequence, current, task_id, step=gap, start=gap)
        value = previous + (following - previous) / 2
        if not previous < value < following:
            return _renumber(sequence, current, task_id, step=gap, start=gap)
    return OrderAssignment(orders={task_id: value}, sequence=tuple(sequence))


def plan_reorder(
    column: Sequence[Task],
    dragged_id: str,
    over_id: str,
    *,
    strategy: OrderStrategy = OrderStrategy.RENUMBER,
    gap: float = DEFAULT_GAP,
    min_gap: float = DEFAULT_MIN_GAP,
) -> OrderAssignment:
    """Move ``dragged_id`` to the index ``over_id`` occupies.

    Dragging upwards lands the task right before the anchor, dragging
    downwards right after it; the remote endpoint applies the same rule.
    """
    ordered = _sorted(column)
    dragged_index = _index_of(ordered, dragged_id)
    over_index = _index_of(ordered, over_id)
    if dragged_index == over_index:
        return OrderAssignment(sequence=tuple(task.id for task in ordered))
    if dragged_index > over_index:
        return plan_insert(ordered, dragged_id, before=over_id, strategy=strategy, gap=gap, min_gap=min_gap)
    return plan_insert(ordered, dragged_id, after=over_id, strategy=strategy, gap=gap, min_gap=min_gap)


def plan_removal(
    column: Sequence[Task],
    task_id: str,
    *,
    strategy: OrderStrategy = OrderStrategy.RENUMBER,
    gap: float = DEFAULT_GAP,
) -> OrderAssignment:
    """Plan the column a task leaves; renumbering keeps it contiguous."""
    ordered = _sorted(column)
    remaining = [task.id for task in ordered if task.id != task_id]
    if strategy == OrderStrategy.GAP and has_unique_orders(ordered):
        return OrderAssignment(sequence=tuple(remaining))
    current: Dict[str, Optional[float]] = {task.id: task.task_order for task in ordered}
    step = 1.0 if strategy == OrderStrategy.RENUMBER else gap
    return _renumber(remaining, current, None, step=step, start=step)


def plan_move(
    source: Sequence[Task],
    destination: Sequence[Task],
    task_id: str,
    *,
    before: Optional[str] = None,
    index: Optional[int] = None,
    strategy: OrderStrategy = OrderStrategy.RENUMBER,
    gap: float = DEFAULT_GAP,
    min_gap: float = DEFAULT_MIN_GAP,
) -> MovePlan:
    """Plan moving a task out of ``source`` into ``destination``."""
    return MovePlan(
        source=plan_removal(source, task_id, strategy=strategy, gap=gap),
        destination=plan_insert(
            [task for task in destination if task.id != task_id],
            task_id,
            before=before,
            index=index,
            strategy=strategy,
            gap=gap,
            min_gap=min_gap,
        ),
    )
