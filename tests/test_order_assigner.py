"""Tests for order assignment."""
import itertools

import pytest

from boardsync.schemas.task import TaskStatus
from boardsync.services.order_assigner import (
    OrderStrategy,
    has_unique_orders,
    plan_insert,
    plan_move,
    plan_removal,
    plan_reorder,
)

from conftest import build_task


def column(*pairs, status=TaskStatus.TODO):
    return [build_task(task_id, status, order) for task_id, order in pairs]


def apply(tasks, assignment):
    """Ids sorted by the orders a plan would write."""
    orders = {task.id: task.task_order for task in tasks}
    orders.update(assignment.orders)
    return [task_id for task_id, _ in sorted(orders.items(), key=lambda item: item[1])]


def array_move(ids, source, target):
    result = list(ids)
    result.insert(target, result.pop(source))
    return result


ABC = column(("A", 1.0), ("B", 2.0), ("C", 3.0))
ABC_GAP = column(("A", 1024.0), ("B", 2048.0), ("C", 3072.0))


def test_reorder_upwards_lands_before_anchor():
    """Dragging C onto A yields C, A, B renumbered 1..3."""
    assignment = plan_reorder(ABC, "C", "A")

    assert assignment.sequence == ("C", "A", "B")
    assert assignment.orders == {"C": 1.0, "A": 2.0, "B": 3.0}


def test_reorder_downwards_lands_after_anchor():
    assignment = plan_reorder(ABC, "A", "C")

    assert assignment.sequence == ("B", "C", "A")
    assert assignment.orders == {"B": 1.0, "C": 2.0, "A": 3.0}


def test_renumber_only_lists_changed_tasks():
    assignment = plan_reorder(ABC, "A", "B")

    assert assignment.sequence == ("B", "A", "C")
    assert assignment.orders == {"B": 1.0, "A": 2.0}


def test_reorder_onto_same_index_changes_nothing():
    assignment = plan_reorder(ABC, "B", "B")

    assert assignment.orders == {}
    assert assignment.sequence == ("A", "B", "C")


def test_reorder_unknown_anchor_raises():
    with pytest.raises(ValueError):
        plan_reorder(ABC, "A", "ghost")


@pytest.mark.parametrize("strategy", list(OrderStrategy))
def test_every_reorder_matches_intent_and_stays_unique(strategy):
    """Any drag within a column sorts into the array-move sequence."""
    tasks = column(*[(task_id, float(index + 1)) for index, task_id in enumerate("ABCDE")])
    ids = [task.id for task in tasks]

    for source, target in itertools.permutations(range(len(ids)), 2):
        assignment = plan_reorder(tasks, ids[source], ids[target], strategy=strategy)
        new_orders = {task.id: assignment.orders.get(task.id, task.task_order) for task in tasks}

        assert apply(tasks, assignment) == array_move(ids, source, target)
        assert len(set(new_orders.values())) == len(new_orders)


def test_insert_into_empty_column():
    assert plan_insert([], "X").orders == {"X": 1.0}
    assert plan_insert([], "X", strategy=OrderStrategy.GAP).orders == {"X": 1024.0}


def test_insert_defaults_to_bottom():
    assignment = plan_insert(ABC, "X")

    assert assignment.sequence == ("A", "B", "C", "X")
    assert assignment.orders == {"X": 4.0}


def test_insert_at_top_shifts_column():
    assignment = plan_insert(ABC, "X", index=0)

    assert assignment.orders == {"X": 1.0, "A": 2.0, "B": 3.0, "C": 4.0}


def test_negative_index_counts_from_bottom():
    assert plan_insert(ABC, "X", index=-1).sequence == ("A", "B", "C", "X")
    assert plan_insert(ABC, "X", index=-2).sequence == ("A", "B", "X", "C")


def test_insert_rejects_conflicting_targets():
    with pytest.raises(ValueError):
        plan_insert(ABC, "X", index=0, before="A")


def test_insert_rejects_self_anchor():
    with pytest.raises(ValueError):
        plan_insert(ABC, "A", before="A")


def test_gap_takes_midpoint_between_neighbours():
    assignment = plan_insert(ABC_GAP, "X", after="A", strategy=OrderStrategy.GAP)

    assert assignment.orders == {"X": 1536.0}
    assert not assignment.renumbered


def test_gap_moves_only_the_dragged_task():
    assignment = plan_reorder(ABC_GAP, "C", "A", strategy=OrderStrategy.GAP)

    assert assignment.orders == {"C": 0.0}
    assert apply(ABC_GAP, assignment) == ["C", "A", "B"]


def test_gap_bottom_adds_one_gap():
    assignment = plan_insert(ABC_GAP, "X", strategy=OrderStrategy.GAP)

    assert assignment.orders == {"X": 4096.0}


def test_gap_renumbers_column_with_duplicates():
    """Duplicate keys force a full renumber with gap spacing."""
    tasks = column(("A", 1.0), ("B", 1.0), ("C", 2.0))
    assert not has_unique_orders(tasks)

    assignment = plan_insert(tasks, "X", strategy=OrderStrategy.GAP)

    assert assignment.renumbered
    assert assignment.orders == {"A": 1024.0, "B": 2048.0, "C": 3072.0, "X": 4096.0}


def test_gap_renumbers_when_neighbours_too_close():
    tasks = column(("A", 1.0), ("B", 1.0 + 1e-7))

    assignment = plan_insert(tasks, "X", after="A", strategy=OrderStrategy.GAP)

    assert assignment.renumbered
    assert assignment.sequence == ("A", "X", "B")
    assert assignment.orders == {"A": 1024.0, "X": 2048.0, "B": 3072.0}


def test_removal_renumbers_remaining_tasks():
    assignment = plan_removal(ABC, "B")

    assert assignment.sequence == ("A", "C")
    assert assignment.orders == {"C": 2.0}


def test_removal_with_gaps_keeps_orders():
    assignment = plan_removal(ABC_GAP, "B", strategy=OrderStrategy.GAP)

    assert assignment.orders == {}
    assert assignment.sequence == ("A", "C")


def test_move_with_position_plans_both_columns():
    """Source closes the gap; destination gets the task before the anchor."""
    done = column(("E", 1.0), ("F", 2.0), status=TaskStatus.DONE)

    plan = plan_move(ABC, done, "A", before="F")

    assert plan.source.sequence == ("B", "C")
    assert plan.source.orders == {"B": 1.0, "C": 2.0}
    assert plan.destination.sequence == ("E", "A", "F")
    assert plan.destination.orders == {"A": 2.0, "F": 3.0}


def test_move_to_top_of_column():
    done = column(("E", 1.0), ("F", 2.0), status=TaskStatus.DONE)

    plan = plan_move(ABC, done, "C", index=0)

    assert plan.source.orders == {}
    assert plan.destination.orders == {"C": 1.0, "E": 2.0, "F": 3.0}


def test_move_to_missing_anchor_raises():
    done = column(("E", 1.0), status=TaskStatus.DONE)
    with pytest.raises(ValueError):
        plan_move(ABC, done, "A", before="ghost")
