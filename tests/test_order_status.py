from __future__ import annotations

import pytest

from plantasy.domain.orders import InvalidStatusTransition, OrderStatus, validate_transition
from plantasy.domain.orders.status import is_terminal, parse_status


@pytest.mark.parametrize(
    ("current", "target"),
    [
        ("PENDING", "CONFIRMED"),
        ("PENDING", "CANCELLED"),
        ("CONFIRMED", "SHIPPED"),
        ("CONFIRMED", "CANCELLED"),
        ("SHIPPED", "DELIVERED"),
    ],
)
def test_allowed_transitions(current, target):
    assert validate_transition(current, target) == OrderStatus(target)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        ("PENDING", "SHIPPED"),
        ("PENDING", "PENDING"),
        ("SHIPPED", "CANCELLED"),
        ("DELIVERED", "CANCELLED"),
        ("CANCELLED", "CONFIRMED"),
    ],
)
def test_illegal_transitions_are_rejected(current, target):
    with pytest.raises(InvalidStatusTransition):
        validate_transition(current, target)


def test_status_parsing_is_case_insensitive_and_strict():
    assert parse_status("shipped") == OrderStatus.SHIPPED
    assert parse_status(" Pending ") == OrderStatus.PENDING
    with pytest.raises(InvalidStatusTransition):
        parse_status("LOST")


def test_terminal_statuses():
    assert is_terminal(OrderStatus.DELIVERED)
    assert is_terminal(OrderStatus.CANCELLED)
    assert not is_terminal(OrderStatus.SHIPPED)
