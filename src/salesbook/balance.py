"""Derived stock balance arithmetic.

Inventory movements never store a user-supplied balance. The balance after a
movement is always ``current + delta`` where the delta depends only on the
movement type, the quantity and the balance before the movement:

* ``IN`` adds ``quantity``;
* ``OUT`` subtracts ``quantity``;
* ``ADJUSTMENT`` treats ``quantity`` as the target balance, so the delta is
  ``quantity - current``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Tuple, Union

from .constants import MovementType
from .errors import BusinessRuleViolation


MovementKind = Union[MovementType, str]


def coerce_movement_type(movement_type: MovementKind) -> MovementType:
    """Return ``movement_type`` as a :class:`MovementType` member.

    Raises:
        BusinessRuleViolation: If the value names no known movement type.
    """

    if isinstance(movement_type, MovementType):
        return movement_type
    try:
        return MovementType(str(movement_type).strip().upper())
    except ValueError as exc:
        raise BusinessRuleViolation(f"Unknown movement type: {movement_type!r}") from exc


def movement_delta(movement_type: MovementKind, quantity: Decimal, current_balance: Decimal) -> Decimal:
    """Compute the signed stock delta produced by one movement.

    Args:
        movement_type (MovementType | str): ``IN``, ``OUT`` or ``ADJUSTMENT``.
        quantity (Decimal): Movement quantity, or the target balance for an
            adjustment. Must not be negative.
        current_balance (Decimal): Stock level before the movement.

    Returns:
        Decimal: The delta to add to ``current_balance``.

    Raises:
        ValueError: If ``quantity`` is negative.
        BusinessRuleViolation: If ``movement_type`` is unknown.
    """

    kind = coerce_movement_type(movement_type)
    if quantity < 0:
        raise ValueError("Movement quantity cannot be negative")
    if kind is MovementType.IN:
        return quantity
    if kind is MovementType.OUT:
        return -quantity
    return quantity - current_balance


def apply_movement(
    movement_type: MovementKind, quantity: Decimal, current_balance: Decimal
) -> Tuple[Decimal, Decimal]:
    """Return ``(delta, new_balance)`` for one movement."""

    delta = movement_delta(movement_type, quantity, current_balance)
    return delta, current_balance + delta


def opening_balance(movement_type: MovementKind, quantity: Decimal, balance_after: Decimal) -> Decimal:
    """Return the balance a movement started from, given the balance it left.

    An adjustment overwrites the balance, so its opening balance cannot be
    recovered and ``balance_after`` is returned unchanged.
    """

    kind = coerce_movement_type(movement_type)
    if kind is MovementType.IN:
        return balance_after - quantity
    if kind is MovementType.OUT:
        return balance_after + quantity
    return balance_after


def replay_balances(
    initial_balance: Decimal, movements: Iterable[Tuple[MovementKind, Decimal]]
) -> List[Decimal]:
    """Replay ``(type, quantity)`` pairs and return the balance after each one.

    Useful for reconciling the ``BalanceAfter`` column of a product's movement
    history against the arithmetic that produced it.
    """

    balances: List[Decimal] = []
    balance = initial_balance
    for movement_type, quantity in movements:
        _, balance = apply_movement(movement_type, quantity, balance)
        balances.append(balance)
    return balances


__all__ = ["coerce_movement_type", "movement_delta", "apply_movement", "opening_balance", "replay_balances"]
