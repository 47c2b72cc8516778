"""
ledger/splitting.py — Deterministic share computation for new expenses.

Both helpers round each share DOWN to the cent and hand the whole rounding
remainder to the first participant in iteration order, so

    sum(shares) == amount        exactly, for every input

$100.00 split three ways is 33.34 / 33.33 / 33.33, never a float total of
99.99 or 100.01.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from decimal import ROUND_DOWN, Decimal

from backend.app.errors import AppError, ErrorCode


CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _assign_remainder(amount: Decimal, shares: list[dict]) -> list[dict]:
    remainder = amount - sum(s["amount"] for s in shares)
    if remainder:
        shares[0]["amount"] += remainder

    # A mismatch here is a programming error, never bad user input.
    computed = sum(s["amount"] for s in shares)
    if computed != amount:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Split computation produced sum {computed} for amount {amount}.",
            500,
        )
    return shares


def compute_equal_splits(amount: Decimal, participant_ids: Iterable[Hashable]) -> list[dict]:
    """
    Divides `amount` evenly among participants.

    Returns [{"user_id": id, "amount": Decimal}, ...] in participant order.
    Duplicate ids collapse to one share.
    """
    participants = list(dict.fromkeys(participant_ids))
    if not participants:
        raise AppError(
            ErrorCode.NO_PARTICIPANTS,
            "An expense must be split among at least one member.",
            422,
            field="split_between",
        )

    base = (amount / Decimal(len(participants))).quantize(CENT, rounding=ROUND_DOWN)
    shares = [{"user_id": uid, "amount": base} for uid in participants]
    return _assign_remainder(amount, shares)


def compute_percentage_splits(amount: Decimal, percentages: Iterable[dict]) -> list[dict]:
    """
    Splits `amount` by percentage.

    `percentages` is [{"user_id": id, "percentage": Decimal}, ...] and must
    total exactly 100.
    """
    entries = list(percentages)
    total = sum((Decimal(p["percentage"]) for p in entries), Decimal("0"))
    if not entries or total != HUNDRED:
        raise AppError(
            ErrorCode.PERCENTAGE_SUM_MISMATCH,
            f"Split percentages must total 100, got {total}.",
            422,
            field="splits",
        )

    shares = [
        {
            "user_id": p["user_id"],
            "amount": (amount * Decimal(p["percentage"]) / HUNDRED).quantize(CENT, rounding=ROUND_DOWN),
        }
        for p in entries
    ]
    return _assign_remainder(amount, shares)
