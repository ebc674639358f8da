# Overview: FIFO split of a supplier payment across outstanding debts.

"""
FIFO Allocator

A payment is spread over the supplier's open debts oldest first
(created_at ascending, lower id first on ties). Each debt takes
min(remaining payment, what is still owed on it).

Policy:
- Partial payments are always allowed.
- Overpayments are always rejected (no credit in advance).

This module only computes the split; supplier_credit_service writes it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from flask import current_app

from ..amounts import ZERO, format_amount, parse_amount, quantize, to_decimal
from ..errors import AllocationError, ExcessPaymentError, ValidationError
from ..models import Supplier, SupplierLedgerEntry
from ..models.supplier_credits import payment_status_for
from .ledger_store import list_outstanding


@dataclass(frozen=True)
class PlannedAllocation:
    entry_id: int
    kind: str
    description: str
    amount_allocated: Decimal
    new_paid_amount: Decimal
    new_payment_status: str
    remaining_on_entry: Decimal
    purchase_order_id: Optional[int]

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "kind": self.kind,
            "description": self.description,
            "amount_allocated": format_amount(self.amount_allocated),
            "new_paid_amount": format_amount(self.new_paid_amount),
            "new_payment_status": self.new_payment_status,
            "remaining_on_entry": format_amount(self.remaining_on_entry),
            "purchase_order_id": self.purchase_order_id,
        }


@dataclass
class AllocationPlan:
    amount: Decimal
    allocations: list[PlannedAllocation] = field(default_factory=list)

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.amount_allocated for a in self.allocations), ZERO)

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.total_allocated


def _describe(entry: SupplierLedgerEntry) -> str:
    if entry.purchase_order is not None:
        return f"PO {entry.purchase_order.purchase_number}"
    return entry.description or "Manual credit"


def plan_fifo(entries: Iterable[SupplierLedgerEntry], amount: Decimal) -> AllocationPlan:
    """
    Split amount across entries in the order given.

    Raises:
        AllocationError: entries ran out before amount was covered
    """
    plan = AllocationPlan(amount=quantize(amount))
    remaining = plan.amount

    for entry in entries:
        if remaining <= ZERO:
            break

        owed_total = abs(to_decimal(entry.signed_amount))
        paid = to_decimal(entry.paid_amount)
        owed = owed_total - paid
        take = min(remaining, owed)
        if take <= ZERO:
            continue

        new_paid = paid + take
        plan.allocations.append(
            PlannedAllocation(
                entry_id=entry.id,
                kind=entry.kind,
                description=_describe(entry),
                amount_allocated=take,
                new_paid_amount=new_paid,
                new_payment_status=payment_status_for(new_paid, owed_total),
                remaining_on_entry=owed - take,
                purchase_order_id=entry.purchase_order_id,
            )
        )
        remaining -= take

    if remaining > ZERO:
        raise AllocationError(
            f"Outstanding debts exhausted with {remaining} of {plan.amount} unallocated"
        )
    return plan


def allocate_payment(supplier: Supplier, amount) -> AllocationPlan:
    """
    Check a payment against the supplier's balance and compute its FIFO split.

    The supplier row should already be locked so the balance is fresh.

    Raises:
        ValidationError: amount is not a positive number
        ExcessPaymentError: no outstanding balance, or amount exceeds it
        AllocationError: ledger and cached balance disagree
    """
    value = parse_amount(amount)
    if value <= ZERO:
        raise ValidationError("Payment amount must be positive")

    balance = to_decimal(supplier.outstanding_balance)
    if balance <= ZERO:
        raise ExcessPaymentError("No outstanding balance to pay", outstanding_balance=balance)
    if value > balance:
        raise ExcessPaymentError(
            f"Payment amount ({value}) cannot exceed outstanding balance ({balance})",
            outstanding_balance=balance,
        )

    try:
        return plan_fifo(list_outstanding(supplier.id), value)
    except AllocationError:
        current_app.logger.critical(
            "Supplier %s ledger desync: payment %s could not be fully allocated (cached balance %s)",
            supplier.id, value, balance,
        )
        raise
