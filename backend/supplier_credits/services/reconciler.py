# Overview: Rebuilds supplier ledger running balances and the cached outstanding balance.

"""
Balance Reconciler

running_balance on every ledger entry and Supplier.outstanding_balance
are caches over signed_amount. This module is the single place that
rebuilds them:

- recalculate(): full walk for one supplier, the operator repair tool.
- rebalance_from(): walk starting at a ledger position, used after a
  delete or a backdated insert.
- audit(): read-only drift report, nothing is written.

Callers own the transaction; nothing here commits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import and_, func, or_

from ..amounts import ZERO, format_amount, to_decimal
from ..errors import NotFoundError
from ..extensions import db
from ..models import Supplier, SupplierLedgerEntry, SupplierPaymentAllocation


def ordered_entries(supplier_id: int):
    """All entries for a supplier in ledger order: (created_at, id) ascending."""
    return (
        db.session.query(SupplierLedgerEntry)
        .filter(SupplierLedgerEntry.supplier_id == supplier_id)
        .order_by(SupplierLedgerEntry.created_at.asc(), SupplierLedgerEntry.id.asc())
    )


def _walk(entries, opening: Decimal) -> tuple[Decimal, int]:
    """Rewrite running_balance as a prefix sum. Returns (final balance, rows changed)."""
    running = opening
    changed = 0
    for entry in entries:
        running = running + to_decimal(entry.signed_amount)
        if entry.running_balance is None or to_decimal(entry.running_balance) != running:
            entry.running_balance = running
            changed += 1
    return running, changed


def _store_balance(supplier: Supplier, balance: Decimal) -> bool:
    if to_decimal(supplier.outstanding_balance) == balance:
        return False
    supplier.outstanding_balance = balance
    return True


def recalculate(supplier_id: int) -> Decimal:
    """
    Recompute every running balance for a supplier from zero.

    Sets Supplier.outstanding_balance to the final prefix sum (0 when the
    ledger is empty). Running it twice in a row changes nothing the
    second time.

    Raises:
        NotFoundError: Unknown supplier
    """
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found")

    balance, changed = _walk(ordered_entries(supplier_id).all(), ZERO)
    balance_changed = _store_balance(supplier, balance)
    db.session.flush()

    if changed or balance_changed:
        current_app.logger.warning(
            "Supplier %s ledger repaired: %s running balance(s) rewritten, outstanding balance now %s",
            supplier_id, changed, balance,
        )
    return balance


def rebalance_from(supplier: Supplier, created_at: datetime, entry_id: int) -> Decimal:
    """
    Recompute running balances from a ledger position onward.

    The opening balance is the sum of entries strictly before
    (created_at, entry_id); entries at or after that position are
    rewritten. The cached supplier balance ends up at the new total.
    """
    before = or_(
        SupplierLedgerEntry.created_at < created_at,
        and_(SupplierLedgerEntry.created_at == created_at, SupplierLedgerEntry.id < entry_id),
    )
    opening_rows = (
        db.session.query(SupplierLedgerEntry.signed_amount)
        .filter(SupplierLedgerEntry.supplier_id == supplier.id, before)
        .all()
    )
    opening = sum((to_decimal(row.signed_amount) for row in opening_rows), ZERO)

    tail = (
        ordered_entries(supplier.id)
        .filter(~before)
        .all()
    )
    balance, _ = _walk(tail, opening)
    _store_balance(supplier, balance)
    db.session.flush()
    return balance


@dataclass
class BalanceAudit:
    supplier_id: int
    supplier_name: str
    cached_balance: Decimal
    ledger_sum: Decimal
    last_running_balance: Decimal
    entry_count: int
    bad_running_balance_ids: list[int] = field(default_factory=list)
    paid_amount_mismatch_ids: list[int] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return (
            self.cached_balance == self.ledger_sum == self.last_running_balance
            and not self.bad_running_balance_ids
            and not self.paid_amount_mismatch_ids
        )

    def to_dict(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "cached_balance": format_amount(self.cached_balance),
            "ledger_sum": format_amount(self.ledger_sum),
            "last_running_balance": format_amount(self.last_running_balance),
            "entry_count": self.entry_count,
            "bad_running_balance_ids": self.bad_running_balance_ids,
            "paid_amount_mismatch_ids": self.paid_amount_mismatch_ids,
            "is_consistent": self.is_consistent,
        }


def _allocated_totals(supplier_id: int) -> dict[int, Decimal]:
    rows = (
        db.session.query(
            SupplierPaymentAllocation.allocated_entry_id,
            func.sum(SupplierPaymentAllocation.allocated_amount),
        )
        .join(SupplierLedgerEntry, SupplierLedgerEntry.id == SupplierPaymentAllocation.allocated_entry_id)
        .filter(SupplierLedgerEntry.supplier_id == supplier_id)
        .group_by(SupplierPaymentAllocation.allocated_entry_id)
        .all()
    )
    return {entry_id: to_decimal(total) for entry_id, total in rows}


def audit_supplier(supplier: Supplier) -> BalanceAudit:
    entries = ordered_entries(supplier.id).all()
    allocated = _allocated_totals(supplier.id)

    running = ZERO
    bad_running = []
    paid_mismatch = []
    for entry in entries:
        running = running + to_decimal(entry.signed_amount)
        if to_decimal(entry.running_balance) != running:
            bad_running.append(entry.id)
        if entry.payment_status is not None:
            if to_decimal(entry.paid_amount) != allocated.get(entry.id, ZERO):
                paid_mismatch.append(entry.id)

    return BalanceAudit(
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        cached_balance=to_decimal(supplier.outstanding_balance),
        ledger_sum=running,
        last_running_balance=to_decimal(entries[-1].running_balance) if entries else ZERO,
        entry_count=len(entries),
        bad_running_balance_ids=bad_running,
        paid_amount_mismatch_ids=paid_mismatch,
    )


def audit(supplier_ids: list[int] | None = None) -> list[BalanceAudit]:
    """Drift report for the given suppliers (all suppliers when None)."""
    q = db.session.query(Supplier)
    if supplier_ids is not None:
        q = q.filter(Supplier.id.in_(supplier_ids))
    return [audit_supplier(s) for s in q.order_by(Supplier.id.asc()).all()]
