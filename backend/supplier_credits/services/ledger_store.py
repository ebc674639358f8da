# Overview: Service-layer operations for the supplier ledger entry store.

"""
Ledger Entry Store

Append-mostly log of signed transactions per supplier.

INVARIANTS:
- Sign convention is applied here, at the only place entries are built.
- After every write: Supplier.outstanding_balance == sum(signed_amount)
  == running_balance of the newest entry.
- Ledger order is (created_at, id); a backdated entry rebalances every
  entry after it.

Callers hold the supplier lock (concurrency.lock_supplier) and own the
transaction. Nothing here commits.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..amounts import ZERO, parse_amount, to_decimal
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import PurchaseOrder, Supplier, SupplierLedgerEntry, SupplierPaymentAllocation
from ..models.supplier_credits import (
    OPEN_PAYMENT_STATUSES,
    PAYMENT_STATUS_UNPAID,
    EntryKind,
    is_debt_bearing,
    normalize_signed_amount,
    payment_status_for,
)
from ..time_utils import to_utc_naive, utcnow
from .debt_lines import DebtLineSynchronizer
from .reconciler import rebalance_from


def ledger_sum(supplier_id: int) -> Decimal:
    """Authoritative balance straight from the entries."""
    rows = (
        db.session.query(SupplierLedgerEntry.signed_amount)
        .filter(SupplierLedgerEntry.supplier_id == supplier_id)
        .all()
    )
    return sum((to_decimal(row.signed_amount) for row in rows), ZERO)


def _has_entries_after(supplier_id: int, when: datetime) -> bool:
    """True when some entry sorts after an entry stamped `when`."""
    return (
        db.session.query(SupplierLedgerEntry.id)
        .filter(
            SupplierLedgerEntry.supplier_id == supplier_id,
            SupplierLedgerEntry.created_at > when,
        )
        .first()
        is not None
    )


def append(
    *,
    supplier_id: int,
    kind: EntryKind | str,
    amount,
    purchase_order_id: int | None = None,
    description: str | None = None,
    created_by_user_id: int | None = None,
    created_at: datetime | None = None,
) -> SupplierLedgerEntry:
    """
    Append one entry to a supplier's ledger.

    Args:
        supplier_id: Owning supplier
        kind: EntryKind or one of its accepted names (credit, debit, ...)
        amount: Magnitude; sign is normalized per kind
        purchase_order_id: Originating purchase order, if any
        description: Free text
        created_by_user_id: Actor (metadata only)
        created_at: Business time; defaults to now. Earlier times backdate.
            Aware values are stored as naive UTC.

    Returns:
        The flushed SupplierLedgerEntry

    Raises:
        ValidationError: Unknown kind, bad amount, unknown supplier or
            purchase order of another supplier
    """
    entry_kind = EntryKind.parse(kind)
    value = parse_amount(amount)
    if value == ZERO:
        raise ValidationError("amount must be non-zero")

    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise ValidationError(f"Supplier {supplier_id} not found")

    if purchase_order_id is not None:
        po = db.session.query(PurchaseOrder).filter_by(id=purchase_order_id).first()
        if not po or po.supplier_id != supplier_id:
            raise ValidationError(f"Purchase order {purchase_order_id} does not belong to supplier {supplier_id}")

    signed = normalize_signed_amount(entry_kind, value)
    when = to_utc_naive(created_at) or utcnow()
    at_end = not _has_entries_after(supplier_id, when)

    entry = SupplierLedgerEntry(
        supplier_id=supplier_id,
        purchase_order_id=purchase_order_id,
        kind=entry_kind.value,
        signed_amount=signed,
        running_balance=ZERO,
        paid_amount=ZERO,
        payment_status=PAYMENT_STATUS_UNPAID if is_debt_bearing(entry_kind, signed) else None,
        description=description,
        created_by_user_id=created_by_user_id,
        created_at=when,
    )

    if at_end:
        entry.running_balance = ledger_sum(supplier_id) + signed
        db.session.add(entry)
        supplier.outstanding_balance = entry.running_balance
        db.session.flush()
    else:
        db.session.add(entry)
        db.session.flush()
        rebalance_from(supplier, when, entry.id)

    return entry


def get_entry(entry_id: int) -> SupplierLedgerEntry:
    entry = db.session.query(SupplierLedgerEntry).filter_by(id=entry_id).first()
    if not entry:
        raise NotFoundError(f"Ledger entry {entry_id} not found")
    return entry


def list_outstanding(supplier_id: int) -> list[SupplierLedgerEntry]:
    """Unpaid and partially paid debts, oldest first (lower id wins ties)."""
    return (
        db.session.query(SupplierLedgerEntry)
        .filter(
            SupplierLedgerEntry.supplier_id == supplier_id,
            SupplierLedgerEntry.kind != EntryKind.PAYMENT.value,
            SupplierLedgerEntry.payment_status.in_(OPEN_PAYMENT_STATUSES),
        )
        .order_by(SupplierLedgerEntry.created_at.asc(), SupplierLedgerEntry.id.asc())
        .all()
    )


def list_history(supplier_id: int, limit: int | None = None) -> list[SupplierLedgerEntry]:
    """Newest first, for display."""
    default_limit = current_app.config.get("LEDGER_HISTORY_DEFAULT_LIMIT", 100)
    max_limit = current_app.config.get("LEDGER_HISTORY_MAX_LIMIT", 1000)
    limit = default_limit if limit is None else limit
    limit = max(1, min(int(limit), max_limit))

    return (
        db.session.query(SupplierLedgerEntry)
        .filter(SupplierLedgerEntry.supplier_id == supplier_id)
        .order_by(SupplierLedgerEntry.created_at.desc(), SupplierLedgerEntry.id.desc())
        .limit(limit)
        .all()
    )


def list_allocations(payment_entry_id: int) -> list[SupplierPaymentAllocation]:
    return (
        db.session.query(SupplierPaymentAllocation)
        .filter(SupplierPaymentAllocation.payment_entry_id == payment_entry_id)
        .order_by(SupplierPaymentAllocation.id.asc())
        .all()
    )


def _reverse_allocations(payment: SupplierLedgerEntry, synchronizer: DebtLineSynchronizer) -> None:
    for alloc in payment.allocations:
        debt = alloc.allocated_entry
        amount = to_decimal(alloc.allocated_amount)
        paid = max(to_decimal(debt.paid_amount) - amount, ZERO)
        debt.paid_amount = paid
        debt.payment_status = payment_status_for(paid, abs(to_decimal(debt.signed_amount)))
        synchronizer.apply_allocation(debt.purchase_order_id, -amount)


def delete(entry_id: int, synchronizer: DebtLineSynchronizer | None = None) -> Decimal:
    """
    Remove one entry and rebalance everything after it.

    A payment takes its allocations with it: the debts it paid down
    (and their purchase orders) get the allocated amounts back.

    Returns:
        The supplier's new outstanding balance

    Raises:
        NotFoundError: Entry does not exist
        ValidationError: Entry is a debt that payments were allocated to
    """
    entry = get_entry(entry_id)
    supplier = db.session.query(Supplier).filter_by(id=entry.supplier_id).first()

    if entry.kind == EntryKind.PAYMENT.value:
        _reverse_allocations(entry, synchronizer or DebtLineSynchronizer())
    else:
        allocated = (
            db.session.query(SupplierPaymentAllocation.id)
            .filter(SupplierPaymentAllocation.allocated_entry_id == entry.id)
            .first()
        )
        if allocated:
            raise ValidationError(
                f"Ledger entry {entry.id} has payments allocated to it; delete those payments first"
            )

    created_at, position_id = entry.created_at, entry.id
    db.session.delete(entry)
    db.session.flush()

    return rebalance_from(supplier, created_at, position_id)
