# Overview: Service-layer operations for supplier credits; encapsulates business logic and database work.

"""
Supplier Credit Service

WHY: What the business owes each supplier is tracked as a running ledger.
Purchases on credit add debt, payments reduce it, and each payment is
applied to the oldest open debts first so purchase orders show the
right paid/due status.

DESIGN PRINCIPLES:
- One database transaction per operation (concurrency.atomic)
- Supplier row locked before any balance is read (concurrency.lock_supplier)
- Sign convention enforced by the ledger store, never by callers
- Payments are always fully allocated or rejected
- No automatic retries; callers resubmit the whole operation
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..amounts import ZERO, format_amount, to_decimal
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import PurchaseOrder, Supplier, SupplierLedgerEntry, SupplierPaymentAllocation
from ..models.supplier_credits import OPEN_PAYMENT_STATUSES, EntryKind
from ..time_utils import utcnow
from . import ledger_store, reconciler
from .allocator import AllocationPlan, allocate_payment
from .concurrency import atomic, lock_supplier
from .debt_lines import DebtLineSynchronizer


OPENING_BALANCE_DESCRIPTION = "Initial balance from old system (imported data)"


@dataclass
class PaymentResult:
    payment: SupplierLedgerEntry
    allocations: list[SupplierPaymentAllocation]
    plan: AllocationPlan
    new_balance: Decimal

    @property
    def total_allocated(self) -> Decimal:
        return self.plan.total_allocated

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict(),
            "allocations": [a.to_dict() for a in self.allocations],
            "allocation_plan": [a.to_dict() for a in self.plan.allocations],
            "total_allocated": format_amount(self.total_allocated),
            "new_balance": format_amount(self.new_balance),
        }


def _require_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def _payment_description(payment_method: str | None, reference: str | None, notes: str | None) -> str:
    description = "Payment"
    if payment_method:
        description += f" via {payment_method}"
    if reference:
        description += f" - Ref: {reference}"
    if notes:
        description += f" - {notes}"
    return description


# =============================================================================
# WRITES
# =============================================================================

def record_manual_entry(
    supplier_id: int,
    kind: EntryKind | str,
    amount,
    description: str | None = None,
    *,
    purchase_order_id: int | None = None,
    created_by_user_id: int | None = None,
    created_at: datetime | None = None,
) -> SupplierLedgerEntry:
    """
    Record an operator entry (admin credit, manual payment, adjustment).

    Manual payments are not allocated to debts and are not checked
    against the balance.

    Raises:
        ValidationError: Bad kind/amount or unknown supplier
    """
    with atomic():
        if lock_supplier(supplier_id) is None:
            raise ValidationError(f"Supplier {supplier_id} not found")

        entry = ledger_store.append(
            supplier_id=supplier_id,
            kind=kind,
            amount=amount,
            purchase_order_id=purchase_order_id,
            description=description,
            created_by_user_id=created_by_user_id,
            created_at=created_at,
        )

    current_app.logger.info(
        "Supplier %s ledger entry %s recorded: %s %s",
        supplier_id, entry.id, entry.kind, entry.signed_amount,
    )
    return entry


def record_payment(
    supplier_id: int,
    amount,
    *,
    payment_method: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
    synchronizer: DebtLineSynchronizer | None = None,
) -> PaymentResult:
    """
    Pay a supplier and allocate the payment to open debts, oldest first.

    Args:
        supplier_id: Supplier being paid
        amount: Positive amount, at most the outstanding balance
        payment_method, reference, notes: Folded into the entry description
        created_by_user_id: Actor (metadata only)
        synchronizer: Debt-line writer (defaults to purchase orders)

    Returns:
        PaymentResult with the payment entry, allocation rows and new balance

    Raises:
        NotFoundError: Unknown supplier
        ValidationError: Amount is not a positive number
        ExcessPaymentError: Amount exceeds the outstanding balance
        AllocationError: Ledger and cached balance disagree
    """
    synchronizer = synchronizer or DebtLineSynchronizer()

    with atomic():
        supplier = lock_supplier(supplier_id)
        if not supplier:
            raise NotFoundError(f"Supplier {supplier_id} not found")

        plan = allocate_payment(supplier, amount)

        payment = ledger_store.append(
            supplier_id=supplier_id,
            kind=EntryKind.PAYMENT,
            amount=plan.amount,
            description=_payment_description(payment_method, reference, notes),
            created_by_user_id=created_by_user_id,
        )

        records = []
        for planned in plan.allocations:
            record = SupplierPaymentAllocation(
                payment_entry_id=payment.id,
                allocated_entry_id=planned.entry_id,
                allocated_amount=planned.amount_allocated,
                created_at=utcnow(),
            )
            db.session.add(record)
            records.append(record)

            debt = db.session.query(SupplierLedgerEntry).filter_by(id=planned.entry_id).first()
            debt.paid_amount = planned.new_paid_amount
            debt.payment_status = planned.new_payment_status

            synchronizer.apply_allocation(planned.purchase_order_id, planned.amount_allocated)

        db.session.flush()
        new_balance = to_decimal(supplier.outstanding_balance)

    current_app.logger.info(
        "Supplier %s payment %s of %s allocated to %s debt(s); outstanding balance %s",
        supplier_id, payment.id, plan.amount, len(records), new_balance,
    )
    return PaymentResult(payment=payment, allocations=records, plan=plan, new_balance=new_balance)


def delete_entry(entry_id: int, synchronizer: DebtLineSynchronizer | None = None) -> Decimal:
    """
    Delete a ledger entry and rebalance the supplier's ledger.

    Returns:
        New outstanding balance

    Raises:
        NotFoundError: Entry does not exist
        ValidationError: Debt entry still has payments allocated to it
    """
    with atomic():
        entry = ledger_store.get_entry(entry_id)
        supplier_id = entry.supplier_id
        lock_supplier(supplier_id)
        balance = ledger_store.delete(entry_id, synchronizer)

    current_app.logger.info(
        "Supplier %s ledger entry %s deleted; outstanding balance %s",
        supplier_id, entry_id, balance,
    )
    return balance


def recalculate_balance(supplier_id: int) -> dict:
    """
    Operator repair: rebuild running balances and the cached balance.

    Raises:
        NotFoundError: Unknown supplier
    """
    with atomic():
        if lock_supplier(supplier_id) is None:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        balance = reconciler.recalculate(supplier_id)

    return {"supplier_id": supplier_id, "outstanding_balance": balance}


def record_purchase_credit(
    purchase_order_id: int,
    *,
    created_by_user_id: int | None = None,
) -> SupplierLedgerEntry:
    """
    Book the unpaid part of a purchase order as supplier debt.

    Raises:
        NotFoundError: Unknown purchase order
        ValidationError: Already on the ledger, or nothing left to pay
    """
    with atomic():
        po = db.session.query(PurchaseOrder).filter_by(id=purchase_order_id).first()
        if not po:
            raise NotFoundError(f"Purchase order {purchase_order_id} not found")

        lock_supplier(po.supplier_id)

        existing = (
            db.session.query(SupplierLedgerEntry.id)
            .filter(
                SupplierLedgerEntry.purchase_order_id == po.id,
                SupplierLedgerEntry.kind == EntryKind.DEBT_INCREASE.value,
            )
            .first()
        )
        if existing:
            raise ValidationError(f"Purchase order {po.purchase_number} is already on the supplier ledger")

        unpaid = to_decimal(po.total) - to_decimal(po.paid_amount)
        if unpaid <= ZERO:
            raise ValidationError(f"Purchase order {po.purchase_number} has nothing left to pay")

        entry = ledger_store.append(
            supplier_id=po.supplier_id,
            kind=EntryKind.DEBT_INCREASE,
            amount=unpaid,
            purchase_order_id=po.id,
            description=f"PO {po.purchase_number}",
            created_by_user_id=created_by_user_id,
        )

    return entry


# =============================================================================
# READS
# =============================================================================

def get_balance(supplier_id: int) -> dict:
    supplier = _require_supplier(supplier_id)
    return {"supplier_id": supplier_id, "balance": to_decimal(supplier.outstanding_balance)}


def list_history(supplier_id: int, limit: int | None = None) -> list[SupplierLedgerEntry]:
    _require_supplier(supplier_id)
    return ledger_store.list_history(supplier_id, limit)


def list_outstanding(supplier_id: int) -> list[SupplierLedgerEntry]:
    _require_supplier(supplier_id)
    return ledger_store.list_outstanding(supplier_id)


def list_payment_allocations(entry_id: int) -> list[SupplierPaymentAllocation]:
    entry = ledger_store.get_entry(entry_id)
    if entry.kind != EntryKind.PAYMENT.value:
        raise ValidationError(f"Ledger entry {entry_id} is not a payment")
    return ledger_store.list_allocations(entry_id)


# =============================================================================
# OPERATOR TOOLS
# =============================================================================

def recalculate_all_balances() -> list[dict]:
    supplier_ids = [row.id for row in db.session.query(Supplier.id).order_by(Supplier.id.asc()).all()]
    return [recalculate_balance(supplier_id) for supplier_id in supplier_ids]


def audit_balances(supplier_ids: list[int] | None = None) -> list[reconciler.BalanceAudit]:
    """Read-only consistency report; see reconciler.audit."""
    return reconciler.audit(supplier_ids)


def import_opening_balances(*, dry_run: bool = False) -> list[dict]:
    """
    Put balances carried over from an older system onto the ledger.

    For each supplier with a positive cached balance and no open debts,
    the part of the cached balance the ledger does not explain becomes a
    debt entry dated at the supplier's creation, so FIFO pays it first.
    Each supplier is committed separately.
    """
    results = []
    suppliers = (
        db.session.query(Supplier)
        .filter(Supplier.outstanding_balance > 0)
        .order_by(Supplier.id.asc())
        .all()
    )
    candidates = [(s.id, s.name) for s in suppliers]

    for supplier_id, name in candidates:
        with atomic():
            supplier = lock_supplier(supplier_id)
            cached = to_decimal(supplier.outstanding_balance)

            has_open = (
                db.session.query(SupplierLedgerEntry.id)
                .filter(
                    SupplierLedgerEntry.supplier_id == supplier_id,
                    SupplierLedgerEntry.payment_status.in_(OPEN_PAYMENT_STATUSES),
                )
                .first()
            )
            missing = cached - ledger_store.ledger_sum(supplier_id)

            if has_open:
                results.append({"supplier_id": supplier_id, "name": name, "status": "skipped",
                                "reason": "already has unpaid credits", "amount": None})
                continue
            if missing <= ZERO:
                results.append({"supplier_id": supplier_id, "name": name, "status": "skipped",
                                "reason": "balance already on ledger", "amount": None})
                continue

            if dry_run:
                db.session.rollback()
                results.append({"supplier_id": supplier_id, "name": name, "status": "would_create",
                                "reason": None, "amount": missing})
                continue

            entry = ledger_store.append(
                supplier_id=supplier_id,
                kind=EntryKind.DEBT_INCREASE,
                amount=missing,
                description=OPENING_BALANCE_DESCRIPTION,
                created_at=supplier.created_at,
            )
            results.append({"supplier_id": supplier_id, "name": name, "status": "created",
                            "reason": None, "amount": missing, "entry_id": entry.id})

    return results
