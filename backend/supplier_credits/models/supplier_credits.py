from __future__ import annotations

import enum
from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ..amounts import ZERO, format_amount, quantize
from ..errors import ValidationError


class EntryKind(str, enum.Enum):
    """
    Closed set of supplier ledger entry kinds.

    DEBT_INCREASE: we owe more (purchase on credit, admin credit).
    PAYMENT: money paid to the supplier.
    MANUAL_ADJUSTMENT: operator correction; the caller's sign is kept.
    """
    DEBT_INCREASE = "debt_increase"
    PAYMENT = "payment"
    MANUAL_ADJUSTMENT = "manual_adjustment"

    @classmethod
    def parse(cls, value) -> "EntryKind":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValidationError("kind is required")
        key = value.strip().lower()
        kind = KIND_ALIASES.get(key)
        if kind is None:
            raise ValidationError(
                f"Invalid kind: {value}. Must be one of {sorted(KIND_ALIASES)}"
            )
        return kind


# Names used by the purchasing screens and older imports
KIND_ALIASES = {
    "debt_increase": EntryKind.DEBT_INCREASE,
    "credit": EntryKind.DEBT_INCREASE,
    "admin_credit": EntryKind.DEBT_INCREASE,
    "payment": EntryKind.PAYMENT,
    "debit": EntryKind.PAYMENT,
    "manual_adjustment": EntryKind.MANUAL_ADJUSTMENT,
}


PAYMENT_STATUS_UNPAID = "unpaid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"

OPEN_PAYMENT_STATUSES = (PAYMENT_STATUS_UNPAID, PAYMENT_STATUS_PARTIAL)


def normalize_signed_amount(kind: EntryKind, amount: Decimal) -> Decimal:
    """
    Apply the ledger sign convention.

    Positive increases what is owed, negative decreases it. The caller's
    sign is ignored for DEBT_INCREASE and PAYMENT.
    """
    amount = quantize(amount)
    if kind is EntryKind.DEBT_INCREASE:
        return abs(amount)
    if kind is EntryKind.PAYMENT:
        return -abs(amount)
    return amount


def is_debt_bearing(kind: EntryKind, signed_amount: Decimal) -> bool:
    """Entries that payments can be allocated against."""
    if kind is EntryKind.PAYMENT:
        return False
    return signed_amount > ZERO


def payment_status_for(paid: Decimal, total: Decimal) -> str:
    """unpaid -> partial -> paid, driven only by paid crossing 0 and total."""
    if paid <= ZERO:
        return PAYMENT_STATUS_UNPAID
    if paid >= total:
        return PAYMENT_STATUS_PAID
    return PAYMENT_STATUS_PARTIAL


class SupplierLedgerEntry(db.Model):
    """
    One signed transaction in a supplier's running account.

    Ledger order is (created_at, id) ascending. running_balance is the
    prefix sum of signed_amount in that order and is a cache; the
    reconciler rebuilds it.
    """
    __tablename__ = "supplier_ledger_entries"
    __table_args__ = (
        db.Index("ix_supplier_ledger_supplier_order", "supplier_id", "created_at", "id"),
        db.Index("ix_supplier_ledger_supplier_status", "supplier_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    kind = db.Column(db.String(32), nullable=False, index=True)

    signed_amount = db.Column(db.Numeric(14, 2), nullable=False)
    running_balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    # Debt-bearing entries only
    paid_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=True)

    description = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("ledger_entries", lazy="dynamic"))
    purchase_order = db.relationship("PurchaseOrder")

    allocations = db.relationship(
        "SupplierPaymentAllocation",
        foreign_keys="SupplierPaymentAllocation.payment_entry_id",
        back_populates="payment_entry",
        cascade="all, delete-orphan",
        order_by="SupplierPaymentAllocation.id",
    )

    @property
    def entry_kind(self) -> EntryKind:
        return EntryKind(self.kind)

    @property
    def remaining_amount(self) -> Decimal:
        """Part of this debt not yet covered by payments."""
        if self.payment_status is None:
            return ZERO
        return quantize(abs(Decimal(self.signed_amount)) - Decimal(self.paid_amount or 0))

    def __repr__(self) -> str:
        return (
            f"<SupplierLedgerEntry id={self.id} supplier_id={self.supplier_id} "
            f"kind={self.kind} amount={self.signed_amount} balance={self.running_balance}>"
        )

    def _purchase_order_summary(self) -> dict | None:
        po = self.purchase_order
        if po is None:
            return None
        return {
            "id": po.id,
            "purchase_number": po.purchase_number,
            "total": format_amount(po.total),
            "payment_status": po.payment_status,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "purchase_order_id": self.purchase_order_id,
            "purchase_order": self._purchase_order_summary(),
            "kind": self.kind,
            "signed_amount": format_amount(self.signed_amount),
            "running_balance": format_amount(self.running_balance),
            "paid_amount": format_amount(self.paid_amount) if self.payment_status else None,
            "payment_status": self.payment_status,
            "description": self.description,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class SupplierPaymentAllocation(db.Model):
    """
    Portion of a payment entry applied to one debt-bearing entry.

    Written together with the payment entry and never updated. Deleted
    only with its payment.
    """
    __tablename__ = "supplier_payment_allocations"
    __table_args__ = (
        db.CheckConstraint("allocated_amount > 0", name="ck_supplier_alloc_positive"),
        db.UniqueConstraint("payment_entry_id", "allocated_entry_id", name="uq_supplier_alloc_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_entry_id = db.Column(
        db.Integer,
        db.ForeignKey("supplier_ledger_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    allocated_entry_id = db.Column(
        db.Integer,
        db.ForeignKey("supplier_ledger_entries.id"),
        nullable=False,
        index=True,
    )
    allocated_amount = db.Column(db.Numeric(14, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    payment_entry = db.relationship(
        "SupplierLedgerEntry",
        foreign_keys=[payment_entry_id],
        back_populates="allocations",
    )
    allocated_entry = db.relationship("SupplierLedgerEntry", foreign_keys=[allocated_entry_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_entry_id": self.payment_entry_id,
            "allocated_entry_id": self.allocated_entry_id,
            "allocated_amount": format_amount(self.allocated_amount),
            "created_at": to_utc_z(self.created_at),
        }
