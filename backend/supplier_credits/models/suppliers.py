from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..amounts import format_amount


class Supplier(db.Model):
    """
    Creditor the business owes money to.

    outstanding_balance is a cached view over supplier_ledger_entries:
    it must equal the sum of signed_amount for this supplier and the
    running_balance of the newest entry. Only the ledger services write it.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_suppliers_code"),
        db.Index("ix_suppliers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    contact_phone = db.Column(db.String(64), nullable=True)

    outstanding_balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} outstanding={self.outstanding_balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "contact_phone": self.contact_phone,
            "outstanding_balance": format_amount(self.outstanding_balance),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrder(db.Model):
    """
    Purchase order owned by the purchasing subsystem.

    The supplier ledger treats it as a debt line and only ever writes
    paid_amount and payment_status.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("purchase_number", name="uq_purchase_orders_number"),
        db.Index("ix_purchase_orders_supplier_status", "supplier_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_number = db.Column(db.String(64), nullable=False)

    total = db.Column(db.Numeric(14, 2), nullable=False)
    paid_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    # UNPAID / PARTIAL / PAID, stored lowercase to match ledger entries
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.purchase_number!r} status={self.payment_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "purchase_number": self.purchase_number,
            "total": format_amount(self.total),
            "paid_amount": format_amount(self.paid_amount),
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
        }
