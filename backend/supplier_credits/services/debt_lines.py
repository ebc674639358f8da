# Overview: Writes supplier payment allocations back to the purchase orders they pay down.

"""
Debt-Line Synchronizer

Purchase orders belong to the purchasing subsystem. The ledger may only
touch two of their fields (paid_amount, payment_status), so it goes
through the DebtLineUpdater port instead of the model.

Nothing here commits: updates ride in the caller's transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from ..amounts import ZERO, to_decimal
from ..errors import NotFoundError
from ..extensions import db
from ..models import PurchaseOrder
from ..models.supplier_credits import payment_status_for


@dataclass(frozen=True)
class DebtLine:
    id: int
    total: Decimal
    paid_amount: Decimal
    payment_status: str


class DebtLineUpdater(Protocol):
    def get(self, debt_line_id: int) -> Optional[DebtLine]:
        ...

    def update(self, debt_line_id: int, paid_amount: Decimal, payment_status: str) -> None:
        ...


class PurchaseOrderDebtLines:
    """DebtLineUpdater backed by the purchase_orders table."""

    def get(self, debt_line_id: int) -> Optional[DebtLine]:
        po = db.session.query(PurchaseOrder).filter_by(id=debt_line_id).first()
        if not po:
            return None
        return DebtLine(
            id=po.id,
            total=to_decimal(po.total),
            paid_amount=to_decimal(po.paid_amount),
            payment_status=po.payment_status,
        )

    def update(self, debt_line_id: int, paid_amount: Decimal, payment_status: str) -> None:
        po = db.session.query(PurchaseOrder).filter_by(id=debt_line_id).first()
        if not po:
            raise NotFoundError(f"Purchase order {debt_line_id} not found")
        po.paid_amount = paid_amount
        po.payment_status = payment_status
        db.session.flush()


class DebtLineSynchronizer:
    def __init__(self, updater: DebtLineUpdater | None = None):
        self.updater = updater or PurchaseOrderDebtLines()

    def apply_allocation(self, debt_line_id: int | None, amount_allocated: Decimal) -> Optional[DebtLine]:
        """
        Add an allocated amount to a debt line and re-derive its status.

        A negative amount backs out an allocation (payment deleted).
        No-op for entries that are not tied to a debt line.

        Raises:
            NotFoundError: debt_line_id points at a missing line
        """
        if debt_line_id is None:
            return None

        line = self.updater.get(debt_line_id)
        if line is None:
            raise NotFoundError(f"Purchase order {debt_line_id} not found")

        new_paid = max(line.paid_amount + to_decimal(amount_allocated), ZERO)
        new_status = payment_status_for(new_paid, line.total)
        self.updater.update(debt_line_id, new_paid, new_status)
        return DebtLine(id=line.id, total=line.total, paid_amount=new_paid, payment_status=new_status)
