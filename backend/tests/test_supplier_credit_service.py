from decimal import Decimal

import pytest

from supplier_credits.errors import NotFoundError, ValidationError
from supplier_credits.extensions import db
from supplier_credits.models import PurchaseOrder, Supplier, SupplierLedgerEntry, SupplierPaymentAllocation
from supplier_credits.services import supplier_credit_service
from supplier_credits.services.debt_lines import DebtLine, DebtLineSynchronizer
from tests.conftest import allocation_count, assert_ledger_consistent, day


def _po(po_id):
    po = db.session.query(PurchaseOrder).filter_by(id=po_id).first()
    db.session.refresh(po)
    return po


def test_payment_updates_linked_purchase_orders(supplier, make_purchase_order):
    po1 = make_purchase_order(supplier.id, "1000")
    po2 = make_purchase_order(supplier.id, "500")
    supplier_credit_service.record_purchase_credit(po1.id)
    supplier_credit_service.record_purchase_credit(po2.id)

    result = supplier_credit_service.record_payment(
        supplier.id, "1200", payment_method="Bank transfer", reference="TRX-9", notes="January"
    )

    assert _po(po1.id).paid_amount == Decimal("1000.00")
    assert _po(po1.id).payment_status == "paid"
    assert _po(po2.id).paid_amount == Decimal("200.00")
    assert _po(po2.id).payment_status == "partial"
    assert result.payment.description == "Payment via Bank transfer - Ref: TRX-9 - January"
    assert result.payment.signed_amount == Decimal("-1200.00")
    assert_ledger_consistent(supplier.id)


def test_manual_debt_without_purchase_order_is_not_synced(supplier, make_purchase_order):
    po = make_purchase_order(supplier.id, "100")
    supplier_credit_service.record_manual_entry(supplier.id, "admin_credit", "300", created_at=day(1))
    supplier_credit_service.record_purchase_credit(po.id)

    supplier_credit_service.record_payment(supplier.id, "300")

    assert _po(po.id).paid_amount == Decimal("0.00")
    assert _po(po.id).payment_status == "unpaid"


def test_allocation_records_match_payment(supplier):
    for n, amount in enumerate(["100", "250", "75.50"], start=1):
        supplier_credit_service.record_manual_entry(supplier.id, "debt_increase", amount, created_at=day(n))

    result = supplier_credit_service.record_payment(supplier.id, "360.25")

    rows = supplier_credit_service.list_payment_allocations(result.payment.id)
    assert [r.allocated_amount for r in rows] == [Decimal("100.00"), Decimal("250.00"), Decimal("10.25")]
    assert sum(r.allocated_amount for r in rows) == Decimal("360.25")
    assert_ledger_consistent(supplier.id)


def test_allocations_of_non_payment_rejected(supplier):
    debt = supplier_credit_service.record_manual_entry(supplier.id, "debt_increase", "10")
    with pytest.raises(ValidationError):
        supplier_credit_service.list_payment_allocations(debt.id)


def test_deleting_payment_reverses_allocations(supplier, make_purchase_order):
    po = make_purchase_order(supplier.id, "800")
    debt = supplier_credit_service.record_purchase_credit(po.id)
    first = supplier_credit_service.record_payment(supplier.id, "300")
    second = supplier_credit_service.record_payment(supplier.id, "500")
    assert _po(po.id).payment_status == "paid"

    balance = supplier_credit_service.delete_entry(second.payment.id)

    assert balance == Decimal("500.00")
    db.session.refresh(debt)
    assert debt.paid_amount == Decimal("300.00")
    assert debt.payment_status == "partial"
    assert _po(po.id).paid_amount == Decimal("300.00")
    assert _po(po.id).payment_status == "partial"
    assert allocation_count() == 1
    assert [a.payment_entry_id for a in db.session.query(SupplierPaymentAllocation).all()] == [first.payment.id]
    assert_ledger_consistent(supplier.id)


def test_deleting_allocated_debt_is_refused(supplier):
    debt = supplier_credit_service.record_manual_entry(supplier.id, "debt_increase", "100")
    supplier_credit_service.record_payment(supplier.id, "40")

    with pytest.raises(ValidationError):
        supplier_credit_service.delete_entry(debt.id)

    assert db.session.query(SupplierLedgerEntry).filter_by(id=debt.id).count() == 1
    assert_ledger_consistent(supplier.id)


def test_purchase_credit_books_unpaid_remainder(supplier, make_purchase_order):
    po = make_purchase_order(supplier.id, "1000", paid_amount="250")

    entry = supplier_credit_service.record_purchase_credit(po.id, created_by_user_id=7)

    assert entry.signed_amount == Decimal("750.00")
    assert entry.purchase_order_id == po.id
    assert entry.description == f"PO {po.purchase_number}"
    assert entry.created_by_user_id == 7

    supplier_credit_service.record_payment(supplier.id, "750")
    assert _po(po.id).paid_amount == Decimal("1000.00")
    assert _po(po.id).payment_status == "paid"


def test_purchase_credit_is_booked_once(supplier, make_purchase_order):
    po = make_purchase_order(supplier.id, "100")
    supplier_credit_service.record_purchase_credit(po.id)

    with pytest.raises(ValidationError):
        supplier_credit_service.record_purchase_credit(po.id)


def test_purchase_credit_for_paid_order_rejected(supplier, make_purchase_order):
    po = make_purchase_order(supplier.id, "100", paid_amount="100")
    with pytest.raises(ValidationError):
        supplier_credit_service.record_purchase_credit(po.id)


def test_purchase_credit_unknown_order(db_session):
    with pytest.raises(NotFoundError):
        supplier_credit_service.record_purchase_credit(999)


def test_payment_unknown_supplier(db_session):
    with pytest.raises(NotFoundError):
        supplier_credit_service.record_payment(999, "10")


def test_get_balance_unknown_supplier(db_session):
    with pytest.raises(NotFoundError):
        supplier_credit_service.get_balance(999)


def test_balance_identity_over_mixed_operations(supplier, other_supplier, make_purchase_order):
    po = make_purchase_order(supplier.id, "640")
    supplier_credit_service.record_manual_entry(supplier.id, "debt_increase", "1000", created_at=day(1))
    supplier_credit_service.record_purchase_credit(po.id)
    supplier_credit_service.record_manual_entry(other_supplier.id, "debt_increase", "90", created_at=day(1))
    supplier_credit_service.record_payment(supplier.id, "1100")
    adj = supplier_credit_service.record_manual_entry(supplier.id, "manual_adjustment", "-40")
    supplier_credit_service.record_manual_entry(supplier.id, "debt_increase", "15", created_at=day(2))
    supplier_credit_service.record_payment(supplier.id, "200")
    supplier_credit_service.delete_entry(adj.id)
    supplier_credit_service.record_payment(other_supplier.id, "90")

    assert_ledger_consistent(supplier.id)
    assert_ledger_consistent(other_supplier.id)
    assert supplier_credit_service.get_balance(supplier.id)["balance"] == Decimal("355.00")
    assert supplier_credit_service.get_balance(other_supplier.id)["balance"] == Decimal("0.00")
    assert all(r.is_consistent for r in supplier_credit_service.audit_balances())


def test_import_opening_balances(db_session):
    legacy = Supplier(name="Legacy Co", outstanding_balance=Decimal("1500"))
    settled = Supplier(name="Settled Co", outstanding_balance=Decimal("0"))
    db_session.add_all([legacy, settled])
    db_session.commit()

    preview = supplier_credit_service.import_opening_balances(dry_run=True)
    assert [(r["name"], r["status"], r["amount"]) for r in preview] == [
        ("Legacy Co", "would_create", Decimal("1500.00")),
    ]
    assert db_session.query(SupplierLedgerEntry).count() == 0

    results = supplier_credit_service.import_opening_balances()
    assert results[0]["status"] == "created"
    entry = db_session.query(SupplierLedgerEntry).filter_by(id=results[0]["entry_id"]).first()
    assert entry.signed_amount == Decimal("1500.00")
    assert entry.payment_status == "unpaid"
    assert entry.description == supplier_credit_service.OPENING_BALANCE_DESCRIPTION
    assert_ledger_consistent(legacy.id)

    again = supplier_credit_service.import_opening_balances()
    assert again[0]["status"] == "skipped"


def test_imported_opening_balance_is_paid_first(db_session):
    legacy = Supplier(name="Legacy Co", outstanding_balance=Decimal("100"))
    db_session.add(legacy)
    db_session.commit()
    supplier_credit_service.import_opening_balances()
    newer = supplier_credit_service.record_manual_entry(legacy.id, "debt_increase", "50")

    result = supplier_credit_service.record_payment(legacy.id, "120")

    assert result.plan.allocations[0].description == supplier_credit_service.OPENING_BALANCE_DESCRIPTION
    assert result.plan.allocations[1].entry_id == newer.id
    assert_ledger_consistent(legacy.id)


class RecordingDebtLines:
    """In-memory DebtLineUpdater."""

    def __init__(self, lines):
        self.lines = {line.id: line for line in lines}
        self.updates = []

    def get(self, debt_line_id):
        return self.lines.get(debt_line_id)

    def update(self, debt_line_id, paid_amount, payment_status):
        self.updates.append((debt_line_id, paid_amount, payment_status))
        old = self.lines[debt_line_id]
        self.lines[debt_line_id] = DebtLine(old.id, old.total, paid_amount, payment_status)


def test_synchronizer_with_custom_updater():
    updater = RecordingDebtLines([DebtLine(1, Decimal("100.00"), Decimal("0.00"), "unpaid")])
    sync = DebtLineSynchronizer(updater)

    assert sync.apply_allocation(None, Decimal("10")) is None
    sync.apply_allocation(1, Decimal("60"))
    sync.apply_allocation(1, Decimal("40"))
    sync.apply_allocation(1, Decimal("-100"))

    assert updater.updates == [
        (1, Decimal("60.00"), "partial"),
        (1, Decimal("100.00"), "paid"),
        (1, Decimal("0.00"), "unpaid"),
    ]

    with pytest.raises(NotFoundError):
        sync.apply_allocation(2, Decimal("1"))
