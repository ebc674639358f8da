from decimal import Decimal

import pytest

from supplier_credits.errors import NotFoundError
from supplier_credits.extensions import db
from supplier_credits.models import SupplierLedgerEntry
from supplier_credits.services import reconciler, supplier_credit_service
from tests.conftest import assert_ledger_consistent, day


def _balances(supplier_id):
    rows = (
        db.session.query(SupplierLedgerEntry)
        .filter_by(supplier_id=supplier_id)
        .order_by(SupplierLedgerEntry.created_at.asc(), SupplierLedgerEntry.id.asc())
        .all()
    )
    return [(r.signed_amount, r.running_balance) for r in rows]


@pytest.fixture
def three_entries(supplier):
    t1 = supplier_credit_service.record_manual_entry(supplier.id, "debt_increase", "1000", created_at=day(1))
    t2 = supplier_credit_service.record_manual_entry(supplier.id, "payment", "300", created_at=day(2))
    t3 = supplier_credit_service.record_manual_entry(supplier.id, "debt_increase", "200", created_at=day(3))
    return t1, t2, t3


def test_deleting_middle_entry_rebalances(supplier, three_entries):
    _, t2, _ = three_entries
    assert [b for _, b in _balances(supplier.id)] == [Decimal("1000.00"), Decimal("700.00"), Decimal("900.00")]

    new_balance = supplier_credit_service.delete_entry(t2.id)

    assert new_balance == Decimal("1200.00")
    assert _balances(supplier.id) == [
        (Decimal("1000.00"), Decimal("1000.00")),
        (Decimal("200.00"), Decimal("1200.00")),
    ]
    assert supplier_credit_service.get_balance(supplier.id)["balance"] == Decimal("1200.00")
    assert_ledger_consistent(supplier.id)


def test_deleting_last_remaining_entry_zeroes_balance(supplier):
    only = supplier_credit_service.record_manual_entry(supplier.id, "debt_increase", "40")

    assert supplier_credit_service.delete_entry(only.id) == Decimal("0")
    assert supplier_credit_service.get_balance(supplier.id)["balance"] == Decimal("0")


def test_delete_missing_entry(db_session):
    with pytest.raises(NotFoundError):
        supplier_credit_service.delete_entry(31337)


def test_recalculate_is_idempotent(supplier, three_entries):
    first = supplier_credit_service.recalculate_balance(supplier.id)
    snapshot = _balances(supplier.id)
    second = supplier_credit_service.recalculate_balance(supplier.id)

    assert first == second == {"supplier_id": supplier.id, "outstanding_balance": Decimal("900.00")}
    assert _balances(supplier.id) == snapshot


def test_recalculate_repairs_drift(supplier, three_entries):
    t1, _, t3 = three_entries
    t1.running_balance = Decimal("5")
    t3.running_balance = Decimal("5")
    supplier.outstanding_balance = Decimal("12345")
    db.session.commit()

    assert not reconciler.audit([supplier.id])[0].is_consistent

    result = supplier_credit_service.recalculate_balance(supplier.id)

    assert result["outstanding_balance"] == Decimal("900.00")
    assert_ledger_consistent(supplier.id)
    assert reconciler.audit([supplier.id])[0].is_consistent


def test_recalculate_empty_ledger(supplier):
    supplier.outstanding_balance = Decimal("75")
    db.session.commit()

    assert supplier_credit_service.recalculate_balance(supplier.id)["outstanding_balance"] == Decimal("0")


def test_recalculate_unknown_supplier(db_session):
    with pytest.raises(NotFoundError):
        supplier_credit_service.recalculate_balance(4040)


def test_audit_reports_drift_details(supplier, other_supplier, three_entries):
    t1, _, _ = three_entries
    t1.running_balance = Decimal("1")
    db.session.commit()

    reports = {r.supplier_id: r for r in reconciler.audit()}

    drifted = reports[supplier.id]
    assert drifted.bad_running_balance_ids == [t1.id]
    assert drifted.ledger_sum == Decimal("900.00")
    assert drifted.cached_balance == Decimal("900.00")
    assert drifted.to_dict()["is_consistent"] is False
    assert reports[other_supplier.id].is_consistent
    assert reports[other_supplier.id].entry_count == 0


def test_audit_flags_paid_amount_without_allocations(supplier, three_entries):
    t1, _, _ = three_entries
    t1.paid_amount = Decimal("10")
    db.session.commit()

    report = reconciler.audit([supplier.id])[0]

    assert report.paid_amount_mismatch_ids == [t1.id]


def test_recalculate_all_balances(supplier, other_supplier, three_entries):
    other_supplier.outstanding_balance = Decimal("3")
    db.session.commit()

    results = supplier_credit_service.recalculate_all_balances()

    assert [(r["supplier_id"], r["outstanding_balance"]) for r in results] == [
        (supplier.id, Decimal("900.00")),
        (other_supplier.id, Decimal("0")),
    ]
