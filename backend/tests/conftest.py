"""
Pytest fixtures for the supplier credit ledger tests.

Provides the application on an in-memory database, per-test table
cleanup, suppliers/purchase orders, and a ledger consistency check.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from supplier_credits import create_app
from supplier_credits.extensions import db
from supplier_credits.models import PurchaseOrder, Supplier, SupplierLedgerEntry, SupplierPaymentAllocation


BASE_TIME = datetime(2025, 1, 1, 9, 0, 0)


def day(n: int) -> datetime:
    """Business time on day n of the test ledger."""
    return BASE_TIME + timedelta(days=n)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_HISTORY_DEFAULT_LIMIT': 50,
        'LEDGER_HISTORY_MAX_LIMIT': 200,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def supplier(db_session):
    """Supplier with an empty ledger."""
    s = Supplier(name="Ceylon Traders", code="CEYLON", outstanding_balance=Decimal("0"))
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def other_supplier(db_session):
    s = Supplier(name="Kandy Wholesale", code="KANDY", outstanding_balance=Decimal("0"))
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def make_purchase_order(db_session):
    """Factory for purchase orders (debt lines)."""
    counter = {"n": 0}

    def _make(supplier_id: int, total: str, paid_amount: str = "0") -> PurchaseOrder:
        counter["n"] += 1
        po = PurchaseOrder(
            supplier_id=supplier_id,
            purchase_number=f"PO-{counter['n']:04d}",
            total=Decimal(total),
            paid_amount=Decimal(paid_amount),
            payment_status="unpaid" if Decimal(paid_amount) == 0 else "partial",
        )
        db_session.add(po)
        db_session.commit()
        return po

    return _make


def assert_ledger_consistent(supplier_id: int) -> None:
    """
    Balance identity, running balance correctness and allocation
    completeness for one supplier.
    """
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    db.session.refresh(supplier)
    entries = (
        db.session.query(SupplierLedgerEntry)
        .filter_by(supplier_id=supplier_id)
        .order_by(SupplierLedgerEntry.created_at.asc(), SupplierLedgerEntry.id.asc())
        .all()
    )

    running = Decimal("0")
    for entry in entries:
        running += entry.signed_amount
        assert entry.running_balance == running, f"entry {entry.id} running balance"

    assert supplier.outstanding_balance == running
    if entries:
        assert entries[-1].running_balance == supplier.outstanding_balance

    for entry in entries:
        if entry.kind != "payment" or not entry.allocations:
            continue
        allocated = sum((a.allocated_amount for a in entry.allocations), Decimal("0"))
        assert allocated == -entry.signed_amount, f"payment {entry.id} allocation total"


def allocation_count() -> int:
    return db.session.query(SupplierPaymentAllocation).count()
