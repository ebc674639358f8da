# Overview: Transaction scope and row locking for supplier ledger writes.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import update

from ..extensions import db
from ..models import Supplier


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def lock_supplier(supplier_id: int) -> Supplier | None:
    """
    Lock a supplier row and return it with fresh column values.

    Every ledger write goes through here first, so two writers for the
    same supplier run one after the other and the second one sees the
    balance the first one committed.

    SQLite has no row locks: a no-op UPDATE makes the connection take
    the database write lock before anything is read.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(
            update(Supplier)
            .where(Supplier.id == supplier_id)
            .values(outstanding_balance=Supplier.outstanding_balance)
            .execution_options(synchronize_session=False)
        )

    return (
        lock_for_update(db.session.query(Supplier).filter_by(id=supplier_id))
        .populate_existing()
        .first()
    )


@contextmanager
def atomic():
    """
    One database transaction per logical ledger operation.

    Commits when the block finishes, rolls back and re-raises on any
    exception. No retries: the caller resubmits the whole operation.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
