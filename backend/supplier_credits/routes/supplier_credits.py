# Overview: Flask API routes for supplier credit ledger operations; parses input and returns JSON responses.

# backend/supplier_credits/routes/supplier_credits.py
"""
Supplier Credit Ledger API Routes

WHY: Purchasing screens and admin tooling record supplier debts and
payments and read balances over REST.

DESIGN:
- Manual entries (admin credit, manual payment, adjustment)
- Payments allocated FIFO across open debts
- Entry deletion with automatic rebalancing
- Balance repair endpoint for operators

SECURITY:
- Authentication and role checks are applied by the host application
  in front of this blueprint.
"""

from flask import Blueprint, request, jsonify, current_app

from ..amounts import format_amount
from ..errors import AllocationError, LedgerError
from ..services import supplier_credit_service
from ..time_utils import parse_iso_datetime


supplier_credits_bp = Blueprint("supplier_credits", __name__, url_prefix="/api/supplier-credits")


def _error(message: str, code: str, status: int = 400):
    return jsonify({"error": message, "code": code}), status


def _ledger_error(exc: LedgerError):
    if isinstance(exc, AllocationError):
        current_app.logger.critical("Supplier ledger allocation failure: %s", exc)
    return jsonify(exc.to_dict()), exc.status_code


def _supplier_id_arg(data: dict | None = None):
    raw = request.args.get("supplier_id")
    if raw is None and data:
        raw = data.get("supplier_id")
    if raw is None or raw == "":
        return None, _error("Supplier ID is required", "MISSING_SUPPLIER_ID")
    try:
        return int(raw), None
    except (TypeError, ValueError):
        return None, _error("Invalid supplier ID", "INVALID_SUPPLIER_ID")


# =============================================================================
# QUERIES
# =============================================================================

@supplier_credits_bp.get("")
def list_history_route():
    """
    Supplier ledger history, newest first.

    Query params:
    - supplier_id (required)
    - limit: default LEDGER_HISTORY_DEFAULT_LIMIT, capped at LEDGER_HISTORY_MAX_LIMIT
    """
    supplier_id, err = _supplier_id_arg()
    if err:
        return err

    limit = request.args.get("limit", type=int)

    try:
        entries = supplier_credit_service.list_history(supplier_id, limit)
        return jsonify({"items": [e.to_dict() for e in entries]}), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to load supplier ledger history")
        return _error("Internal server error", "INTERNAL_ERROR", 500)


@supplier_credits_bp.get("/balance")
def get_balance_route():
    supplier_id, err = _supplier_id_arg()
    if err:
        return err

    try:
        result = supplier_credit_service.get_balance(supplier_id)
        return jsonify({
            "supplier_id": supplier_id,
            "balance": format_amount(result["balance"]),
        }), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to load supplier balance")
        return _error("Internal server error", "INTERNAL_ERROR", 500)


@supplier_credits_bp.get("/outstanding")
def list_outstanding_route():
    """Open debts in the order payments will be applied to them."""
    supplier_id, err = _supplier_id_arg()
    if err:
        return err

    try:
        entries = supplier_credit_service.list_outstanding(supplier_id)
        return jsonify({"items": [e.to_dict() for e in entries]}), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to load outstanding supplier credits")
        return _error("Internal server error", "INTERNAL_ERROR", 500)


@supplier_credits_bp.get("/<int:entry_id>/allocations")
def list_allocations_route(entry_id: int):
    try:
        allocations = supplier_credit_service.list_payment_allocations(entry_id)
        return jsonify({"items": [a.to_dict() for a in allocations]}), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to load payment allocations")
        return _error("Internal server error", "INTERNAL_ERROR", 500)


# =============================================================================
# WRITES
# =============================================================================

@supplier_credits_bp.post("")
def create_entry_route():
    """
    Manual ledger entry.

    Request body:
    {
        "supplier_id": 1,
        "kind": "admin_credit",        (debt_increase|credit|admin_credit|payment|debit|manual_adjustment)
        "amount": "1500.00",
        "description": "Opening balance",  (optional)
        "purchase_order_id": 7,        (optional)
        "created_at": "2025-01-31T09:00:00Z",  (optional, backdates the entry)
        "created_by_user_id": 3        (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    supplier_id, err = _supplier_id_arg(data)
    if err:
        return err
    if not data.get("kind") or data.get("amount") is None:
        return _error("Supplier ID, kind, and amount are required", "MISSING_REQUIRED_FIELDS")

    try:
        created_at = parse_iso_datetime(data.get("created_at"))
    except (TypeError, ValueError):
        return _error("created_at must be an ISO-8601 datetime", "INVALID_DATA")

    try:
        entry = supplier_credit_service.record_manual_entry(
            supplier_id,
            data["kind"],
            data["amount"],
            data.get("description"),
            purchase_order_id=data.get("purchase_order_id"),
            created_by_user_id=data.get("created_by_user_id"),
            created_at=created_at,
        )
        return jsonify(entry.to_dict()), 201
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier ledger entry")
        return _error("Internal server error", "INTERNAL_ERROR", 500)


@supplier_credits_bp.post("/payment")
def record_payment_route():
    """
    Pay a supplier; the amount is allocated oldest debt first.

    Request body:
    {
        "supplier_id": 1,
        "amount": "1200.00",
        "payment_method": "Bank transfer",  (optional)
        "reference": "TRX-991",             (optional)
        "notes": "...",                     (optional)
        "created_by_user_id": 3             (optional)
    }

    Returns:
        201: Payment recorded with allocations and new balance
        400: Invalid input or amount exceeds outstanding balance
        404: Supplier not found
        500: Ledger desync or server error
    """
    data = request.get_json(silent=True) or {}

    supplier_id, err = _supplier_id_arg(data)
    if err:
        return err
    if data.get("amount") is None:
        return _error("Supplier ID and amount are required", "MISSING_REQUIRED_FIELDS")

    try:
        result = supplier_credit_service.record_payment(
            supplier_id,
            data["amount"],
            payment_method=data.get("payment_method"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            created_by_user_id=data.get("created_by_user_id"),
        )
        body = result.to_dict()
        body["message"] = (
            f"Payment of {format_amount(result.plan.amount)} recorded successfully. "
            f"Allocated to {len(result.allocations)} credit(s)."
        )
        return jsonify(body), 201
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to record supplier payment")
        return _error("Internal server error", "INTERNAL_ERROR", 500)


@supplier_credits_bp.post("/recalculate")
def recalculate_route():
    """Rebuild running balances and the cached balance from the ledger."""
    data = request.get_json(silent=True) or {}

    supplier_id, err = _supplier_id_arg(data)
    if err:
        return err

    try:
        result = supplier_credit_service.recalculate_balance(supplier_id)
        return jsonify({
            "supplier_id": supplier_id,
            "outstanding_balance": format_amount(result["outstanding_balance"]),
        }), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to recalculate supplier balance")
        return _error("Internal server error", "INTERNAL_ERROR", 500)


@supplier_credits_bp.post("/purchase-orders/<int:purchase_order_id>/credit")
def credit_purchase_order_route(purchase_order_id: int):
    """Book a purchase order's unpaid remainder as supplier debt."""
    data = request.get_json(silent=True) or {}

    try:
        entry = supplier_credit_service.record_purchase_credit(
            purchase_order_id,
            created_by_user_id=data.get("created_by_user_id"),
        )
        return jsonify(entry.to_dict()), 201
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to credit purchase order")
        return _error("Internal server error", "INTERNAL_ERROR", 500)


@supplier_credits_bp.delete("/<int:entry_id>")
def delete_entry_route(entry_id: int):
    try:
        balance = supplier_credit_service.delete_entry(entry_id)
        return jsonify({
            "success": True,
            "outstanding_balance": format_amount(balance),
        }), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete supplier ledger entry")
        return _error("Internal server error", "INTERNAL_ERROR", 500)
