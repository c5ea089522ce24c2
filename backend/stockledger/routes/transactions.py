# Overview: Flask API routes for ledger operations; parses input and returns JSON responses.

# backend/stockledger/routes/transactions.py
"""
Stock ledger routes.

POST appends one INCREASE or DECREASE entry; there is no PUT or DELETE,
entries are append-only. Any signed-in user may record and read entries.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import ledger_service
from ..time_utils import to_display
from ..validation import coerce_int

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _optional_int_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return None
    return coerce_int(name, raw)


def _entry_json(entry) -> dict:
    data = entry.to_dict()
    data["transaction_date_display"] = to_display(
        entry.transaction_date,
        current_app.config.get("DISPLAY_UTC_OFFSET_MINUTES", 0),
    )
    return data


@transactions_bp.post("")
@require_auth
def record_transaction_route():
    """
    Record a stock movement.

    Body:
    - transaction_type: INCREASE | DECREASE
    - product_id: int
    - store_id: int (DECREASE only)
    - quantity: int, 1..1,000,000
    - unit_price_cents: int > 0
    - notes: str (optional)
    """
    payload = request.get_json(silent=True) or {}

    product_id = payload.get("product_id")
    if product_id is not None:
        product_id = coerce_int("product_id", product_id)
    store_id = payload.get("store_id")
    if store_id is not None:
        store_id = coerce_int("store_id", store_id)

    entry = ledger_service.record_transaction(
        transaction_type=payload.get("transaction_type"),
        product_id=product_id,
        store_id=store_id,
        quantity=payload.get("quantity"),
        unit_price_cents=payload.get("unit_price_cents"),
        notes=payload.get("notes"),
        actor_id=g.actor_id,
    )
    return jsonify(_entry_json(entry)), 201


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    List ledger entries, newest first.

    Query params: product_id, store_id, type, start, end (ISO-8601),
    page (default 1), limit (default 20, max 100).
    """
    result = ledger_service.list_transactions(
        product_id=_optional_int_arg("product_id"),
        store_id=_optional_int_arg("store_id"),
        transaction_type=request.args.get("type") or None,
        start=request.args.get("start") or None,
        end=request.args.get("end") or None,
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({
        "items": [_entry_json(e) for e in result["items"]],
        "total": result["total"],
        "page": result["page"],
        "page_size": result["page_size"],
        "total_pages": result["total_pages"],
    }), 200


@transactions_bp.get("/<int:entry_id>")
@require_auth
def get_transaction_route(entry_id: int):
    return jsonify(_entry_json(ledger_service.get_transaction(entry_id))), 200
