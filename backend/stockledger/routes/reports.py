from flask import Blueprint, current_app, jsonify, request

from stockledger.decorators import require_auth
from stockledger.services import reporting_service
from stockledger.validation import coerce_int


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _report_filters() -> dict:
    """
    store_id, start, end from the query string. When neither start nor end
    is given, a `range` preset (all, today, week, month) fills them in.
    """
    raw_store_id = request.args.get("store_id")
    store_id = None
    if raw_store_id is not None and raw_store_id.strip():
        store_id = coerce_int("store_id", raw_store_id)

    start = request.args.get("start") or None
    end = request.args.get("end") or None
    if start is None and end is None:
        start, end = reporting_service.date_range_for(
            request.args.get("range"),
            offset_minutes=current_app.config.get("DISPLAY_UTC_OFFSET_MINUTES", 0),
        )

    return {"store_id": store_id, "start": start, "end": end}


@reports_bp.get("/summary")
@require_auth
def summary_report():
    return jsonify(reporting_service.summarize(**_report_filters())), 200


@reports_bp.get("/sales-by-store")
@require_auth
def sales_by_store_report():
    return jsonify(reporting_service.sales_by_store(**_report_filters())), 200


@reports_bp.get("/top-products")
@require_auth
def top_products_report():
    raw_limit = request.args.get("limit")
    limit = 5 if raw_limit is None or not raw_limit.strip() else coerce_int("limit", raw_limit)
    return jsonify(reporting_service.top_products(limit=limit, **_report_filters())), 200


@reports_bp.get("/reconciliation")
@require_auth
def reconciliation_report():
    return jsonify(reporting_service.reconcile_all()), 200
