# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/stockledger/routes/products.py
"""
Product registry routes.

SECURITY: All routes require authentication.
- Read operations are open to every signed-in user
- Write operations require the ADMIN role

Stock is never writable here; it only moves through /api/transactions.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models import Product
from ..services import products_service, reporting_service
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    validate_payload,
    enforce_rules_product,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "price_cents", "cost_cents"},
    required_on_create={"sku", "name"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price_cents", "cost_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _page_response(result: dict):
    return jsonify({
        "items": [p.to_dict() for p in result["items"]],
        "total": result["total"],
        "page": result["page"],
        "page_size": result["page_size"],
        "total_pages": result["total_pages"],
    })


@products_bp.get("")
@require_auth
def list_products():
    """
    List products in creation order.

    Query params:
    - search: substring of sku or name (case-insensitive)
    - status: ACTIVE | INACTIVE
    - page: int (default 1)
    - page_size: int (default 10, max 100)
    """
    result = products_service.find_products(
        search=request.args.get("search"),
        status=request.args.get("status"),
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )
    return _page_response(result), 200


@products_bp.post("")
@require_auth
@require_role("ADMIN")
def create_product_route():
    """
    Create a new product. A positive initial_stock is booked as an opening
    INCREASE entry.
    """
    payload = dict(request.get_json(silent=True) or {})

    initial_stock = payload.pop("initial_stock", 0)
    initial_stock = 0 if initial_stock is None else coerce_int("initial_stock", initial_stock)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    product = products_service.create_product(
        sku=patch["sku"],
        name=patch["name"],
        description=patch.get("description"),
        price_cents=patch.get("price_cents") or 0,
        cost_cents=patch.get("cost_cents") or 0,
        initial_stock=initial_stock,
        actor_id=g.actor_id,
    )
    return jsonify(product.to_dict()), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    return jsonify(products_service.get_product(product_id).to_dict()), 200


@products_bp.put("/<int:product_id>")
@require_auth
@require_role("ADMIN")
def update_product_route(product_id: int):
    """
    Update product metadata. Omitted fields keep their current values;
    sku and stock are rejected as non-writable.
    """
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    current = products_service.get_product(product_id)
    product = products_service.update_product(
        product_id=product_id,
        name=patch.get("name", current.name),
        description=patch.get("description", current.description),
        price_cents=patch.get("price_cents", current.price_cents),
        cost_cents=patch.get("cost_cents", current.cost_cents),
        actor_id=g.actor_id,
    )
    return jsonify(product.to_dict()), 200


@products_bp.put("/<int:product_id>/status")
@require_auth
@require_role("ADMIN")
def set_product_status_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    product = products_service.set_product_status(
        product_id=product_id,
        status=payload.get("status"),
        actor_id=g.actor_id,
    )
    return jsonify(product.to_dict()), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role("ADMIN")
def delete_product_route(product_id: int):
    """Soft delete: the product goes INACTIVE and keeps its ledger history."""
    product = products_service.delete_product(product_id=product_id, actor_id=g.actor_id)
    return jsonify(product.to_dict()), 200


@products_bp.get("/<int:product_id>/reconcile")
@require_auth
def reconcile_product_route(product_id: int):
    return jsonify(reporting_service.reconcile_product(product_id)), 200
