# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from stockledger.decorators import require_auth, require_role
from stockledger.models import Store
from stockledger.services import store_service
from stockledger.validation import ModelValidationPolicy, validate_payload


STORE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "address", "phone", "status"},
    required_on_create={"code", "name"},
)

STORE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "phone"},
)

stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
@require_auth
def list_stores():
    result = store_service.find_stores(
        search=request.args.get("search"),
        status=request.args.get("status"),
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )
    return jsonify({
        "items": [store.to_dict() for store in result["items"]],
        "total": result["total"],
        "page": result["page"],
        "page_size": result["page_size"],
        "total_pages": result["total_pages"],
    }), 200


@stores_bp.post("")
@require_auth
@require_role("ADMIN")
def create_store():
    data = request.get_json(silent=True) or {}
    patch = validate_payload(model=Store, payload=data, policy=STORE_CREATE_POLICY, partial=False)
    store = store_service.create_store(
        code=patch["code"],
        name=patch["name"],
        address=patch.get("address"),
        phone=patch.get("phone"),
        status=patch.get("status"),
        actor_id=g.actor_id,
    )
    return jsonify(store.to_dict()), 201


@stores_bp.get("/<int:store_id>")
@require_auth
def get_store(store_id: int):
    return jsonify(store_service.get_store(store_id).to_dict()), 200


@stores_bp.put("/<int:store_id>")
@require_auth
@require_role("ADMIN")
def update_store(store_id: int):
    data = request.get_json(silent=True) or {}
    patch = validate_payload(model=Store, payload=data, policy=STORE_UPDATE_POLICY, partial=True)

    current = store_service.get_store(store_id)
    store = store_service.update_store(
        store_id,
        name=patch.get("name", current.name),
        address=patch.get("address", current.address),
        phone=patch.get("phone", current.phone),
        actor_id=g.actor_id,
    )
    return jsonify(store.to_dict()), 200


@stores_bp.put("/<int:store_id>/status")
@require_auth
@require_role("ADMIN")
def set_store_status(store_id: int):
    data = request.get_json(silent=True) or {}
    store = store_service.set_store_status(store_id, data.get("status"), actor_id=g.actor_id)
    return jsonify(store.to_dict()), 200


@stores_bp.delete("/<int:store_id>")
@require_auth
@require_role("ADMIN")
def delete_store(store_id: int):
    store = store_service.delete_store(store_id, actor_id=g.actor_id)
    return jsonify(store.to_dict()), 200
