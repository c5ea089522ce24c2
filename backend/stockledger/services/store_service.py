from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from stockledger.errors import ConflictError, NotFoundError, ValidationError
from stockledger.extensions import db
from stockledger.models import Store
from stockledger.services.concurrency import lock_for_update, run_with_retry
from stockledger.services.paging import paginate
from stockledger.validation import enforce_status, require_text

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10


def _code_key(code: str) -> str:
    return code.strip().upper()


def _clean_optional(key: str, value, max_length: int) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}", field=key)
    return value or None


def create_store(
    *,
    code: str,
    name: str,
    address: str | None = None,
    phone: str | None = None,
    status: str | None = None,
    actor_id: int | None = None,
) -> Store:
    code = require_text("code", code)
    name = require_text("name", name)
    if len(code) > 32:
        raise ValidationError("code exceeds max length 32", field="code")
    if len(name) > 120:
        raise ValidationError("name exceeds max length 120", field="name")
    address = _clean_optional("address", address, 255)
    phone = _clean_optional("phone", phone, 32)
    status = enforce_status(status) if status else "ACTIVE"

    def _op():
        existing = db.session.query(Store).filter(Store.code_key == _code_key(code)).first()
        if existing:
            raise ConflictError("Store code already exists.", field="code", code=code)

        store = Store(
            code=code,
            code_key=_code_key(code),
            name=name,
            address=address,
            phone=phone,
            status=status,
            created_by=actor_id,
            updated_by=actor_id,
        )

        db.session.add(store)
        db.session.commit()
        return store

    try:
        store = run_with_retry(_op)
    except IntegrityError as exc:
        raise ConflictError("Store code already exists.", field="code", code=code) from exc
    logger.info("Created store id=%s code=%s", store.id, store.code)
    return store


def update_store(
    store_id: int,
    *,
    name: str,
    address: str | None = None,
    phone: str | None = None,
    actor_id: int | None = None,
) -> Store:
    """Update store metadata. The code is immutable."""
    name = require_text("name", name)
    if len(name) > 120:
        raise ValidationError("name exceeds max length 120", field="name")
    address = _clean_optional("address", address, 255)
    phone = _clean_optional("phone", phone, 32)

    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFoundError(f"Store {store_id} not found", field="id", store_id=store_id)

        store.name = name
        store.address = address
        store.phone = phone
        store.updated_by = actor_id

        db.session.commit()
        return store

    return run_with_retry(_op)


def set_store_status(store_id: int, status: str, *, actor_id: int | None = None) -> Store:
    status = enforce_status(status)

    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFoundError(f"Store {store_id} not found", field="id", store_id=store_id)
        if store.status != status:
            store.status = status
            store.updated_by = actor_id
        db.session.commit()
        return store

    store = run_with_retry(_op)
    logger.info("Store id=%s status=%s", store.id, store.status)
    return store


def delete_store(store_id: int, *, actor_id: int | None = None) -> Store:
    return set_store_status(store_id, "INACTIVE", actor_id=actor_id)


def get_store(store_id: int) -> Store:
    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise NotFoundError(f"Store {store_id} not found", field="id", store_id=store_id)
    return store


def find_stores(
    *,
    search: str | None = None,
    status: str | None = None,
    page: int | None = 1,
    page_size: int | None = DEFAULT_PAGE_SIZE,
) -> dict:
    q = db.session.query(Store)

    if search is not None and search.strip():
        pattern = f"%{search.strip().lower()}%"
        q = q.filter(
            or_(
                db.func.lower(Store.code).like(pattern),
                db.func.lower(Store.name).like(pattern),
            )
        )

    if status is not None and status.strip():
        q = q.filter(Store.status == enforce_status(status))

    q = q.order_by(Store.created_at.asc(), Store.id.asc())
    return paginate(q, page=page, page_size=page_size, default_size=DEFAULT_PAGE_SIZE)
