# Overview: Offset pagination shared by the registry and ledger listings.

from __future__ import annotations

MAX_PAGE_SIZE = 100


def normalize_page(page, page_size, *, default_size: int) -> tuple[int, int]:
    """
    page < 1 becomes 1; a page size outside 1..MAX_PAGE_SIZE falls back to
    default_size rather than being clamped.
    """
    try:
        page = int(page) if page is not None else 1
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size) if page_size is not None else default_size
    except (TypeError, ValueError):
        page_size = default_size

    if page < 1:
        page = 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = default_size
    return page, page_size


def paginate(query, *, page, page_size, default_size: int) -> dict:
    """Run an ordered query for one page; returns items plus totals."""
    page, page_size = normalize_page(page, page_size, default_size=default_size)

    total = query.order_by(None).count()
    total_pages = (total + page_size - 1) // page_size if total > 0 else 0
    items = query.offset((page - 1) * page_size).limit(page_size).all()

    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
    }
