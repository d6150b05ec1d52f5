from __future__ import annotations

from flask import current_app


def paginate(query, page: int | None, per_page: int | None, serialize=None) -> dict:
    """
    Page a query into the list envelope every list endpoint returns.

    page is 1-indexed; per_page falls back to DEFAULT_PER_PAGE and is capped
    at MAX_PER_PAGE.
    """
    serialize = serialize or (lambda row: row.to_dict())
    default_per_page = current_app.config.get("DEFAULT_PER_PAGE", 15)
    max_per_page = current_app.config.get("MAX_PER_PAGE", 100)

    per_page = min(per_page or default_per_page, max_per_page)
    per_page = max(per_page, 1)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
