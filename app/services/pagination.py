import math

from sqlalchemy.orm import Query

from app.core.config import settings


def paginate(query: Query, page_index: int, page_size: int) -> dict:
    """Slice ``query`` into a 1-based page; out-of-range arguments fall back to defaults."""
    if page_index < 1:
        page_index = 1
    if page_size < 1:
        page_size = settings.default_page_size
    total_items = query.order_by(None).count()
    items = query.offset((page_index - 1) * page_size).limit(page_size).all()
    return {
        "page_index": page_index,
        "page_size": page_size,
        "total_items": total_items,
        "total_pages": math.ceil(total_items / page_size),
        "items": items,
    }
