"""
Offset pagination for record listings
"""
import math
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from geoattend.services.results import ErrorKind, ServiceResult

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class Page(NamedTuple):
    items: List[Any]
    page: int
    limit: int
    total: int
    summary: Optional[Dict[str, int]] = None

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    def to_dict(self, serialize: Callable[[Any], Dict[str, Any]]) -> Dict[str, Any]:
        data = {
            "items": [serialize(item) for item in self.items],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "total_pages": self.total_pages
            }
        }
        if self.summary is not None:
            data["summary"] = self.summary
        return data


def check_page_params(page: int, limit: int) -> Optional[ServiceResult]:
    """ValidationFailed result for out-of-range paging, else None"""
    if page < 1:
        return ServiceResult.fail(
            ErrorKind.validation_failed, "Page must be 1 or greater", field="page"
        )
    if not 1 <= limit <= MAX_PAGE_SIZE:
        return ServiceResult.fail(
            ErrorKind.validation_failed,
            f"Limit must be between 1 and {MAX_PAGE_SIZE}",
            field="limit"
        )
    return None


def paginate(query, page: int, limit: int, summary: Optional[Dict[str, int]] = None) -> Page:
    """Apply offset/limit to an already-ordered query"""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, page=page, limit=limit, total=total, summary=summary)
