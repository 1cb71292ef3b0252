# ertha_exchange/utils/helpers.py
"""Response envelope, pagination and request-metadata helpers shared by all routes."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Query, Request

from ertha_exchange.config import get_settings

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


# --------------------------
# Envelope
# --------------------------
def api_response(
    data: Any = None,
    message: str = "Success",
    success: bool = True,
    pagination: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Uniform `{success, message, data, timestamp, pagination?}` body."""
    body = {
        "success": success,
        "message": message,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if pagination is not None:
        body["pagination"] = pagination
    return body


# --------------------------
# Pagination
# --------------------------
@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> Dict[str, Any]:
        total_pages = compute_total_pages(total_count=total, page_size=self.limit)
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": self.page < total_pages,
            "hasPrev": self.page > 1,
        }


def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> Pagination:
    """FastAPI dependency for `?page=&limit=`."""
    return Pagination(page=page, limit=limit)


def compute_total_pages(*, total_count: int, page_size: int) -> int:
    if total_count <= 0:
        return 0
    return ((total_count - 1) // page_size) + 1


# --------------------------
# Request metadata
# --------------------------
def get_client_ip(request: Request) -> Optional[str]:
    """Socket peer address; X-Forwarded-For only when the peer is a trusted proxy."""
    peer = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and peer in get_settings().trusted_proxies:
        return forwarded.split(",")[0].strip() or peer
    return peer


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


def sanitize_user(user) -> Optional[Dict[str, Any]]:
    """Public view of a user row (never includes the password hash)."""
    return user.to_dict() if user is not None else None
