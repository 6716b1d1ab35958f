"""Filter, sort and pagination construction for the list endpoints.

Each builder takes the raw query parameters of one resource and returns a
MongoDB filter. Parameters that are missing or empty never become filter keys,
so an empty request yields the resource's default set rather than no results.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pymongo import DESCENDING
from pymongo.collection import Collection

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 6
MAX_INT64 = 2**63 - 1
DEFAULT_SORT: List[Tuple[str, int]] = [("createdAt", DESCENDING)]


@dataclass(frozen=True)
class Pagination:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page:
    items: List[Dict[str, Any]]
    total: int
    pagination: Pagination

    @property
    def has_more(self) -> bool:
        return self.pagination.skip + len(self.items) < self.total


def _positive_int(value: Any, default: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return n if 0 < n <= MAX_INT64 else default


def parse_pagination(page: Any = None, limit: Any = None, default_limit: int = DEFAULT_LIMIT) -> Pagination:
    pagination = Pagination(page=_positive_int(page, DEFAULT_PAGE), limit=_positive_int(limit, default_limit))
    # skip and limit are sent to the server as int64
    if pagination.skip > MAX_INT64:
        return Pagination(page=DEFAULT_PAGE, limit=pagination.limit)
    return pagination


def exact(query: Dict[str, Any], field: str, value: Optional[Any]) -> Dict[str, Any]:
    if value is not None and value != "":
        query[field] = value
    return query


def contains(query: Dict[str, Any], field: str, text: Optional[str]) -> Dict[str, Any]:
    # Search text is matched literally, not as a pattern.
    if text:
        query[field] = {"$regex": re.escape(text), "$options": "i"}
    return query


def pet_filter(
    search: Optional[str] = None,
    category: Optional[str] = None,
    email: Optional[str] = None,
    available_only: bool = False,
) -> Dict[str, Any]:
    q: Dict[str, Any] = {"adopted": False} if available_only else {}
    exact(q, "email", email)
    contains(q, "name", search)
    exact(q, "category", category)
    return q


def donation_filter(email: Optional[str] = None, status: Optional[str] = None) -> Dict[str, Any]:
    q: Dict[str, Any] = {}
    exact(q, "email", email)
    exact(q, "donationStatus", status)
    return q


def payment_filter(email: Optional[str] = None, don_id: Optional[str] = None) -> Dict[str, Any]:
    q: Dict[str, Any] = {}
    exact(q, "email", email)
    exact(q, "donId", don_id)
    return q


def request_filter(
    owner_email: Optional[str] = None,
    status: Optional[str] = None,
    requester_email: Optional[str] = None,
) -> Dict[str, Any]:
    q: Dict[str, Any] = {}
    exact(q, "petOwnerEmail", owner_email)
    exact(q, "reqStatus", status)
    exact(q, "adoptedReqByEmail", requester_email)
    return q


def user_filter(
    email: Optional[str] = None,
    search: Optional[str] = None,
    role: Optional[str] = None,
) -> Dict[str, Any]:
    q: Dict[str, Any] = {}
    exact(q, "email", email)
    contains(q, "name", search)
    exact(q, "role", role)
    return q


def find_all(collection: Collection, query: Dict[str, Any], sort=None) -> List[Dict[str, Any]]:
    return list(collection.find(query).sort(sort or DEFAULT_SORT))


def paginate(collection: Collection, query: Dict[str, Any], pagination: Pagination, sort=None) -> Page:
    total = collection.count_documents(query)
    items = list(
        collection.find(query)
        .sort(sort or DEFAULT_SORT)
        .skip(pagination.skip)
        .limit(pagination.limit)
    )
    return Page(items=items, total=total, pagination=pagination)
