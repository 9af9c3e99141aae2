# acadlib/core/query.py
"""Turns material search parameters into one MongoDB query.

Exact-match filters are ANDed together; the free-text keyword is matched as a
case-insensitive literal substring against any of the searchable fields, and
the two clauses are ANDed when both are present.
"""
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

from acadlib.core import config
from acadlib.core.errors import InvalidRequestError
from acadlib.models.schema import Pagination

KEYWORD_FIELDS = ("title", "description", "keywords", "authors", "category")

# API sort keys -> document fields
SORTABLE_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
    "publicationYear": "publication_year",
    "materialType": "material_type",
    "category": "category",
    "availableCopies": "available_copies",
}
DEFAULT_SORT = "-createdAt"


@dataclass
class MaterialSearchParams:
    keyword: Optional[str] = None
    category: Optional[str] = None
    material_type: Optional[str] = None
    publication_year: Optional[int] = None
    is_physical: Optional[bool] = None
    available_only: bool = False
    page: int = 1
    limit: Optional[int] = None
    sort: Optional[str] = None


@dataclass
class MaterialQuery:
    filter: Dict[str, Any]
    sort: List[Tuple[str, int]]
    skip: int
    limit: int
    page: int


def literal_pattern(text: str, anchored: bool = False) -> Dict[str, str]:
    escaped = re.escape(text)
    if anchored:
        escaped = f"^{escaped}$"
    return {"$regex": escaped, "$options": "i"}


def build_filter_clause(params: MaterialSearchParams) -> Dict[str, Any]:
    clause: Dict[str, Any] = {}
    if params.category and params.category.strip():
        clause["category"] = literal_pattern(params.category.strip(), anchored=True)
    if params.material_type:
        clause["material_type"] = getattr(params.material_type, "value", params.material_type)
    if params.publication_year is not None:
        clause["publication_year"] = params.publication_year
    if params.is_physical is not None:
        clause["is_physical"] = params.is_physical
    if params.available_only:
        clause["available_copies"] = {"$gt": 0}
    return clause


def build_keyword_clause(keyword: Optional[str]) -> Optional[Dict[str, Any]]:
    if not keyword or not keyword.strip():
        return None
    pattern = literal_pattern(keyword.strip())
    return {"$or": [{field: dict(pattern)} for field in KEYWORD_FIELDS]}


def combine_clauses(filter_clause: Dict[str, Any], keyword_clause: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if filter_clause and keyword_clause:
        return {"$and": [filter_clause, keyword_clause]}
    if keyword_clause:
        return keyword_clause
    return dict(filter_clause)


def parse_sort(sort: Optional[str]) -> List[Tuple[str, int]]:
    """``"-createdAt,title"`` -> ``[("created_at", -1), ("title", 1)]``."""
    spec = (sort or "").strip() or DEFAULT_SORT
    result: List[Tuple[str, int]] = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        direction = DESCENDING if part.startswith("-") else ASCENDING
        name = part.lstrip("-+")
        field = SORTABLE_FIELDS.get(name) or (name if name in SORTABLE_FIELDS.values() else None)
        if field is None:
            raise InvalidRequestError(
                f"Cannot sort by '{name}'. Allowed: {', '.join(SORTABLE_FIELDS)}.", {"sort": sort}
            )
        if field not in (f for f, _ in result):
            result.append((field, direction))
    # Stable ordering across pages when the primary key ties.
    if "_id" not in (f for f, _ in result):
        result.append(("_id", result[0][1] if result else DESCENDING))
    return result


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None or limit <= 0:
        return config.DEFAULT_PAGE_SIZE
    return min(limit, config.MAX_PAGE_SIZE)


def compose_material_query(params: MaterialSearchParams) -> MaterialQuery:
    if params.page is not None and params.page < 1:
        raise InvalidRequestError("Page must be a positive integer.", {"page": params.page})
    page = params.page or 1
    limit = clamp_limit(params.limit)
    query_filter = combine_clauses(build_filter_clause(params), build_keyword_clause(params.keyword))
    return MaterialQuery(
        filter=query_filter,
        sort=parse_sort(params.sort),
        skip=(page - 1) * limit,
        limit=limit,
        page=page,
    )


def build_pagination(total_items: int, page: int, limit: int) -> Pagination:
    total_pages = math.ceil(total_items / limit) if limit else 0
    return Pagination(
        current_page=page,
        total_pages=total_pages,
        total_items=total_items,
        items_per_page=limit,
        next_page=page + 1 if page < total_pages else None,
        prev_page=page - 1 if page > 1 else None,
    )
