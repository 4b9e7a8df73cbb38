"""
Issue listing query builder.

Turns the raw query string of a listing request into a MongoDB filter,
sort order, projection and page window. Stages are meant to be chained in
this order, each one narrowing what the previous stages selected::

    query = IssueQuery(request.query_params).filter().search().near_location().sort().paginate()
    total = await collection.count_documents(query.filter_query)
    items = await query.build(collection).to_list(length=query.limit)

Comparison filters use bracketed keys (``upvotesCount[gte]=5``) and are
built field by field with typed values; free-text values are never
rewritten into operators.
"""

import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from bson.objectid import ObjectId

from nagarsathi.core.errors import ApiError
from nagarsathi.utils.helpers import MAX_PAGE, lenient_float, lenient_int
from nagarsathi.utils.validators import normalize_region

EARTH_RADIUS_KM = 6378.1
DEFAULT_RADIUS_KM = 10.0
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
DEFAULT_SORT: List[Tuple[str, int]] = [("createdAt", -1)]

# Keys consumed by other stages, never turned into equality filters
EXCLUDED_FIELDS = ("page", "sort", "limit", "fields", "search", "lat", "lng", "radius")

COMPARISON_OPERATORS = {"gte": "$gte", "gt": "$gt", "lte": "$lte", "lt": "$lt"}

_BRACKET_KEY = re.compile(r"^(?P<field>[A-Za-z_][\w.]*)\[(?P<op>[A-Za-z]+)\]$")
_FIELD_NAME = re.compile(r"^[A-Za-z_][\w.]*$")


class QueryBuilderError(ApiError):
    def __init__(self, message: str):
        super().__init__(400, message)


def _as_text(value: str) -> str:
    return value


def _as_int(value: str) -> int:
    return int(value)


def _as_object_id(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise ValueError(value)
    return ObjectId(value)


def _as_datetime(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# field -> (value coercer, supports comparison operators)
FILTERABLE_FIELDS: Dict[str, Tuple[Callable[[str], Any], bool]] = {
    "category": (_as_text, False),
    "status": (_as_text, False),
    "state": (normalize_region, False),
    "district": (normalize_region, False),
    "createdBy": (_as_object_id, False),
    "upvotesCount": (_as_int, True),
    "commentsCount": (_as_int, True),
    "createdAt": (_as_datetime, True),
}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _coerce(field: str, raw: str) -> Any:
    coercer, _ = FILTERABLE_FIELDS[field]
    try:
        return coercer(raw)
    except (TypeError, ValueError):
        raise QueryBuilderError(f"Invalid value for {field}: {raw}")


class IssueQuery:
    """Composable issue query; each stage returns ``self`` so stages chain."""

    def __init__(self, params: Mapping[str, Any], base_filter: Optional[Dict[str, Any]] = None):
        self.params: Dict[str, Any] = dict(params)
        self._conditions: List[Dict[str, Any]] = [dict(base_filter)] if base_filter else []
        self.sort_spec: Optional[List[Tuple[str, int]]] = None
        self.projection: Optional[Dict[str, int]] = None
        self.page: Optional[int] = None
        self.limit: Optional[int] = None
        self.skip: int = 0

    @property
    def filter_query(self) -> Dict[str, Any]:
        """Combined filter of every narrowing stage applied so far."""
        if not self._conditions:
            return {}
        if len(self._conditions) == 1:
            return dict(self._conditions[0])
        return {"$and": [dict(condition) for condition in self._conditions]}

    def filter(self) -> "IssueQuery":
        conditions: Dict[str, Any] = {}

        for key, value in self.params.items():
            if key in EXCLUDED_FIELDS or _is_empty(value):
                continue

            bracket = _BRACKET_KEY.match(key)
            field = bracket.group("field") if bracket else key
            if field not in FILTERABLE_FIELDS:
                continue

            if bracket:
                operator = COMPARISON_OPERATORS.get(bracket.group("op"))
                if operator is None:
                    raise QueryBuilderError(f"Unsupported operator: {bracket.group('op')}")
                if not FILTERABLE_FIELDS[field][1]:
                    raise QueryBuilderError(f"{field} does not support range filters")
                existing = conditions.get(field)
                if not isinstance(existing, dict):
                    existing = {}
                existing[operator] = _coerce(field, str(value))
                conditions[field] = existing
                continue

            raw = str(value)
            if field == "state" and "," in raw:
                states = [_coerce(field, part) for part in raw.split(",") if part.strip()]
                conditions[field] = {"$in": states}
            else:
                conditions[field] = _coerce(field, raw)

        if conditions:
            self._conditions.append(conditions)
        return self

    def search(self) -> "IssueQuery":
        term = self.params.get("search")
        if not _is_empty(term):
            pattern = {"$regex": re.escape(str(term)), "$options": "i"}
            self._conditions.append({"$or": [{"title": pattern}, {"description": pattern}]})
        return self

    def near_location(self) -> "IssueQuery":
        if _is_empty(self.params.get("lat")) or _is_empty(self.params.get("lng")):
            return self

        lat = lenient_float(self.params.get("lat"))
        lng = lenient_float(self.params.get("lng"))
        if lat is None or lng is None:
            return self

        radius_km = lenient_float(self.params.get("radius"), DEFAULT_RADIUS_KM)
        if not radius_km or radius_km <= 0:
            radius_km = DEFAULT_RADIUS_KM

        self._conditions.append({
            "location": {
                "$geoWithin": {
                    "$centerSphere": [[lng, lat], radius_km / EARTH_RADIUS_KM],
                }
            }
        })
        return self

    def sort(self) -> "IssueQuery":
        spec: List[Tuple[str, int]] = []
        raw = self.params.get("sort")
        if not _is_empty(raw):
            for key in str(raw).split(","):
                key = key.strip()
                direction = -1 if key.startswith("-") else 1
                field = key.lstrip("-+")
                if _FIELD_NAME.match(field):
                    spec.append((field, direction))
        self.sort_spec = spec or list(DEFAULT_SORT)
        return self

    def limit_fields(self) -> "IssueQuery":
        raw = self.params.get("fields")
        if _is_empty(raw):
            return self

        included, excluded = [], []
        for key in str(raw).split(","):
            key = key.strip()
            field = key.lstrip("-")
            if not _FIELD_NAME.match(field):
                continue
            if key.startswith("-"):
                # _id is needed downstream to mark upvotes and build links
                if field != "_id":
                    excluded.append(field)
            else:
                included.append(field)

        # MongoDB rejects mixed inclusion/exclusion projections
        if included:
            self.projection = {field: 1 for field in included}
        elif excluded:
            self.projection = {field: 0 for field in excluded}
        return self

    def paginate(self) -> "IssueQuery":
        page = lenient_int(self.params.get("page"), DEFAULT_PAGE)
        limit = lenient_int(self.params.get("limit"), DEFAULT_LIMIT)
        self.page = min(page if page > 0 else DEFAULT_PAGE, MAX_PAGE)
        self.limit = min(limit if limit > 0 else DEFAULT_LIMIT, MAX_LIMIT)
        self.skip = (self.page - 1) * self.limit
        return self

    def build(self, collection):
        """Return the composed Motor cursor over ``collection``."""
        cursor = collection.find(self.filter_query, self.projection)
        if self.sort_spec:
            cursor = cursor.sort(self.sort_spec)
        if self.limit is not None:
            cursor = cursor.skip(self.skip).limit(self.limit)
        return cursor
