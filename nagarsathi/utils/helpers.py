import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson.objectid import ObjectId

# Keeps skip = (page - 1) * limit far inside the int64 range BSON accepts
MAX_PAGE = 1_000_000

_INT_PREFIX = re.compile(r"^\s*[+-]?\d+")
_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def lenient_int(value: Any, default: int) -> int:
    """parseInt-style parsing: leading digits win, anything else (or 0) falls back to default."""
    if value is None:
        return default
    match = _INT_PREFIX.match(str(value))
    if not match:
        return default
    return int(match.group(0)) or default


def lenient_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """parseFloat-style parsing with a default for unparseable input."""
    if value is None:
        return default
    match = _FLOAT_PREFIX.match(str(value))
    if not match:
        return default
    parsed = float(match.group(0))
    if math.isnan(parsed) or math.isinf(parsed):
        return default
    return parsed


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def serialize_doc(value: Any) -> Any:
    """Make a Mongo document JSON friendly: ObjectId -> str, datetime -> ISO string."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: serialize_doc(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_doc(item) for item in value]
    return value


def serialize_docs(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_doc(doc) for doc in docs]


def paginated(items: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    """Standard list envelope used by every paginated endpoint."""
    return {
        "success": True,
        "count": len(items),
        "total": total,
        "page": page,
        "pages": total_pages(total, limit),
        "data": items,
    }


def clamp_page(value: Any) -> int:
    """1-based page from a query string value, clamped to [1, MAX_PAGE]."""
    return min(max(lenient_int(value, 1), 1), MAX_PAGE)
