from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def normalize(doc: Optional[Dict[str, Any]], *fields: str) -> Optional[Dict[str, Any]]:
    """Turn ObjectId fields into strings for the API layer."""
    if doc is None:
        return None
    for field in ("_id", *fields):
        if field in doc and doc[field] is not None:
            doc[field] = str(doc[field])
    return doc
