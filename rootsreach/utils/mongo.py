"""
MongoDB utility functions for RootsReach.
"""

from datetime import datetime
from typing import Any

from bson import ObjectId


def to_object_id(value: Any) -> Any:
    """
    Convert a string ID to ObjectId when it is a valid one.

    Non-ObjectId identifiers are returned unchanged so collections keyed by
    plain strings keep working.
    """
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _clean_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return clean_mongo_doc(value)
    if isinstance(value, list):
        return [_clean_value(item) for item in value]
    return value


def clean_mongo_doc(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    """
    Convert MongoDB document to JSON-serializable format.

    Recursively converts ObjectId to str and datetime to ISO format strings.

    Example:
        ```python
        cleaned = clean_mongo_doc({"_id": ObjectId(), "createdAt": datetime(2024, 1, 1)})
        # {"_id": "65a...", "createdAt": "2024-01-01T00:00:00"}
        ```
    """
    if doc is None:
        return None
    return {key: _clean_value(value) for key, value in doc.items()}
