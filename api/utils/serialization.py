# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
JSON serialization helpers for MongoDB documents.
"""

from datetime import datetime, date
from typing import Any, Dict, Iterable, List, Optional
from bson import ObjectId

# Fields never returned to clients
PRIVATE_FIELDS = ("password",)


def to_json_value(value: Any) -> Any:
    """
    Convert a BSON value into something ``jsonify`` can emit.

    ObjectIds become strings; datetimes become ISO-8601 UTC strings with a
    trailing ``Z``. Containers are converted recursively.
    """
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.replace(tzinfo=None) - value.utcoffset()
        return value.isoformat() + "Z"
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    return value


def serialize_document(doc: Optional[Dict[str, Any]], exclude: Iterable[str] = PRIVATE_FIELDS) -> Optional[Dict[str, Any]]:
    """Serialize one document, dropping private fields."""
    if doc is None:
        return None
    excluded = set(exclude)
    return {key: to_json_value(value) for key, value in doc.items() if key not in excluded}


def serialize_documents(docs: Iterable[Dict[str, Any]], exclude: Iterable[str] = PRIVATE_FIELDS) -> List[Dict[str, Any]]:
    excluded = tuple(exclude)
    return [serialize_document(doc, excluded) for doc in docs]
