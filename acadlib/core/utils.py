# acadlib/core/utils.py
from typing import Any, Dict, Mapping, Type, TypeVar

from bson import ObjectId
from pydantic import BaseModel

from acadlib.core.errors import InvalidRequestError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def to_object_id(value: str, label: str = "ID") -> ObjectId:
    """Parses a 24-char hex id, raising InvalidRequestError on malformed input."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidRequestError(f"Invalid {label} format.", {"value": str(value)})
    return ObjectId(value)


def _stringify(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [_stringify(v) for v in value]
    return value


def to_schema(schema: Type[SchemaT], data: Mapping[str, Any]) -> SchemaT:
    """Validates a raw Mongo document (or a dumped Beanie document) into an API schema.

    ObjectIds become strings and the primary key is exposed as ``_id``.
    """
    payload: Dict[str, Any] = {k: _stringify(v) for k, v in data.items()}
    if "_id" not in payload and payload.get("id") is not None:
        payload["_id"] = payload.pop("id")
    payload.pop("revision_id", None)
    return schema.model_validate(payload)


def document_to_schema(schema: Type[SchemaT], doc) -> SchemaT:
    data = doc.model_dump()
    data["_id"] = doc.id
    data.pop("id", None)
    return to_schema(schema, data)
