"""
JSON codec for Tidepool payloads.

Every call takes its own DateFormat; it travels in the pydantic validation /
serialization context, so concurrent decodes with different formats never
share state. Only business fields round-trip: store bookkeeping (surrogate
keys, the session singleton marker, ORM state) has no place in the schemas.
"""
from __future__ import annotations
import json
import logging
from typing import Any, List, Type, TypeVar

from pydantic import ValidationError

from urchin.errors import DecodeError
from urchin.schemas import (
    DateFormat,
    DEFAULT_DATE_FORMAT,
    MESSAGE_DATE_FORMAT,
    MessagesEnvelope,
    PAYLOADS,
)

__all__ = [
    "DateFormat",
    "DEFAULT_DATE_FORMAT",
    "MESSAGE_DATE_FORMAT",
    "decode",
    "decode_keys",
    "decode_messages",
    "encode",
]

logger = logging.getLogger(__name__)

E = TypeVar("E")


def _schema_for(entity_type: type):
    try:
        return PAYLOADS[entity_type]
    except KeyError:
        raise TypeError(f"no wire schema registered for {entity_type.__name__}") from None


def decode(payload: str | bytes, entity_type: Type[E], date_format: DateFormat = DEFAULT_DATE_FORMAT) -> E:
    """Parse a JSON object into a new (transient) entity of `entity_type`."""
    schema = _schema_for(entity_type)
    try:
        parsed = schema.model_validate_json(payload, context={"date_format": date_format})
    except ValidationError as e:
        logger.warning("decode %s failed: %s", entity_type.__name__, e.errors(include_url=False)[:3])
        raise DecodeError(f"cannot decode {entity_type.__name__}: {e.error_count()} error(s)", payload) from e
    return parsed.to_entity()


def encode(entity: Any, date_format: DateFormat = DEFAULT_DATE_FORMAT) -> str:
    """Serialize an entity's business fields. String-list fields are skipped."""
    schema = _schema_for(type(entity))
    model = schema.model_validate(entity, from_attributes=True, context={"date_format": date_format})
    return model.model_dump_json(by_alias=True, context={"date_format": date_format})


def _load(payload: str | bytes) -> Any:
    try:
        return json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"malformed JSON: {e}", payload) from e


def decode_keys(payload: str | bytes) -> List[str]:
    """`{"alice": ..., "bob": ...}` -> ["alice", "bob"]. Values are ignored."""
    data = _load(payload)
    if not isinstance(data, dict):
        raise DecodeError("expected a JSON object", payload)
    return list(data.keys())


def decode_messages(payload: str | bytes) -> List[str]:
    """
    Unwrap `{"messages": [...]}` into the raw JSON text of each message.

    Elements are normally JSON strings that must be decoded again; an element
    that already arrived as an object is re-serialized so both shapes decode
    the same way.
    """
    try:
        envelope = MessagesEnvelope.model_validate_json(payload)
    except ValidationError as e:
        raise DecodeError("expected an object with a 'messages' array", payload) from e

    raw: List[str] = []
    for item in envelope.messages:
        if isinstance(item, str):
            raw.append(item)
        elif isinstance(item, dict):
            raw.append(json.dumps(item))
        else:
            raise DecodeError(f"unexpected message entry of type {type(item).__name__}", json.dumps(item))
    return raw
