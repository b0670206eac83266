"""Request body decoding for the ingest routes.

Enforces the body size limit, parses JSON with orjson, rejects unknown fields
and non-string field values, and hands `meta` to the core as raw JSON text.
"""
from typing import Any, List

from fastapi import Request
from pydantic import ValidationError
import orjson

from ..errors import InvalidRequest, PayloadTooLarge
from ..event_models import EventIn


async def read_json(request: Request, max_bytes: int) -> Any:
    """
    Read and parse a JSON request body of at most `max_bytes`.

    Raises:
        PayloadTooLarge: Declared or actual body size exceeds the limit
        InvalidRequest: Body is empty or not valid JSON
    """
    content_length = request.headers.get("content-length")
    declared = int(content_length) if content_length and content_length.isdigit() else 0

    body = bytearray()
    if declared <= max_bytes:
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > max_bytes:
                break
    if declared > max_bytes or len(body) > max_bytes:
        raise PayloadTooLarge(f"request body too large (max {max_bytes} bytes)")

    if not body.strip():
        raise InvalidRequest("request body is empty")
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise InvalidRequest(f"invalid JSON: {exc}") from exc


def _describe(exc: ValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ())) or "body"
    if error.get("type") == "extra_forbidden":
        return f"unknown field {field!r}"
    return f"{field}: {error.get('msg', 'invalid value')}"


def decode_event(obj: Any) -> EventIn:
    """Build a candidate from one decoded JSON object."""
    if not isinstance(obj, dict):
        raise InvalidRequest("event must be a JSON object")
    fields = dict(obj)
    meta = fields.get("meta")
    if meta is not None:
        fields["meta"] = orjson.dumps(meta).decode()
    try:
        return EventIn.model_validate(fields)
    except ValidationError as exc:
        raise InvalidRequest(_describe(exc)) from exc


def decode_batch(obj: Any) -> List[EventIn]:
    """Build candidates from a decoded JSON array; errors name the failing index."""
    if not isinstance(obj, list):
        raise InvalidRequest("batch must be a JSON array")
    candidates = []
    for index, item in enumerate(obj):
        try:
            candidates.append(decode_event(item))
        except InvalidRequest as exc:
            raise InvalidRequest(f"index {index}: {exc.message}") from exc
    return candidates
