"""Structural checks on inbound import requests.

Runs before any row is looked at: byte size first (so an oversize body is
never parsed), then JSON decoding, then the request shape.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from takeoff.errors import PayloadError, PayloadTooLargeError
from takeoff.models import ErrorDetail, ImportPayload


def payload_size(raw: bytes | str | dict) -> int:
    if isinstance(raw, bytes):
        return len(raw)
    if isinstance(raw, str):
        return len(raw.encode("utf-8"))
    return len(json.dumps(raw, default=str).encode("utf-8"))


def validate_payload(
    raw: bytes | str | dict,
    max_bytes: int,
    expected_project_id: str | None = None,
) -> ImportPayload:
    """Parse and check an import request.

    Args:
        raw: Request body (bytes/str JSON) or an already-decoded dict
        max_bytes: Size limit for the encoded body
        expected_project_id: Project the caller was authorized for; the
            payload's ``projectId`` must match it when given

    Raises:
        PayloadTooLargeError: If the body exceeds max_bytes
        PayloadError: If the body is not valid JSON or misses fields
    """
    size = payload_size(raw)
    if size > max_bytes:
        raise PayloadTooLargeError(size, max_bytes)

    data: Any = raw
    if isinstance(raw, (bytes, str)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PayloadError(f"Invalid JSON payload: {e}") from e

    if not isinstance(data, dict):
        raise PayloadError("Request body must be a JSON object")

    try:
        payload = ImportPayload.model_validate(data)
    except ValidationError as e:
        details = [
            ErrorDetail(row=0, issue=f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
            for err in e.errors()
        ]
        raise PayloadError("Invalid import request", details) from e

    if expected_project_id is not None and payload.project_id != expected_project_id:
        raise PayloadError(
            f"projectId {payload.project_id!r} does not match the requested project {expected_project_id!r}"
        )

    return payload
