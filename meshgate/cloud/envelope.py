"""Response buffer and single-device envelope validation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from meshgate.cloud.errors import MalformedEnvelopeError

DEVICES_FIELD = "devices"
EXPECTED_DEVICE_COUNT = 1


@dataclass(slots=True)
class ResponseEnvelope:
    """Growable byte buffer holding one response body."""

    data: bytearray = field(default_factory=bytearray)

    @property
    def size(self) -> int:
        return len(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def write(self, chunk: bytes) -> int:
        self.data.extend(chunk)
        return len(chunk)

    def replace(self, content: bytes | str) -> None:
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.data = bytearray(content)

    def reset(self) -> None:
        self.data = bytearray()

    def text(self) -> str:
        return self.data.decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.data)


def validate_single(raw: bytes | bytearray | str) -> str:
    """
    Unwrap the single device record from a cloud response.

    The registry answers device reads with ``{"devices": [{...}]}``. The one
    record is returned re-serialized as a standalone JSON object.

    Raises:
        MalformedEnvelopeError: body is not JSON, not an object, or does not
            carry exactly one object in ``devices``.
    """
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError, UnicodeDecodeError) as e:
        raise MalformedEnvelopeError(f"response is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise MalformedEnvelopeError("response is not a JSON object")

    devices = parsed.get(DEVICES_FIELD)
    if not isinstance(devices, list):
        raise MalformedEnvelopeError(f"'{DEVICES_FIELD}' is missing or not an array")
    if len(devices) != EXPECTED_DEVICE_COUNT:
        raise MalformedEnvelopeError(
            f"'{DEVICES_FIELD}' has {len(devices)} elements, expected {EXPECTED_DEVICE_COUNT}"
        )

    record = devices[0]
    if not isinstance(record, dict):
        raise MalformedEnvelopeError("device record is not a JSON object")
    return json.dumps(record, ensure_ascii=False, separators=(",", ":"))


def normalize_envelope(envelope: ResponseEnvelope) -> ResponseEnvelope:
    """Replace envelope content with its single device record.

    The envelope is left untouched when validation fails.
    """
    canonical = validate_single(bytes(envelope.data))
    envelope.replace(canonical)
    return envelope
