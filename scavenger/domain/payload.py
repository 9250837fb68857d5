"""Payload decoders: turn a delivery body into what caller predicates receive."""
from __future__ import annotations

import json
from typing import Any, Callable

PayloadDecoder = Callable[[bytes], Any]


def decode_raw(body: bytes) -> bytes:
    return body


def decode_json(body: bytes) -> Any:
    """Decode a UTF-8 JSON body. Raises ValueError on malformed input."""
    return json.loads(body.decode())
