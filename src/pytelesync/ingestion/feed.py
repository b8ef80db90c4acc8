"""Decoding of live feed messages.

Both live transports carry the same JSON envelope: either a (partial)
reading object, or an object with an ``obd`` key holding one or more raw
ELM327 mode 01 responses, e.g. ``{"obd": ["41 0C 1A F8", "41 0D 32"]}``.
Mode 03 replies under ``dtc`` are decoded into ``trouble_codes``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pytelesync.ingestion.assembler import ReadingAssembler
from pytelesync.ingestion.obd import parse_dtc_response

_logger = logging.getLogger(__name__)


def decode_feed_payload(raw: bytes | str) -> dict[str, Any]:
    """Parse raw message bytes into a JSON object.

    Raises ``ValueError`` (``json.JSONDecodeError`` included) when the
    message is not a JSON object.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    parsed = json.loads(text.strip())
    if not isinstance(parsed, dict):
        raise ValueError("Feed message is not a JSON object")
    return parsed


def assemble_feed_payload(assembler: ReadingAssembler, payload: dict[str, Any]) -> dict[str, Any] | None:
    """Feed one decoded message into *assembler*.

    Returns the latest complete reading produced by the message, or
    ``None`` while required fields are still missing.
    """
    patch = {key: value for key, value in payload.items() if key not in {"obd", "dtc"}}

    dtc = payload.get("dtc")
    if isinstance(dtc, str):
        patch["trouble_codes"] = parse_dtc_response(dtc)

    result: dict[str, Any] | None = None
    obd = payload.get("obd")
    if obd is not None:
        responses = [obd] if isinstance(obd, str) else list(obd)
        for response in responses:
            if not isinstance(response, str):
                _logger.debug("Ignoring non-string OBD response %r", response)
                continue
            result = assembler.update_from_obd(response) or result

    if patch or result is None:
        result = assembler.update(patch) or result
    return result
