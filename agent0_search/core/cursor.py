"""
Opaque pagination cursor for federated search.

Cursor format (JSON):
{
    "globalOffset": 100,                        # items of the merged stream consumed so far
    "sourceOffsets": {"11155111": 60, "84532": 40}   # optional, per-source share of the above
}

Callers must treat the encoded string as opaque. The contract is round-trip
stability only: decode(encode(c)) == c.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .exceptions import InvalidCursor
from .models import ChainId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Cursor:
    globalOffset: int = 0
    sourceOffsets: Dict[ChainId, int] = field(default_factory=dict)


def encode_cursor(cursor: Cursor) -> str:
    """Encode a cursor into its opaque string form."""
    if cursor.globalOffset < 0:
        raise ValueError(f"globalOffset must be non-negative, got {cursor.globalOffset}")
    cursor_data: Dict[str, object] = {"globalOffset": cursor.globalOffset}
    if cursor.sourceOffsets:
        cursor_data["sourceOffsets"] = {
            str(source_id): offset for source_id, offset in sorted(cursor.sourceOffsets.items())
        }
    return json.dumps(cursor_data, separators=(",", ":"))


def decode_cursor(cursor: Optional[str]) -> Cursor:
    """Decode a cursor string.

    An empty cursor is the first page. Plain integer strings produced by the
    single-chain search path are accepted as a global offset.

    Raises:
        InvalidCursor: If the string is not a cursor this codec produced
    """
    if not cursor:
        return Cursor()

    if cursor.isascii() and cursor.isdigit():
        try:
            return Cursor(globalOffset=int(cursor))
        except ValueError as e:
            raise InvalidCursor(f"Invalid cursor offset: {e}")

    try:
        cursor_data = json.loads(cursor)
    except (ValueError, RecursionError) as e:
        raise InvalidCursor(f"Failed to parse cursor: {e}")

    if not isinstance(cursor_data, dict):
        raise InvalidCursor(f"Invalid cursor format: {cursor}")

    # "_global_offset" is the key older multi-chain cursors used
    offset = cursor_data.get("globalOffset", cursor_data.get("_global_offset"))
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise InvalidCursor(f"Invalid cursor offset: {offset!r}")

    source_offsets: Dict[ChainId, int] = {}
    raw_offsets = cursor_data.get("sourceOffsets") or {}
    if not isinstance(raw_offsets, dict):
        raise InvalidCursor(f"Invalid cursor source offsets: {raw_offsets!r}")
    for source_id, source_offset in raw_offsets.items():
        try:
            source_offsets[int(source_id)] = int(source_offset)
        except (TypeError, ValueError, OverflowError):
            raise InvalidCursor(f"Invalid cursor source offset: {source_id}={source_offset!r}")

    return Cursor(globalOffset=offset, sourceOffsets=source_offsets)


def decode_cursor_or_start(cursor: Optional[str]) -> Cursor:
    """Decode a cursor, degrading to the first page when it is malformed."""
    try:
        return decode_cursor(cursor)
    except InvalidCursor as e:
        logger.warning(f"{e}, starting from offset 0")
        return Cursor()
