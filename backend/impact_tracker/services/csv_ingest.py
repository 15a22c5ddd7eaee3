"""Business logic for splitting bulk payloads into chunked data rows."""

from __future__ import annotations

import logging
import re
from typing import Iterator

from impact_tracker.utils.batching import chunked

logger = logging.getLogger(__name__)

BYTE_ORDER_MARK = "\ufeff"
# Only CR, LF and CRLF end a row; other Unicode line breaks stay inside fields
LINE_BREAK = re.compile(r"\r\n|\r|\n")


def decode_upload(content: bytes) -> str:
    """Decode uploaded bytes as UTF-8, tolerating a leading byte order mark."""
    return content.decode("utf-8-sig")


def split_payload(raw_payload: str) -> tuple[str | None, list[str]]:
    """Return (header, data rows) for a delimited text payload.

    Leading/trailing blank space around the whole payload is dropped; blank
    lines between data rows are kept so row numbers match the payload.
    """
    text = raw_payload.lstrip(BYTE_ORDER_MARK).strip()
    if not text:
        return None, []
    lines = LINE_BREAK.split(text)
    return lines[0], lines[1:]


def iter_row_chunks(
    rows: list[str], chunk_size: int, *, start: int = 0
) -> Iterator[list[tuple[int, str]]]:
    """Yield (1-based row number, line) pairs in chunks, starting after `start` rows."""
    if start:
        logger.info(f"Resuming row iteration after {start} already processed rows")
    numbered = enumerate(rows[start:], start=start + 1)
    return chunked(numbered, chunk_size)
