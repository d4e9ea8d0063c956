# ------------------------------------------------------------
# Module: h5p_assist/stream/framing.py
# Purpose: JSON-lines framing shared by the relay and the consumer.
# ------------------------------------------------------------

"""Newline-delimited JSON framing for streamed generation output.

Every record on the wire is one self-contained JSON object followed by `\\n`.
A single transport read may carry zero, one, or several lines, or cut a line
(and even a multi-byte character) in half; `LineAssembler` hides all of that.

Responsibilities
----------------
- Reassemble complete text lines from arbitrarily chunked bytes.
- Parse one line into a `Fragment` or `ErrorRecord` (`parse_record`).
- Fold one line into an accumulated text buffer (`fold_line`), without I/O.
- Serialize records for the downstream wire (`encode_record`).

Notes
-----
- Upstream (Ollama) lines and relay lines share one record shape:
  `{"response": str, "done"?: bool, "context"?: [int]}` or `{"error": str}`.
- Decoding is strict UTF-8; invalid bytes raise `UnicodeDecodeError` from
  `feed()`, which callers treat as a transport-level failure.
"""

from __future__ import annotations

import codecs
import json

from h5p_assist.llm.types import ErrorRecord, Fragment
from h5p_assist.stream.errors import MalformedFragment

Record = Fragment | ErrorRecord


class LineAssembler:
    """Incremental bytes → complete lines, robust to any chunk boundary."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)()
        self._pending = ""

    @property
    def pending(self) -> str:
        """Trailing incomplete line carried into the next `feed()`."""
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        """Decode `chunk` and return every line it completes (without `\\n`)."""
        self._pending += self._decoder.decode(chunk)
        if "\n" not in self._pending:
            return []
        *lines, self._pending = self._pending.split("\n")
        return lines

    def flush(self) -> list[str]:
        """End of stream: return the unterminated tail, if any."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return [tail] if tail.strip() else []


def _context(value) -> tuple[int, ...] | None:
    if isinstance(value, list) and all(isinstance(v, int) for v in value):
        return tuple(value)
    return None


def parse_record(line: str) -> Record:
    """Parse one non-blank line; raise `MalformedFragment` if it is not a record."""
    text = line.strip()
    if not text:
        raise MalformedFragment(line, "blank line")
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedFragment(line, "invalid JSON") from e
    if not isinstance(obj, dict):
        raise MalformedFragment(line, "not an object")

    if "error" in obj:
        return ErrorRecord(message=str(obj["error"]))

    done = obj.get("done") is True
    delta = obj.get("response")
    if delta is None and done:
        delta = ""
    if not isinstance(delta, str):
        raise MalformedFragment(line, "missing 'response'")
    return Fragment(delta=delta, context=_context(obj.get("context")), is_final=done)


def fold_line(
    text: str, line: str
) -> tuple[str, Record | MalformedFragment | None]:
    """Pure fold step: (buffer, raw line) → (new buffer, parsed record | failure).

    Blank lines return `(text, None)`. A malformed line leaves `text` untouched
    and returns the `MalformedFragment` instead of raising it. Error records
    leave `text` untouched; the caller decides how to terminate.
    """
    if not line.strip():
        return text, None
    try:
        record = parse_record(line)
    except MalformedFragment as e:
        return text, e
    if isinstance(record, Fragment):
        return text + record.delta, record
    return text, record


def encode_record(record: Record) -> bytes:
    """Serialize one record as a single UTF-8 JSON line."""
    if isinstance(record, ErrorRecord):
        obj: dict = {"error": record.message}
    else:
        obj = {"response": record.delta}
        if record.is_final:
            obj["done"] = True
            if record.context:
                obj["context"] = list(record.context)
    return (json.dumps(obj, ensure_ascii=False) + "\n").encode("utf-8")
