"""Output capture for a single sandboxed execution."""

from __future__ import annotations

import io
import logging
from typing import Final

logger = logging.getLogger(__name__)

MAX_LEN_OUTPUT: Final[int] = 50_000
MAX_LENGTH_TRUNCATE_CONTENT: Final[int] = 20_000


def truncation_marker(max_length: int) -> str:
    return (
        f"\n..._This content has been truncated to stay below "
        f"{max_length} characters_...\n"
    )


def truncate_content(content: str, max_length: int = MAX_LENGTH_TRUNCATE_CONTENT) -> str:
    """Keep the head and tail of ``content`` when it exceeds ``max_length``."""
    if len(content) <= max_length:
        return content
    half = max_length // 2
    tail = content[-half:] if half else ""
    return content[:half] + truncation_marker(max_length) + tail


class OutputCapturer:
    """Buffers everything sandboxed code prints during one call.

    A fresh capturer is created for every execution; ``print`` is handed to
    the sandbox in place of the builtin so nothing reaches the host's stdout.
    """

    def __init__(self) -> None:
        self._buffer = io.StringIO()

    def record(self, text: str) -> None:
        try:
            self._buffer.write(str(text))
        except Exception as exc:  # noqa: BLE001 - capture must not fail the call
            logger.warning("Failed to record sandbox output: %s", exc)

    def print(
        self,
        *values: object,
        sep: str | None = " ",
        end: str | None = "\n",
        file: object = None,
        flush: bool = False,
    ) -> None:
        separator = " " if sep is None else sep
        terminator = "\n" if end is None else end
        # str() of a user object may raise; that propagates like the builtin.
        text = separator.join(str(value) for value in values) + terminator
        self.record(text)

    def drain(self) -> str:
        return self._buffer.getvalue()
