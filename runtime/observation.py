"""
Helpers at the boundary with the orchestration loop: extracting code from a
model reply and turning an execution outcome into observation text.
"""

from __future__ import annotations

import re
from typing import Final

from sandbox.capture import MAX_LENGTH_TRUNCATE_CONTENT, truncate_content
from sandbox.errors import InterpreterError

CODE_BLOB_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"```(?:py|python)?[ \t]*\n(.*?)\n```", re.DOTALL
)


def parse_code_blob(code_blob: str) -> str:
    """Return the first fenced code block of a model reply.

    Raises:
        ValueError: If the reply holds no fenced code block.
    """
    match = CODE_BLOB_PATTERN.search(code_blob)
    if match is None:
        raise ValueError(
            "The code blob you used is invalid: no match found for regex pattern "
            f"{CODE_BLOB_PATTERN.pattern} in code blob. Make sure to include code "
            "inside a ```py ... ``` block."
        )
    return match.group(1).strip()


def build_observation(
    result: object,
    logs: str,
    max_length: int = MAX_LENGTH_TRUNCATE_CONTENT,
) -> str:
    observation = ""
    if logs:
        observation += f"Execution logs:\n{logs}\n"
    observation += f"Last output from code snippet:\n{truncate_content(str(result), max_length)}"
    return observation


def format_execution_error(
    error: InterpreterError,
    max_length: int = MAX_LENGTH_TRUNCATE_CONTENT,
) -> str:
    """Error text to append to the conversation before re-prompting."""
    text = ""
    if error.logs:
        text += f"Execution logs:\n{truncate_content(error.logs, max_length)}\n"
    text += f"Error: {truncate_content(error.message, max_length)}"
    return text


def is_final_answer(code: str) -> bool:
    return any(line.strip().startswith("final_answer") for line in code.splitlines())
