"""Failure classification for sandbox errors."""

from enum import Enum


class FailureType(str, Enum):
    TIMEOUT = "timeout"
    IMPORT_BLOCKED = "import_blocked"
    FORBIDDEN_ACCESS = "forbidden_access"
    SYNTAX_ERROR = "syntax_error"
    OPERATION_LIMIT = "operation_limit"
    RUNTIME_ERROR = "runtime_error"
    OTHER = "other"


class FailureAnalyzer:
    def __init__(self):
        self.failures: dict[FailureType, int] = {ft: 0 for ft in FailureType}

    def classify_error(self, error_msg: str) -> FailureType:
        error_lower = error_msg.lower()

        if 'timed out' in error_lower or 'timeout' in error_lower:
            return FailureType.TIMEOUT
        elif 'import' in error_lower and 'not allowed' in error_lower:
            return FailureType.IMPORT_BLOCKED
        elif 'forbidden access' in error_lower:
            return FailureType.FORBIDDEN_ACCESS
        elif 'code parsing failed' in error_lower or 'syntaxerror' in error_lower:
            return FailureType.SYNTAX_ERROR
        elif 'max number of operations' in error_lower:
            return FailureType.OPERATION_LIMIT
        elif any(err in error_lower for err in ['error', 'exception', 'failed']):
            return FailureType.RUNTIME_ERROR
        else:
            return FailureType.OTHER

    def record_failure(self, error_msg: str) -> FailureType:
        failure_type = self.classify_error(error_msg)
        self.failures[failure_type] += 1
        return failure_type

    def get_failure_stats(self) -> dict[FailureType, int]:
        return dict(self.failures)

    def get_top_failures(self, n: int = 5) -> list[tuple[str, int]]:
        sorted_failures = sorted(
            self.failures.items(),
            key=lambda x: x[1],
            reverse=True
        )
        return [(ft.value, count) for ft, count in sorted_failures[:n] if count > 0]
