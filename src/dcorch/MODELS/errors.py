"""
Exceptions raised by stack orchestration, each carrying a recovery suggestion.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ComposeErrorType(str, Enum):
    """
    Failure categories, each with a default suggestion shown to the user.
    """
    COMPOSE_UNAVAILABLE = "compose_unavailable"
    COMPOSE_FILE_NOT_FOUND = "compose_file_not_found"
    SERVICE_START_FAILED = "service_start_failed"
    SERVICE_STOP_FAILED = "service_stop_failed"
    SERVICE_TIMEOUT = "service_timeout"
    SERVICE_INTERRUPTED = "service_interrupted"
    LOGS_CAPTURE_FAILED = "logs_capture_failed"
    STATE_FILE_FAILED = "state_file_failed"
    UNKNOWN = "unknown"

    @property
    def default_suggestion(self) -> str:
        return _SUGGESTIONS[self]


_SUGGESTIONS = {
    ComposeErrorType.COMPOSE_UNAVAILABLE: "Install Docker Compose v2 or Docker Desktop and make sure 'docker' is on PATH.",
    ComposeErrorType.COMPOSE_FILE_NOT_FOUND: "Check the compose file paths.",
    ComposeErrorType.SERVICE_START_FAILED: "Check the compose file syntax and service configuration.",
    ComposeErrorType.SERVICE_STOP_FAILED: "Services may still be running; check 'docker compose ls'.",
    ComposeErrorType.SERVICE_TIMEOUT: "Increase the timeout or check the service health check configuration.",
    ComposeErrorType.SERVICE_INTERRUPTED: "The wait was cancelled; the stack is still up.",
    ComposeErrorType.LOGS_CAPTURE_FAILED: "Check that the project and services exist.",
    ComposeErrorType.STATE_FILE_FAILED: "Check that the state directory is writable.",
    ComposeErrorType.UNKNOWN: "An unknown Docker Compose operation error occurred.",
}


class ComposeServiceError(Exception):
    """Base exception for all stack orchestration failures"""

    def __init__(
        self,
        error_type: ComposeErrorType,
        message: str,
        suggestion: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.error_type = error_type
        self.message = message
        self.suggestion = suggestion or error_type.default_suggestion
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[{context_str}]")
        return " ".join(parts)

    @property
    def formatted_message(self) -> str:
        """Message followed by the suggestion, for display on a console."""
        return f"{self}\nSuggestion: {self.suggestion}"


class ServiceWaitTimeoutError(ComposeServiceError):
    """Raised when services do not reach the target status before the deadline"""

    def __init__(self, project_name: str, target: str, unready_services: List[str], timeout_seconds: float):
        self.unready_services = list(unready_services)
        if self.unready_services:
            detail = f"services not ready: {', '.join(self.unready_services)}"
        else:
            detail = "no services reported by the project"
        super().__init__(
            ComposeErrorType.SERVICE_TIMEOUT,
            f"Timed out after {timeout_seconds:g}s waiting for project '{project_name}' to be {target}; {detail}",
            context={"project": project_name},
        )


class ServiceWaitInterruptedError(ComposeServiceError):
    """Raised when a readiness wait is cancelled while sleeping between polls"""

    def __init__(self, project_name: str):
        super().__init__(
            ComposeErrorType.SERVICE_INTERRUPTED,
            f"Interrupted while waiting for services of project '{project_name}'",
            context={"project": project_name},
        )


class StateFileError(ComposeServiceError):
    """Raised when the state snapshot file cannot be written or read"""

    def __init__(self, message: str, path: Any):
        super().__init__(ComposeErrorType.STATE_FILE_FAILED, message, context={"path": path})
