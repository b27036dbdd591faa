import re

from llama_desk.shared.errors import (
    AdmissionRejectedError,
    BackendNotReadyError,
    ConfigurationError,
    LlamaDeskError,
)

_KEY_PATTERN = re.compile(r"key=[A-Za-z0-9_\-]+")


class ErrorUtils:
    @staticmethod
    def format_error_response(message: str, error_type: str) -> dict:
        """
        Formats a consistent error response dictionary.

        Args:
            message: The error message to include in the response.
            error_type: The type of error (e.g., "internal_error", "admission_rejected").

        Returns:
            A dictionary with the error details.
        """
        return {
            "error": {
                "message": message,
                "type": error_type
            }
        }

    @staticmethod
    def status_code_for(error: Exception) -> int:
        """Map an orchestration error onto the HTTP status the API answers with."""
        if isinstance(error, AdmissionRejectedError):
            return 429
        if isinstance(error, BackendNotReadyError):
            return 503
        if isinstance(error, ConfigurationError):
            return 400
        return 500

    @staticmethod
    def error_type_for(error: Exception) -> str:
        if isinstance(error, LlamaDeskError):
            return error.error_type
        return "internal_error"

    @staticmethod
    def scrub_secrets(text: str) -> str:
        """Remove API keys passed as query-string values from a message."""
        return _KEY_PATTERN.sub("key=***", text)
