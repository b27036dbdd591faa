class LlamaDeskError(Exception):
    """Base class for all errors raised by the orchestration layer."""

    error_type = "internal_error"


class ConfigurationError(LlamaDeskError):
    """A required path, key or identifier is missing or unknown. Never retried."""

    error_type = "configuration_error"


class BackendNotReadyError(LlamaDeskError):
    """The local inference server is not in a state that accepts completions."""

    error_type = "backend_not_ready"


class TransportError(LlamaDeskError):
    """Connection refused, DNS, TLS or read failure talking to a backend."""

    error_type = "transport_error"


class ProviderError(LlamaDeskError):
    """A backend answered with HTTP >= 400 or an in-stream error event."""

    error_type = "provider_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class OperationCancelled(LlamaDeskError):
    """A long-running operation was cancelled through its token. Not a failure."""

    error_type = "cancelled"


class CompletionCancelled(OperationCancelled):
    def __init__(self, message: str = "Generation cancelled"):
        super().__init__(message)


class DownloadCancelled(OperationCancelled):
    def __init__(self, message: str = "Download cancelled"):
        super().__init__(message)


class DownloadError(LlamaDeskError):
    error_type = "download_error"


class TooManyRedirectsError(DownloadError):
    def __init__(self, message: str = "Too many redirects"):
        super().__init__(message)


class BinaryExtractionError(DownloadError):
    error_type = "extraction_error"


class AdmissionRejectedError(LlamaDeskError):
    """The admission guard refused to start a generation."""

    error_type = "admission_rejected"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
