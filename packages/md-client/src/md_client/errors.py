"""Metadata provider client exceptions."""

from typing import Optional


class MDError(Exception):
    """Base exception for metadata provider client errors."""

    pass


class MDConfigError(MDError):
    """Invalid client configuration."""

    pass


class MDNetworkError(MDError):
    """Connection failure or timeout talking to the provider."""

    def __init__(self, message: str, endpoint: str = ""):
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"Network error on {endpoint or 'request'}: {message}")


class MDAPIError(MDError):
    """Provider returned an error status."""

    def __init__(self, status_code: int, message: str, endpoint: str = ""):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"API error {status_code} on {endpoint}: {message}")

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class MDRateLimitError(MDAPIError):
    """Provider rejected the request with 429."""

    def __init__(self, retry_after: Optional[float] = None, endpoint: str = ""):
        self.retry_after = retry_after
        message = "Rate limit exceeded"
        if retry_after is not None:
            message += f", retry after {retry_after}s"
        super().__init__(429, message, endpoint)


class MDNotFoundError(MDAPIError):
    """Requested series does not exist on the provider."""

    def __init__(self, resource_id: str, resource_type: str = "manga"):
        self.resource_id = resource_id
        self.resource_type = resource_type
        super().__init__(404, f"{resource_type.title()} not found: {resource_id}", f"/{resource_type}/{resource_id}")
