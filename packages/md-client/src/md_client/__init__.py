"""md_client - async client for the authoritative metadata provider."""

from md_client.client import MDClient, parse_manga
from md_client.errors import (
    MDAPIError,
    MDConfigError,
    MDError,
    MDNetworkError,
    MDNotFoundError,
    MDRateLimitError,
)
from md_client.rate_limiter import RateLimiter

__all__ = [
    "MDClient",
    "parse_manga",
    "MDError",
    "MDAPIError",
    "MDConfigError",
    "MDNetworkError",
    "MDNotFoundError",
    "MDRateLimitError",
    "RateLimiter",
]
