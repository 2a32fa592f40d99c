"""Core HTTP client functionality shared by the service adapters."""

from .client import ServiceClient
from .retry import call_with_retry

__all__ = ["ServiceClient", "call_with_retry"]
