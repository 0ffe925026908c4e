"""External provider adapters."""

from .github import GitHubSponsorsClient
from .paypal import PayPalClient

__all__ = [
    "GitHubSponsorsClient",
    "PayPalClient",
]
