"""Client library for the commons API."""

from .client import CommonsClient, CommonsClientError

__all__ = ["CommonsClient", "CommonsClientError"]
