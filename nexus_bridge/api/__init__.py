"""
Nexus Mods API Layer.

This package handles all communication with the Nexus Mods REST and GraphQL APIs.
"""

from .client import NexusAPIClient, NexusUser
from .rate_limiter import AdaptiveRateLimiter

__all__ = ["AdaptiveRateLimiter", "NexusAPIClient", "NexusUser"]
