"""
Usage sources for AI Usage Blocks.

Loaders that read agent log formats and produce normalized usage events.
"""

from .models import UsageEvent
from .repository import LoadResult, UsageRepository, UsageSource

__all__ = ["LoadResult", "UsageEvent", "UsageRepository", "UsageSource"]
