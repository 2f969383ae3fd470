"""Task query understanding, filtering and ranking package."""

from .config import ProviderSettings, QueryConfig

__all__ = ["ProviderSettings", "QueryConfig"]
