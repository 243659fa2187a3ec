from quoteguard.datasource.base import SearchProvider
from quoteguard.datasource.serper import SerperSource

__all__ = ["SearchProvider", "SerperSource"]
