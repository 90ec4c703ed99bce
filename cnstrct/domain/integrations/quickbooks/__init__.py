"""QuickBooks Online integration - OAuth connection lifecycle, API relay and entity sync"""

from .router import router

__all__ = ["router"]
