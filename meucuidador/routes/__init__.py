"""
Route modules for the MeuCuidador real-time client.
"""

from .realtime import create_realtime_router

__all__ = [
    "create_realtime_router",
]
