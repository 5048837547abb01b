"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.captacoes import router as captacoes_router

__all__ = [
    "captacoes_router",
]
