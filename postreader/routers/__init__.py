"""
FastAPI routers.
"""
from postreader.routers.health import router as health_router
from postreader.routers.voices import router as voices_router
from postreader.routers.posts import router as posts_router
from postreader.routers.artifacts import router as artifacts_router

__all__ = ['health_router', 'voices_router', 'posts_router', 'artifacts_router']
