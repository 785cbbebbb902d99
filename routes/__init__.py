# Routes package __init__.py - re-exports routers for main.py convenience
from .study import router as study_router
from .sync import router as sync_router
from .stats import router as stats_router

__all__ = ['study_router', 'sync_router', 'stats_router']
