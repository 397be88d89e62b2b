"""
HTTP interface to the link pipeline.

    from api import create_app

    app = create_app()          # settings from LINKSCOUT_* / LINKSCOUT_CONFIG
    uvicorn.run(app)
"""

from .errors import HttpError
from .rate_limit import FixedWindowLimiter, RateLimitMiddleware
from .server import configure_logging, create_app


__all__ = [
    'FixedWindowLimiter',
    'HttpError',
    'RateLimitMiddleware',
    'configure_logging',
    'create_app',
]
