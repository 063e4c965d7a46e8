"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from sitelens.api import app

    uvicorn sitelens.api:app --reload
"""

from sitelens.api.app import app

__all__ = ["app"]
