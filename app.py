"""
App assembly entry point.

Re-exports the FastAPI `app` from `admin_browser.api.main` for ASGI servers
(``uvicorn app:app``).
"""

from admin_browser.api.main import app  # noqa: F401
