"""
FastAPI app assembly: logging, middleware, model registration and router wiring.
"""
import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from admin_browser.admin.registry import ModelRegistry, registry as default_registry
from admin_browser.api.crud import router as crud_router
from admin_browser.db.database import init_schema
from admin_browser.utils.settings import get_admin_config

# Configure logging
LOG_LEVEL_NAME = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.INFO)
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)
logger.setLevel(LOG_LEVEL)

_DEFAULT_ORIGINS = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:8000",
]


def _cors_origins() -> list:
    raw = os.getenv("CORS_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or list(_DEFAULT_ORIGINS)


def register_configured_models(registry: ModelRegistry) -> None:
    """Register the model modules listed in ``ADMIN_MODELS``."""
    config = get_admin_config()
    metadata = {}
    for plugin, module_path in config.models:
        for descriptor in registry.register_module(module_path, plugin):
            model_cls = registry.model_class(descriptor.alias)
            metadata[id(model_cls.metadata)] = model_cls.metadata
    if config.create_schema:
        for md in metadata.values():
            init_schema(md)


def create_app(registry: Optional[ModelRegistry] = None) -> FastAPI:
    config = get_admin_config()
    registry = registry if registry is not None else default_registry
    register_configured_models(registry)

    app = FastAPI(
        title="Admin Record Browser",
        description="Generic list, create, read, update, delete and type-ahead endpoints for registered models.",
        version="1.0.0",
    )
    # Avoid implicit trailing-slash redirects for predictable URLs
    app.router.redirect_slashes = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(crud_router, prefix=config.url_prefix)
    logger.info(
        "app_startup: log_level=%s prefix=%s models=%d",
        LOG_LEVEL_NAME,
        config.url_prefix,
        len(registry.descriptors()),
    )
    return app


app = create_app()
