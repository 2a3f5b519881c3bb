"""
FastAPI dependencies for the admin routes.

The ``model`` path parameter (``plugin.ModelName``) is resolved through the
registry before any action runs.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from admin_browser.admin.controller import CrudController
from admin_browser.admin.descriptors import ModelDescriptor
from admin_browser.admin.registry import ModelRegistry, get_registry
from admin_browser.db.database import get_db
from admin_browser.db.repository import RepositoryFactory
from admin_browser.utils.settings import AdminConfig, get_admin_config


def get_config() -> AdminConfig:
    return get_admin_config()


def get_descriptor(
    model: str,
    registry: ModelRegistry = Depends(get_registry),
) -> ModelDescriptor:
    return registry.get(model)


def get_repositories(
    db: Session = Depends(get_db),
    registry: ModelRegistry = Depends(get_registry),
) -> RepositoryFactory:
    return RepositoryFactory(db, registry)


def get_controller(
    descriptor: ModelDescriptor = Depends(get_descriptor),
    repositories: RepositoryFactory = Depends(get_repositories),
    config: AdminConfig = Depends(get_config),
) -> CrudController:
    return CrudController(descriptor, repositories, lookup=repositories.registry.by_class, config=config)
