"""
Model registry.

Maps ``Plugin.ModelName`` identifiers to descriptors and mapped classes.
Populated at startup (explicitly or from ``ADMIN_MODELS``); classes related to
a registered model are described at registration too. Read-only afterwards.
"""
from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable

from admin_browser.admin.descriptors import ModelDescriptor, describe_model
from admin_browser.admin.errors import NotFound
from admin_browser.utils.inflector import camelize

logger = logging.getLogger(__name__)


def split_model_name(name: str) -> tuple[str, str]:
    """``catalog.product_detail`` -> (``Catalog``, ``ProductDetail``)."""
    plugin, _, model = (name or "").strip().rpartition(".")
    return camelize(plugin), camelize(model)


class ModelRegistry:
    def __init__(self):
        self._descriptors: Dict[str, ModelDescriptor] = {}
        self._classes: Dict[str, Any] = {}
        self._by_class: Dict[str, ModelDescriptor] = {}

    def register(self, model_cls, plugin: str = "app", admin: Optional[Mapping[str, Any]] = None) -> ModelDescriptor:
        descriptor = describe_model(model_cls, camelize(plugin), admin)
        self._descriptors[descriptor.name] = descriptor
        self._by_class[model_cls.__name__] = descriptor
        self._classes[model_cls.__name__] = model_cls
        self._describe_related(model_cls, descriptor.plugin)
        logger.info("admin_model_registered: name=%s slug=%s", descriptor.name, descriptor.url_slug)
        return descriptor

    def register_module(self, module_path: str, plugin: Optional[str] = None) -> List[ModelDescriptor]:
        """Register every mapped class defined in ``module_path``."""
        module = importlib.import_module(module_path)
        plugin = plugin or module_path.rsplit(".", 1)[-1]
        registered = []
        for value in list(vars(module).values()):
            if not isinstance(value, type) or value.__module__ != module.__name__:
                continue
            try:
                sa_inspect(value)
            except NoInspectionAvailable:
                continue
            registered.append(self.register(value, plugin))
        return registered

    def _describe_related(self, model_cls, plugin: str) -> None:
        # Registered descriptors are never replaced by related-class ones
        for prop in sa_inspect(model_cls).relationships:
            related = prop.mapper.class_
            self._classes.setdefault(related.__name__, related)
            if related.__name__ not in self._by_class:
                self._by_class[related.__name__] = describe_model(related, plugin)

    def get(self, name: str) -> ModelDescriptor:
        """Resolve a route parameter such as ``catalog.product``."""
        plugin, model = split_model_name(name)
        descriptor = self._descriptors.get(f"{plugin}.{model}")
        if descriptor is None:
            raise NotFound(f"Unknown admin model '{name}'")
        return descriptor

    def by_class(self, class_name: str) -> ModelDescriptor:
        """Descriptor for a registered class or a class related to one."""
        try:
            return self._by_class[class_name]
        except KeyError:
            raise NotFound(f"Unknown admin model class '{class_name}'") from None

    def model_class(self, class_name: str):
        try:
            return self._classes[class_name]
        except KeyError:
            raise NotFound(f"Unknown admin model class '{class_name}'") from None

    def descriptors(self) -> List[ModelDescriptor]:
        return sorted(self._descriptors.values(), key=lambda d: d.name)

    def __contains__(self, name: str) -> bool:
        plugin, model = split_model_name(name)
        return f"{plugin}.{model}" in self._descriptors

    def clear(self) -> None:
        self._descriptors.clear()
        self._classes.clear()
        self._by_class.clear()


# Application-wide registry used by the HTTP layer
registry = ModelRegistry()


def get_registry() -> ModelRegistry:
    return registry
