"""Runtime configuration for the admin browser, sourced from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Tuple


@dataclass(frozen=True)
class AdminConfig:
    paginate_limit: int
    association_limit: int
    deletable: bool
    url_prefix: str
    default_redirect: str
    models: Tuple[Tuple[str, str], ...]
    create_schema: bool


_DEFAULT_PAGINATE_LIMIT = 25
_DEFAULT_ASSOCIATION_LIMIT = 75


def _normalize_bool(value: str | None, default: bool = True) -> bool:
    """Return normalized boolean from environment-style value."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"", "0", "false", "no", "off"}:
        return False
    if normalized in {"1", "true", "yes", "on"}:
        return True
    return default


def _normalize_int(value: str | None, default: int) -> int:
    """Return a positive integer, falling back to default on junk input."""
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _normalize_prefix(value: str | None) -> str:
    prefix = (value or "/admin").strip() or "/admin"
    if not prefix.startswith("/"):
        prefix = f"/{prefix}"
    return prefix[:-1] if prefix.endswith("/") and len(prefix) > 1 else prefix


def parse_model_modules(value: str | None) -> Tuple[Tuple[str, str], ...]:
    """Parse ``ADMIN_MODELS`` (``plugin=module.path,...``) into pairs.

    Entries without a plugin (``module.path``) use the module's last
    component as plugin name.
    """
    pairs = []
    for chunk in (value or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        if "=" in chunk:
            plugin, module = (part.strip() for part in chunk.split("=", 1))
        else:
            module = chunk
            plugin = chunk.rsplit(".", 1)[-1]
        if plugin and module:
            pairs.append((plugin, module))
    return tuple(pairs)


@lru_cache(maxsize=None)
def get_admin_config() -> AdminConfig:
    """Return the cached admin configuration."""
    return AdminConfig(
        paginate_limit=_normalize_int(os.getenv("ADMIN_PAGINATE_LIMIT"), _DEFAULT_PAGINATE_LIMIT),
        association_limit=_normalize_int(os.getenv("ADMIN_ASSOCIATION_LIMIT"), _DEFAULT_ASSOCIATION_LIMIT),
        deletable=_normalize_bool(os.getenv("ADMIN_DELETABLE"), default=True),
        url_prefix=_normalize_prefix(os.getenv("ADMIN_URL_PREFIX")),
        default_redirect=(os.getenv("ADMIN_DEFAULT_REDIRECT") or "index").strip() or "index",
        models=parse_model_modules(os.getenv("ADMIN_MODELS")),
        create_schema=_normalize_bool(os.getenv("ADMIN_CREATE_SCHEMA"), default=False),
    )


def admin_defaults() -> Dict[str, object]:
    """Per-model admin settings applied when a model does not override them."""
    config = get_admin_config()
    return {
        "paginate_limit": config.paginate_limit,
        "association_limit": config.association_limit,
        "deletable": config.deletable,
    }


def refresh_admin_config_cache() -> None:
    """Invalidate cached configuration (useful for tests)."""
    get_admin_config.cache_clear()
