"""
Naming helpers shared by descriptors, registry lookups and option lists.

Pluralization is delegated to ``inflect``; the case conversions are plain
regular expressions.
"""
from __future__ import annotations

import re
from functools import lru_cache

import inflect

_engine = inflect.engine()

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_ID_SUFFIX = re.compile(r"_id$")


def camelize(value: str) -> str:
    """``product_detail`` -> ``ProductDetail``; already camelized input is kept."""
    parts = [p for p in re.split(r"[_\-\s]+", value or "") if p]
    return "".join(p[:1].upper() + p[1:] for p in parts)


def underscore(value: str) -> str:
    """``ProductDetail`` -> ``product_detail``."""
    return _CAMEL_BOUNDARY.sub("_", value or "").replace("-", "_").lower()


def humanize(value: str) -> str:
    """``ProductDetail`` -> ``product detail``."""
    return underscore(value).replace("_", " ")


@lru_cache(maxsize=512)
def pluralize(word: str) -> str:
    """Pluralize the last underscore-separated word: ``parent_category`` -> ``parent_categories``."""
    if not word:
        return word
    head, _, last = word.rpartition("_")
    plural = _engine.plural_noun(last) or f"{last}s"
    return f"{head}_{plural}" if head else plural


def options_variable(foreign_key: str) -> str:
    """Variable name for a belongsTo option list: ``category_id`` -> ``categories``."""
    return pluralize(_ID_SUFFIX.sub("", foreign_key))
