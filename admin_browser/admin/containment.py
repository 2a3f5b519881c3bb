"""
Relation containment: which related entities to eager-load for an action.

A containment is an ordered mapping ``alias -> tuple of nested aliases``.
Nesting never goes deeper than two levels.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Tuple

from admin_browser.admin.descriptors import ModelDescriptor

logger = logging.getLogger(__name__)

Containment = Dict[str, Tuple[str, ...]]


def shallow_contain(descriptor: ModelDescriptor) -> Containment:
    """Direct parents and many-to-many links, for list and update views."""
    contain: Containment = {alias: () for alias in descriptor.belongs_to}
    for alias in descriptor.has_and_belongs_to_many:
        contain.setdefault(alias, ())
    return contain


def deep_contain(
    descriptor: ModelDescriptor,
    lookup: Callable[[str], ModelDescriptor],
) -> Containment:
    """Shallow containment plus hasOne/hasMany children with their own parents.

    ``lookup`` resolves a related class name to its descriptor.
    """
    contain = shallow_contain(descriptor)
    for group in (descriptor.has_one, descriptor.has_many):
        for alias, relation in group.items():
            related = lookup(relation.class_name)
            contain[alias] = tuple(related.belongs_to)
    logger.debug("deep_contain model=%s contain=%s", descriptor.name, contain)
    return contain
