"""
Associated data for create/update forms.

Every belongsTo relation is offered either as a complete option list or,
when the related table holds more than ``admin.association_limit`` rows, as
a type-ahead widget. Never both.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Protocol

from admin_browser.admin.descriptors import ModelDescriptor, TypeAheadDescriptor
from admin_browser.admin.presenter import Presenter
from admin_browser.utils.inflector import options_variable

logger = logging.getLogger(__name__)

TYPE_AHEAD_VARIABLE = "type_ahead"


class RepositorySource(Protocol):
    def get(self, class_name: str) -> Any: ...


@dataclass
class AssociatedData:
    options: Dict[str, Dict[Any, str]] = field(default_factory=dict)
    type_ahead: Dict[str, TypeAheadDescriptor] = field(default_factory=dict)


def format_label(record_id: Any, display: Any) -> str:
    """``5``/``Widget`` -> ``5 - Widget``; ``5``/``5`` -> ``5``."""
    if display is not None and str(display) != str(record_id):
        return f"{record_id} - {display}"
    return str(record_id)


def prepare_associated_data(
    descriptor: ModelDescriptor,
    repositories: RepositorySource,
    presenter: Presenter | None = None,
) -> AssociatedData:
    """Compute option lists / type-ahead descriptors and stage them on the presenter."""
    data = AssociatedData()
    limit = descriptor.admin.association_limit

    for alias, relation in descriptor.belongs_to.items():
        repository = repositories.get(relation.class_name)
        count = repository.count()

        if count > limit:
            data.type_ahead[relation.foreign_key] = TypeAheadDescriptor(
                foreign_key=relation.foreign_key,
                alias=alias,
                model=relation.class_name,
            )
            logger.debug("associated_data: %s.%s type-ahead (count=%s limit=%s)", descriptor.alias, alias, count, limit)
            continue

        related = repository.descriptor
        options: Dict[Any, str] = {}
        for record in repository.find("all", order=[(related.primary_key, "asc")]):
            fields = record[related.alias]
            record_id = fields[related.primary_key]
            options[record_id] = format_label(record_id, fields.get(related.display_field))
        data.options[options_variable(relation.foreign_key)] = options

    if presenter is not None:
        for name, options in data.options.items():
            presenter.set(name, options)
        presenter.set(TYPE_AHEAD_VARIABLE, data.type_ahead)
    return data
