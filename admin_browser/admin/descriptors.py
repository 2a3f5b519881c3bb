"""
Immutable descriptors for administrable entities.

A ``ModelDescriptor`` is computed once per mapped class from SQLAlchemy's
mapper inspection and then passed explicitly to the containment resolver,
the associated-data preparer and the controller.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import RelationshipDirection

from admin_browser.utils.inflector import humanize, underscore
from admin_browser.utils.settings import admin_defaults

DISPLAY_FIELD_CANDIDATES = ("name", "title", "label")


def _empty_relations() -> Mapping[str, "Relation"]:
    return MappingProxyType({})


@dataclass(frozen=True)
class Relation:
    alias: str
    foreign_key: str
    class_name: str
    dependent: bool = False


@dataclass(frozen=True)
class AdminSettings:
    paginate_limit: int = 25
    deletable: bool = True
    association_limit: int = 75


@dataclass(frozen=True)
class TypeAheadDescriptor:
    """A belongsTo relation rendered as a search-as-you-type widget."""

    foreign_key: str
    alias: str
    model: str


@dataclass(frozen=True)
class ModelDescriptor:
    alias: str
    plugin: str
    primary_key: str
    display_field: str
    singular_name: str
    url_slug: str
    belongs_to: Mapping[str, Relation] = field(default_factory=_empty_relations)
    has_one: Mapping[str, Relation] = field(default_factory=_empty_relations)
    has_many: Mapping[str, Relation] = field(default_factory=_empty_relations)
    has_and_belongs_to_many: Mapping[str, Relation] = field(default_factory=_empty_relations)
    admin: AdminSettings = field(default_factory=AdminSettings)

    @property
    def name(self) -> str:
        """Registry key, ``Plugin.ModelName``."""
        return f"{self.plugin}.{self.alias}"

    def relations(self) -> Mapping[str, Relation]:
        merged = {}
        for group in (self.belongs_to, self.has_one, self.has_many, self.has_and_belongs_to_many):
            merged.update(group)
        return MappingProxyType(merged)


def _admin_overrides(model_cls) -> dict:
    return dict(getattr(model_cls, "__admin__", None) or {})


def build_admin_settings(overrides: Optional[Mapping[str, Any]] = None) -> AdminSettings:
    """Merge per-model overrides over the configured defaults."""
    values = admin_defaults()
    for key in ("paginate_limit", "association_limit", "deletable"):
        if overrides and key in overrides and overrides[key] is not None:
            values[key] = overrides[key]
    return AdminSettings(
        paginate_limit=int(values["paginate_limit"]),
        deletable=bool(values["deletable"]),
        association_limit=int(values["association_limit"]),
    )


def _habtm_foreign_key(prop) -> str:
    # Column of the join table that points back at the owning table
    local_table = prop.parent.local_table
    for column in prop.secondary.columns:
        for fk in column.foreign_keys:
            if fk.references(local_table):
                return column.name
    return ""


def _classify(prop):
    direction = prop.direction
    if direction is RelationshipDirection.MANYTOONE:
        column = next(iter(prop.local_columns))
        return "belongs_to", prop.parent.get_property_by_column(column).key
    if direction is RelationshipDirection.ONETOMANY:
        column = next(iter(prop.remote_side))
        return ("has_many" if prop.uselist else "has_one"), prop.mapper.get_property_by_column(column).key
    return "has_and_belongs_to_many", _habtm_foreign_key(prop)


def describe_model(model_cls, plugin: str, admin: Optional[Mapping[str, Any]] = None) -> ModelDescriptor:
    """Build a ``ModelDescriptor`` for a mapped SQLAlchemy class.

    ``admin`` overrides take precedence over the class' ``__admin__``
    mapping, which takes precedence over the configured defaults.
    """
    mapper = sa_inspect(model_cls)
    overrides = _admin_overrides(model_cls)
    overrides.update(admin or {})

    # Attribute names, which may differ from the column names
    primary_key = mapper.get_property_by_column(mapper.primary_key[0]).key
    column_keys = [attr.key for attr in mapper.column_attrs]
    display_field = overrides.get("display_field")
    if not display_field or display_field not in column_keys:
        display_field = next((c for c in DISPLAY_FIELD_CANDIDATES if c in column_keys), primary_key)

    groups: dict[str, dict[str, Relation]] = {
        "belongs_to": {},
        "has_one": {},
        "has_many": {},
        "has_and_belongs_to_many": {},
    }
    for prop in mapper.relationships:
        group, foreign_key = _classify(prop)
        groups[group][prop.key] = Relation(
            alias=prop.key,
            foreign_key=foreign_key,
            class_name=prop.mapper.class_.__name__,
            dependent=bool(prop.cascade.delete),
        )

    alias = model_cls.__name__
    return ModelDescriptor(
        alias=alias,
        plugin=plugin,
        primary_key=primary_key,
        display_field=display_field,
        singular_name=humanize(alias),
        url_slug=f"{underscore(plugin)}.{underscore(alias)}",
        admin=build_admin_settings(overrides),
        **{name: MappingProxyType(group) for name, group in groups.items()},
    )
