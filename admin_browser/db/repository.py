"""
SQLAlchemy-backed repository for one administrable entity.

Reads return plain records shaped ``{Alias: {column: value}, relation: ...}``
with the requested relations eager-loaded. ``save_associated`` validates the
whole submitted tree first and then writes it in a single transaction.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import String, asc, cast, desc, func
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import RelationshipDirection, Session, selectinload

from admin_browser.admin.descriptors import ModelDescriptor
from admin_browser.db.validation import validate_fields

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Contain = Mapping[str, Sequence[str]]
Order = Sequence[Tuple[str, str]]

FIND_KINDS = ("first", "all", "count", "list")


@dataclass
class SaveResult:
    success: bool
    id: Any = None
    errors: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class Page:
    records: List[Record]
    page: int
    limit: int
    count: int

    @property
    def page_count(self) -> int:
        if not self.limit:
            return 1
        return max(1, math.ceil(self.count / self.limit))

    def paginator(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "count": self.count,
            "page_count": self.page_count,
            "has_prev": self.page > 1,
            "has_next": self.page < self.page_count,
        }


@dataclass
class _Node:
    model: Any
    instance: Any = None
    values: Dict[str, Any] = field(default_factory=dict)
    parents: Dict[str, "_Node"] = field(default_factory=dict)
    children: Dict[str, List["_Node"]] = field(default_factory=dict)
    links: Dict[str, List[Any]] = field(default_factory=dict)


def _coerce_key(model_cls, value: Any) -> Any:
    """Cast a submitted primary key to the column's Python type; None if impossible."""
    column = sa_inspect(model_cls).primary_key[0]
    try:
        py_type = column.type.python_type
    except NotImplementedError:
        return value
    if isinstance(value, py_type):
        return value
    try:
        return py_type(value)
    except (TypeError, ValueError):
        return None


def _pk_attr(model_cls) -> str:
    mapper = sa_inspect(model_cls)
    return mapper.get_property_by_column(mapper.primary_key[0]).key


def _columns(instance) -> Dict[str, Any]:
    return {attr.key: getattr(instance, attr.key) for attr in sa_inspect(type(instance)).column_attrs}


def _items(value: Any) -> List[Any]:
    """Normalize hasMany input: lists, or index-keyed mappings posted by forms."""
    if value is None or value == "":
        return []
    if isinstance(value, Mapping):
        if value and all(str(k).isdigit() for k in value):
            return [value[k] for k in sorted(value, key=lambda k: int(k))]
        return [value]
    if isinstance(value, (str, int)):
        return [value]
    return list(value)


class Repository:
    def __init__(self, db: Session, model_cls, descriptor: ModelDescriptor):
        self.db = db
        self.model = model_cls
        self.descriptor = descriptor
        self._mapper = sa_inspect(model_cls)
        self._pk = _pk_attr(model_cls)

    # -- reads ---------------------------------------------------------------

    def create(self) -> Record:
        """Blank record carrying column defaults."""
        fields = {}
        for attr in self._mapper.column_attrs:
            default = attr.columns[0].default
            fields[attr.key] = default.arg if default is not None and default.is_scalar else None
        return {self.descriptor.alias: fields}

    def count(self) -> int:
        return self.db.query(func.count(getattr(self.model, self._pk))).scalar() or 0

    def _load_options(self, contain: Optional[Contain]) -> List[Any]:
        options = []
        for alias, nested in (contain or {}).items():
            prop = self._mapper.relationships.get(alias)
            if prop is None:
                logger.debug("contain: %s has no relation %s", self.descriptor.alias, alias)
                continue
            loader = getattr(self.model, alias)
            target = prop.mapper
            nested = [n for n in nested if n in target.relationships]
            if not nested:
                options.append(selectinload(loader))
            for name in nested:
                options.append(selectinload(loader).selectinload(getattr(target.class_, name)))
        return options

    def _query(
        self,
        conditions: Optional[Mapping[str, Any]] = None,
        search: Optional[str] = None,
    ):
        q = self.db.query(self.model)
        for name, value in (conditions or {}).items():
            q = q.filter(getattr(self.model, name) == value)
        if search:
            column = getattr(self.model, self.descriptor.display_field)
            if not isinstance(self._mapper.columns[self.descriptor.display_field].type, String):
                column = cast(column, String)
            q = q.filter(column.icontains(search, autoescape=True))
        return q

    def _ordered(self, q, order: Optional[Order]):
        for name, direction in order or [(self._pk, "asc")]:
            column = getattr(self.model, name)
            q = q.order_by(desc(column) if str(direction).lower() == "desc" else asc(column))
        return q

    def find(
        self,
        kind: str = "all",
        *,
        conditions: Optional[Mapping[str, Any]] = None,
        contain: Optional[Contain] = None,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        search: Optional[str] = None,
    ):
        """Query records.

        ``first`` returns one record or None, ``all`` a list of records,
        ``count`` an integer and ``list`` ``(id, display)`` pairs.
        """
        if kind not in FIND_KINDS:
            raise ValueError(f"Unknown find type '{kind}'")
        q = self._query(conditions, search)
        if kind == "count":
            return q.count()
        if kind == "list":
            display = self.descriptor.display_field
            rows = self._ordered(q, order)
            if offset:
                rows = rows.offset(offset)
            if limit:
                rows = rows.limit(limit)
            return [(getattr(i, self._pk), getattr(i, display)) for i in rows.all()]

        q = self._ordered(q.options(*self._load_options(contain)), order)
        if kind == "first":
            instance = q.first()
            return self.to_record(instance, contain) if instance is not None else None
        if offset:
            q = q.offset(offset)
        if limit:
            q = q.limit(limit)
        return [self.to_record(i, contain) for i in q.all()]

    def get(self, record_id: Any, contain: Optional[Contain] = None) -> Optional[Record]:
        key = _coerce_key(self.model, record_id)
        if key is None:
            return None
        return self.find("first", conditions={self._pk: key}, contain=contain)

    def paginate(self, page: int = 1, limit: int = 25, contain: Optional[Contain] = None) -> Page:
        count = self.find("count")
        limit = max(1, int(limit))
        last_page = max(1, math.ceil(count / limit))
        page = min(max(1, int(page)), last_page)
        records = self.find(
            "all",
            contain=contain,
            order=[(self._pk, "asc")],
            limit=limit,
            offset=(page - 1) * limit,
        )
        return Page(records=records, page=page, limit=limit, count=count)

    def to_record(self, instance, contain: Optional[Contain] = None) -> Record:
        record: Record = {self.descriptor.alias: _columns(instance)}
        for alias, nested in (contain or {}).items():
            if alias in self._mapper.relationships:
                record[alias] = self._related(instance, alias, nested)
        return record

    def _related(self, instance, alias: str, nested: Sequence[str]):
        prop = sa_inspect(type(instance)).relationships[alias]
        value = getattr(instance, alias)
        if prop.uselist:
            return [self._nested(item, nested) for item in value]
        return self._nested(value, nested) if value is not None else None

    def _nested(self, instance, nested: Sequence[str]) -> Dict[str, Any]:
        fields = _columns(instance)
        relationships = sa_inspect(type(instance)).relationships
        for alias in nested:
            if alias in relationships:
                fields[alias] = self._related(instance, alias, ())
        return fields

    # -- writes --------------------------------------------------------------

    def _primary_data(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        data = dict(payload.get(self.descriptor.alias) or {})
        for key, value in payload.items():
            if key != self.descriptor.alias and key in self._mapper.relationships and key not in data:
                data[key] = value
        return data

    def save_associated(
        self,
        payload: Mapping[str, Any],
        *,
        validate: bool = True,
        atomic: bool = True,
        deep: bool = True,
    ) -> SaveResult:
        """Save the primary record with its nested associated records.

        Everything is validated before anything is written. With ``atomic``
        the whole tree is committed in one transaction; otherwise the primary
        record is committed first and each hasOne/hasMany record separately.
        """
        errors: Dict[str, List[str]] = {}
        with self.db.no_autoflush:
            root = self._plan(
                self.model,
                self._primary_data(payload or {}),
                path=self.descriptor.alias,
                errors=errors,
                validate=validate,
                depth=None if deep else 1,
            )
        if errors:
            logger.warning("save_invalid: model=%s fields=%s", self.descriptor.alias, sorted(errors))
            return SaveResult(False, errors=errors)

        if not atomic:
            return self._save_stepwise(root)
        try:
            with self.db.no_autoflush:
                instance = self._apply(root)
            self.db.flush()
            record_id = getattr(instance, self._pk)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("save_failed: model=%s error=%s", self.descriptor.alias, exc)
            return SaveResult(False, errors={"__all__": [str(getattr(exc, "orig", None) or exc)]})
        logger.info("record_saved: model=%s id=%s", self.descriptor.alias, record_id)
        return SaveResult(True, id=record_id)

    def _save_stepwise(self, root: _Node) -> SaveResult:
        try:
            with self.db.no_autoflush:
                instance = self._apply(root, with_children=False)
            self.db.flush()
            record_id = getattr(instance, self._pk)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("save_failed: model=%s error=%s", self.descriptor.alias, exc)
            return SaveResult(False, errors={"__all__": [str(getattr(exc, "orig", None) or exc)]})

        errors: Dict[str, List[str]] = {}
        for alias, children in root.children.items():
            for index, child in enumerate(children):
                try:
                    with self.db.no_autoflush:
                        self._attach(instance, alias, child)
                    self.db.commit()
                except SQLAlchemyError as exc:
                    self.db.rollback()
                    errors[f"{self.descriptor.alias}.{alias}.{index}"] = [str(getattr(exc, "orig", None) or exc)]
        if errors:
            logger.warning("save_partial: model=%s id=%s failed=%s", self.descriptor.alias, record_id, sorted(errors))
        return SaveResult(not errors, id=record_id, errors=errors)

    def _plan(
        self,
        model_cls,
        data: Mapping[str, Any],
        *,
        path: str,
        errors: Dict[str, List[str]],
        validate: bool,
        depth: Optional[int],
        satisfied: Iterable[str] = (),
    ) -> _Node:
        mapper = sa_inspect(model_cls)
        pk = _pk_attr(model_cls)
        columns = {attr.key for attr in mapper.column_attrs}
        node = _Node(model=model_cls)

        pk_value = data.get(pk)
        creating = pk_value in (None, "")
        if not creating:
            key = _coerce_key(model_cls, pk_value)
            node.instance = self.db.get(model_cls, key) if key is not None else None
            if node.instance is None:
                errors[f"{path}.{pk}"] = [f"{model_cls.__name__} {pk_value} does not exist"]

        satisfied = set(satisfied)
        follow = depth is None or depth > 0
        next_depth = None if depth is None else depth - 1
        for key, value in data.items():
            prop = mapper.relationships.get(key)
            if prop is None or not follow:
                continue
            target = prop.mapper.class_
            sub_path = f"{path}.{key}"
            if prop.direction is RelationshipDirection.MANYTOONE:
                if isinstance(value, Mapping):
                    node.parents[key] = self._plan(
                        target, value, path=sub_path, errors=errors, validate=validate, depth=next_depth,
                    )
                    satisfied.update(mapper.get_property_by_column(c).key for c in prop.local_columns)
            elif prop.direction is RelationshipDirection.ONETOMANY:
                back_keys = {prop.mapper.get_property_by_column(c).key for c in prop.remote_side}
                target_pk = _pk_attr(target)
                items = [value] if not prop.uselist and isinstance(value, Mapping) else _items(value)
                if not prop.uselist and node.instance is not None and items and isinstance(items[0], Mapping):
                    # A hasOne section without a key edits the current child
                    current = getattr(node.instance, key)
                    if current is not None and items[0].get(target_pk) in (None, ""):
                        items = [{**items[0], target_pk: getattr(current, target_pk)}]
                node.children[key] = [
                    self._plan(
                        target,
                        item if isinstance(item, Mapping) else {target_pk: item},
                        path=f"{sub_path}.{index}" if prop.uselist else sub_path,
                        errors=errors,
                        validate=validate,
                        depth=next_depth,
                        satisfied=back_keys,
                    )
                    for index, item in enumerate(items)
                ]
            else:
                node.links[key] = self._linked(target, key, value, sub_path, errors)

        values = {k: v for k, v in data.items() if k in columns and k != pk}
        if validate:
            values, field_errors = validate_fields(
                model_cls, values, creating=creating, satisfied=satisfied,
            )
            for name, messages in field_errors.items():
                errors[f"{path}.{name}"] = messages
        node.values = values
        return node

    def _linked(self, target, alias: str, value: Any, path: str, errors: Dict[str, List[str]]) -> List[Any]:
        """Resolve hasAndBelongsToMany input (ids, ``{alias: ids}`` or records) to instances."""
        if isinstance(value, Mapping):
            value = value.get(alias, [])
        if value is None or value == "":
            return []
        if isinstance(value, (str, int)):
            value = [value]
        target_pk = _pk_attr(target)
        linked = []
        for item in value:
            raw = item.get(target_pk) if isinstance(item, Mapping) else item
            if raw in (None, ""):
                continue
            key = _coerce_key(target, raw)
            instance = self.db.get(target, key) if key is not None else None
            if instance is None:
                errors.setdefault(path, []).append(f"{target.__name__} {raw} does not exist")
                continue
            linked.append(instance)
        return linked

    def _apply(self, node: _Node, with_children: bool = True):
        instance = node.instance if node.instance is not None else node.model()
        for alias, parent in node.parents.items():
            setattr(instance, alias, self._apply(parent))
        for name, value in node.values.items():
            setattr(instance, name, value)
        for alias, linked in node.links.items():
            setattr(instance, alias, linked)
        self.db.add(instance)
        if with_children:
            for alias, children in node.children.items():
                for child in children:
                    self._attach(instance, alias, child)
        return instance

    def _attach(self, instance, alias: str, child: _Node) -> None:
        prop = sa_inspect(type(instance)).relationships[alias]
        child_instance = self._apply(child)
        if prop.uselist:
            collection = getattr(instance, alias)
            if child_instance not in collection:
                collection.append(child_instance)
        else:
            setattr(instance, alias, child_instance)

    def delete(self, record_id: Any, cascade: bool = True) -> bool:
        """Delete one record; ``cascade`` lets the ORM remove dependent records."""
        key = _coerce_key(self.model, record_id)
        instance = self.db.get(self.model, key) if key is not None else None
        if instance is None:
            return False
        try:
            self._delete_instance(instance, key, cascade)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("delete_failed: model=%s id=%s error=%s", self.descriptor.alias, record_id, exc)
            return False
        logger.info("record_deleted: model=%s id=%s cascade=%s", self.descriptor.alias, key, cascade)
        return True

    def delete_many(self, record_ids: Iterable[Any], cascade: bool = True) -> SaveResult:
        """Delete several records in one transaction; unknown ids are skipped."""
        deleted = []
        try:
            for record_id in record_ids:
                key = _coerce_key(self.model, record_id)
                instance = self.db.get(self.model, key) if key is not None else None
                if instance is None:
                    continue
                self._delete_instance(instance, key, cascade)
                deleted.append(key)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("batch_delete_failed: model=%s error=%s", self.descriptor.alias, exc)
            return SaveResult(False, errors={"__all__": [str(getattr(exc, "orig", None) or exc)]})
        logger.info("records_deleted: model=%s ids=%s", self.descriptor.alias, deleted)
        return SaveResult(True, id=deleted)

    def _delete_instance(self, instance, key: Any, cascade: bool) -> None:
        if cascade:
            self.db.delete(instance)
            self.db.flush()
        else:
            self.db.expunge(instance)
            self.db.query(self.model).filter(getattr(self.model, self._pk) == key).delete(synchronize_session=False)


class RepositoryFactory:
    """Per-request repositories, one per entity class."""

    def __init__(self, db: Session, registry):
        self.db = db
        self.registry = registry
        self._repositories: Dict[str, Repository] = {}

    def get(self, class_name: str) -> Repository:
        repository = self._repositories.get(class_name)
        if repository is None:
            repository = Repository(
                self.db,
                self.registry.model_class(class_name),
                self.registry.by_class(class_name),
            )
            self._repositories[class_name] = repository
        return repository

    def for_descriptor(self, descriptor: ModelDescriptor) -> Repository:
        return self.get(descriptor.alias)
