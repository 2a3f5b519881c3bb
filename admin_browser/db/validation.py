"""
Column-level validation for submitted records.

A Pydantic model is generated once per mapped class from its table columns
(Python type, nullability, string length). Values coming from HTML forms are
coerced the Pydantic way, so ``"5"`` becomes ``5`` for integer columns.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model
from sqlalchemy import inspect as sa_inspect

FieldErrors = Dict[str, List[str]]


def _python_type(column) -> Any:
    try:
        return column.type.python_type
    except NotImplementedError:
        return Any


@lru_cache(maxsize=None)
def field_validator(model_cls) -> type[BaseModel]:
    """Pydantic model mirroring the columns of ``model_cls``; every field optional."""
    fields: Dict[str, Any] = {}
    for attr in sa_inspect(model_cls).column_attrs:
        column = attr.columns[0]
        py_type = _python_type(column)
        annotation = Optional[py_type] if column.nullable or column.primary_key else py_type
        constraints: Dict[str, Any] = {}
        length = getattr(column.type, "length", None)
        if py_type is str and length:
            constraints["max_length"] = length
        fields[attr.key] = (annotation, Field(default=None, **constraints))
    return create_model(
        f"{model_cls.__name__}Fields",
        __config__=ConfigDict(extra="ignore"),
        **fields,
    )


@lru_cache(maxsize=None)
def required_columns(model_cls) -> Tuple[str, ...]:
    """Non-nullable columns the database will not fill in on its own."""
    required = []
    for attr in sa_inspect(model_cls).column_attrs:
        column = attr.columns[0]
        if column.primary_key or column.nullable:
            continue
        if column.default is not None or column.server_default is not None:
            continue
        required.append(attr.key)
    return tuple(required)


def validate_fields(
    model_cls,
    values: Mapping[str, Any],
    *,
    creating: bool,
    satisfied: Iterable[str] = (),
) -> Tuple[Dict[str, Any], FieldErrors]:
    """Validate submitted column values.

    Returns the coerced values (only the submitted keys) and the errors by
    field name. ``satisfied`` lists columns filled in by an associated record
    being saved in the same operation, typically foreign keys.
    """
    errors: FieldErrors = {}
    try:
        clean = field_validator(model_cls).model_validate(dict(values)).model_dump(exclude_unset=True)
    except ValidationError as exc:
        clean = {}
        for error in exc.errors():
            name = str(error["loc"][0]) if error["loc"] else "__all__"
            errors.setdefault(name, []).append(error["msg"])

    if creating:
        skip = set(satisfied)
        for name in required_columns(model_cls):
            if name not in skip and name not in values and name not in errors:
                errors[name] = ["Field required"]
    return clean, errors
