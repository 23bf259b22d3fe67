"""
Filter shaping: flat API filters -> SQLAlchemy clauses.

Consumers may write ``{"category": 3}`` where the ORM needs
``{"category": {"id": 3}}``. ``purify_where`` performs that rewrite,
``get_relations_from_where`` tells the query which relations to load and
``compile_where`` turns the normalized filter into WHERE clauses.

A filter value can be:

* a scalar (``==``), a list (``IN``) or ``None`` (``IS NULL``);
* an operator expression, e.g. ``{"gte": 10, "lt": 20}``;
* for a relation, a nested filter over the related entity, e.g.
  ``{"category": {"slug": "books"}}`` or ``{"category": {"id": [1, 2]}}``.
"""

from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import and_, inspect
from sqlalchemy.sql.elements import ColumnElement

from crudkit.core.errors import ApiError

OPERATORS: Dict[str, Callable[[Any, Any], ColumnElement]] = {
    "eq": lambda column, value: column == value,
    "ne": lambda column, value: column != value,
    "gt": lambda column, value: column > value,
    "gte": lambda column, value: column >= value,
    "lt": lambda column, value: column < value,
    "lte": lambda column, value: column <= value,
    "in": lambda column, value: column.in_(list(value)),
    "not_in": lambda column, value: column.not_in(list(value)),
    "like": lambda column, value: column.like(value),
    "ilike": lambda column, value: column.ilike(value),
    "is_null": lambda column, value: column.is_(None) if value else column.is_not(None),
    "between": lambda column, value: column.between(value[0], value[1]),
}

Relations = Union[Sequence[str], Mapping]


def relation_names(model) -> List[str]:
    """Relation property names of a mapped class, read from mapper metadata."""
    return list(inspect(model).relationships.keys())


def is_operator_expression(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(key in OPERATORS for key in value)


def _is_nested(value: Any) -> bool:
    return isinstance(value, (Mapping, list, tuple, set))


def purify_where(where: Mapping, relation_properties: Iterable[str]) -> Dict[str, Any]:
    """
    Rewrite flat relation filters into the nested ``{"id": value}`` shape.

    Values that are already mappings or lists (including operator
    expressions) and ``None`` are left untouched, so the function is
    idempotent.
    """
    relation_properties = set(relation_properties)
    rewritten = {
        key: {"id": value}
        for key, value in where.items()
        if key in relation_properties and value is not None and not _is_nested(value)
    }
    return {**where, **rewritten}


def get_relations_from_where(where: Mapping, relation_properties: Iterable[str]) -> Dict[str, bool]:
    """{"category": {"id": 1}, "title": "x"} -> {"category": True}"""
    relation_properties = set(relation_properties)
    return {key: True for key in where if key in relation_properties}


def merge_relations(*relations: Optional[Relations]) -> List[str]:
    """Union of relation requests given as name lists or ``{name: True}`` mappings."""
    merged: List[str] = []
    for requested in relations:
        if not requested:
            continue
        if isinstance(requested, Mapping):
            names = [name for name, wanted in requested.items() if wanted]
        else:
            names = list(requested)
        for name in names:
            if name not in merged:
                merged.append(name)
    return merged


def _column_clause(column, value: Any) -> ColumnElement:
    if isinstance(value, Mapping):
        if not is_operator_expression(value):
            raise ApiError.bad_request(
                f"Invalid filter for '{column.key}'. Allowed operators: {', '.join(OPERATORS)}."
            )
        return and_(*(OPERATORS[op](column, operand) for op, operand in value.items()))
    if isinstance(value, (list, tuple, set)):
        return column.in_(list(value))
    if value is None:
        return column.is_(None)
    return column == value


def _relation_clause(model, relationship, value: Any) -> ColumnElement:
    target = relationship.mapper.class_
    attribute = getattr(model, relationship.key)
    exists = attribute.any if relationship.uselist else attribute.has

    if value is None:
        return ~exists()
    if isinstance(value, Mapping) and not is_operator_expression(value):
        inner = compile_where(target, value)
    else:
        # Operators and bare ids apply to the related primary key
        inner = [_column_clause(target.id, value)]
    return exists(and_(*inner)) if inner else exists()


def compile_where(model, where: Mapping) -> List[ColumnElement]:
    """
    Compile a normalized filter into WHERE clauses for ``model``.

    Raises:
        ApiError 400: If a key is neither a column nor a relation of ``model``
    """
    mapper = inspect(model)
    relationships = mapper.relationships
    columns = mapper.column_attrs

    clauses: List[ColumnElement] = []
    for key, value in where.items():
        if key in relationships:
            clauses.append(_relation_clause(model, relationships[key], value))
        elif key in columns:
            clauses.append(_column_clause(getattr(model, key), value))
        else:
            raise ApiError.bad_request(f"Unknown filter field '{key}' for {model.__name__}.")
    return clauses
