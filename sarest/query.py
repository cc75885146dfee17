# -*- coding: utf-8 -*-
"""
Query string compiler

The JSON:API query parameters (filter[], sort, include, fields[], page[]) are compiled to
the arguments passed to the DbClient. The functions in this module are pure: they return new
structures and never modify their input.
"""

import re
import math
import datetime
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .errors import InvalidValueError, JsonapiError
from .serialization import parse_datetime
from .registry import ModelInfo, Registry

QueryArgs = Mapping[str, Union[str, Sequence[str]]]

FILTER_OPERATIONS = (
    "lt",
    "lte",
    "gt",
    "gte",
    "contains",
    "icontains",
    "search",
    "startsWith",
    "endsWith",
    "has",
    "hasEvery",
    "hasSome",
    "isEmpty",
)

FILTER_KEY = re.compile(r"^filter((\[[^\[\]]+\])+)$")
FILTER_SEGMENT = re.compile(r"\[([^\[\]]+)\]")
FIELDS_KEY = re.compile(r"^fields\[([^\[\]]+)\]$")

EMPTY_TREE: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class Pagination:
    offset: int = 0
    limit: Union[int, float] = math.inf

    @property
    def enabled(self) -> bool:
        return self.limit != math.inf


@dataclass(frozen=True)
class StructuredQuery:
    """
    The compiled query parameters of a request

    :param filter: where clause, None when no filter was requested
    :param sort: list of orderBy items, in the requested order
    :param include: relation tree, eg. {"posts": {"comments": {}}}
    :param fields: type name -> attribute names to serialize
    :param pagination: Pagination
    """

    filter: Optional[Dict[str, Any]] = None
    sort: Tuple[Dict[str, Any], ...] = ()
    include: Mapping[str, Any] = field(default_factory=lambda: EMPTY_TREE)
    fields: Mapping[str, frozenset] = field(default_factory=lambda: MappingProxyType({}))
    pagination: Pagination = Pagination()


def query_values(query: Optional[QueryArgs], key: str) -> List[str]:
    """
    :return: the values of a query parameter as a list, a parameter can be repeated
    """
    if not query or key not in query:
        return []
    value = query[key]
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


def split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


#
# Value coercion
#
def coerce(field_type: str, value: str) -> Any:
    """
    Convert a query string value to the declared type of a field

    :param field_type: scalar type name, eg. "Int"
    :param value: string value
    :raises InvalidValueError: the value doesn't represent the type
    """
    try:
        if field_type in ("Int", "BigInt"):
            return int(value)
        if field_type == "Float":
            return float(value)
        if field_type == "Decimal":
            return Decimal(value)
        if field_type == "Boolean":
            if value in ("true", "false"):
                return value == "true"
            raise ValueError(value)
        if field_type == "DateTime":
            parsed = parse_datetime(value)
            return parsed.astimezone(datetime.timezone.utc) if parsed.tzinfo is not None else parsed
    except (ValueError, InvalidOperation):
        raise InvalidValueError(f'Invalid value "{value}" for type {field_type}')
    return value


def coerce_id(info: ModelInfo, resource_id: str) -> Any:
    """
    :return: the resource id of a request path, converted to the type of the id field
    """
    try:
        return coerce(info.id_field_type, resource_id)
    except InvalidValueError:
        raise JsonapiError("invalidId", f'Invalid id "{resource_id}" for type {info.name}')


#
# filter[...]
#
def _relation_identity_filter(registry: Registry, rel_info, value: str) -> Dict[str, Any]:
    target = registry[rel_info.target_type]
    if rel_info.is_collection:
        values = split_list(value)
        if len(values) > 1:
            return {"some": {"OR": [{target.id_field: coerce(target.id_field_type, v)} for v in values]}}
        return {"some": {target.id_field: coerce(target.id_field_type, value)}}
    return {"is": {target.id_field: coerce(target.id_field_type, value)}}


def _filter_operation(field_info, op: str, value: str) -> Dict[str, Any]:
    field_type = field_info.type
    if op == "icontains":
        return {"contains": coerce(field_type, value), "mode": "insensitive"}
    if op in ("hasSome", "hasEvery"):
        return {op: [coerce(field_type, v) for v in split_list(value)]}
    if op == "isEmpty":
        if value not in ("true", "false"):
            raise InvalidValueError(f'Invalid value "{value}" for isEmpty, expected true or false')
        return {"isEmpty": value == "true"}
    return {op: coerce(field_type, value)}


def _filter_item(registry: Registry, info: ModelInfo, segments: Sequence[str], value: str) -> Dict[str, Any]:
    """
    Compile one filter[a][b$op] item, recursing through the relations of the path
    """
    segment, rest = segments[0], segments[1:]
    name, _, op = segment.partition("$")
    if op and rest:
        raise JsonapiError("invalidFilter", f'Operation "{op}" is only allowed on the last filter segment')
    if op and op not in FILTER_OPERATIONS:
        raise JsonapiError("invalidFilter", f'Invalid filter operation "{op}"')

    if name == "id":
        name = info.id_field
    field_info = info.fields.get(name)
    if field_info is None:
        raise JsonapiError("invalidFilter", f'Invalid filter field "{name}" for type {info.name}')

    if field_info.is_data_model:
        rel_info = info.relationships.get(name)
        if rel_info is None:
            raise JsonapiError("invalidFilter", f'Relationship "{name}" can\'t be used in a filter')
        if not rest:
            if op:
                raise JsonapiError("invalidFilter", f'Operation "{op}" is not allowed on relationship "{name}"')
            return {name: _relation_identity_filter(registry, rel_info, value)}
        nested = _filter_item(registry, registry[rel_info.target_type], rest, value)
        return {name: {"some": nested} if rel_info.is_collection else {"is": nested}}

    if rest:
        raise JsonapiError("invalidFilter", f'Field "{name}" is not a relationship')
    if op:
        return {name: _filter_operation(field_info, op, value)}
    if name == info.id_field:
        values = split_list(value)
        if len(values) > 1:
            return {name: {"in": [coerce(field_info.type, v) for v in values]}}
    return {name: {"equals": coerce(field_info.type, value)}}


def parse_filter(registry: Registry, info: ModelInfo, query: Optional[QueryArgs]) -> Optional[Dict[str, Any]]:
    """
    Compile the filter[] parameters

    :return: the where clause, items are combined with AND, None if there's no filter
    """
    items = []
    for key in query or {}:
        match = FILTER_KEY.match(key)
        if not match:
            continue
        segments = FILTER_SEGMENT.findall(match.group(1))
        for value in query_values(query, key):
            items.append(_filter_item(registry, info, segments, value))
    if not items:
        return None
    if len(items) == 1:
        return items[0]
    return {"AND": items}


#
# sort=
#
def _sort_item(registry: Registry, info: ModelInfo, key: str) -> Dict[str, Any]:
    direction = "asc"
    if key.startswith("-"):
        direction = "desc"
        key = key[1:]
    path = key.split(".")
    if len(path) > 2:
        raise JsonapiError("invalidSort", f'Sorting by "{key}" is not supported, only one relationship can be traversed')

    name = path[0]
    field_info = info.fields.get(name)
    if field_info is None:
        raise JsonapiError("invalidSort", f'Invalid sort field "{name}" for type {info.name}')
    if field_info.is_array:
        raise JsonapiError("invalidSort", f'Sorting by collection "{name}" is not supported')

    if not field_info.is_data_model:
        if len(path) > 1:
            raise JsonapiError("invalidSort", f'Field "{name}" is not a relationship')
        return {name: direction}

    rel_info = info.relationships.get(name)
    if rel_info is None:
        raise JsonapiError("invalidSort", f'Relationship "{name}" can\'t be used to sort')
    target = registry[rel_info.target_type]
    if len(path) == 1:
        # sort by the id of the related resource
        return {name: {target.id_field: direction}}
    target_field = target.fields.get(path[1])
    if target_field is None or target_field.is_data_model or target_field.is_array:
        raise JsonapiError("invalidSort", f'Invalid sort field "{path[1]}" for type {target.name}')
    return {name: {target_field.name: direction}}


def parse_sort(registry: Registry, info: ModelInfo, query: Optional[QueryArgs]) -> Tuple[Dict[str, Any], ...]:
    """
    Compile the sort parameter(s), "sort=title,-author.email"

    :return: orderBy items, in the requested order
    """
    result = []
    for value in query_values(query, "sort"):
        for key in split_list(value):
            result.append(_sort_item(registry, info, key))
    return tuple(result)


#
# include=
#
def _add_path(registry: Registry, info: ModelInfo, tree: Mapping[str, Any], path: Sequence[str]) -> Mapping[str, Any]:
    if not path:
        return tree
    name = path[0]
    rel_info = info.relationships.get(name)
    if rel_info is None:
        raise JsonapiError("unsupportedRelationship", f'Relationship "{name}" of type {info.name} is not supported')
    subtree = _add_path(registry, registry[rel_info.target_type], tree.get(name, EMPTY_TREE), path[1:])
    return MappingProxyType({**tree, name: subtree})


def parse_include(registry: Registry, info: ModelInfo, query: Optional[QueryArgs]) -> Mapping[str, Any]:
    """
    Compile the include parameter, "include=author,comments.author"

    :return: immutable relation tree, eg. {"author": {}, "comments": {"author": {}}}
    """
    tree = EMPTY_TREE
    for value in query_values(query, "include"):
        for path in split_list(value):
            tree = _add_path(registry, info, tree, path.split("."))
    return tree


def build_relation_include(registry: Registry, info: ModelInfo, include_tree: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Create the select arguments for the relations of a type:
    the ids of all relations are selected, included relations are loaded recursively

    :return: eg. {"author": {"select": {"myId": True}}, "comments": {"include": {...}}}
    """
    result: Dict[str, Any] = {}
    for name, rel_info in info.relationships.items():
        if name in include_tree:
            target = registry[rel_info.target_type]
            result[name] = {"include": build_relation_include(registry, target, include_tree[name])}
        else:
            result[name] = {"select": {rel_info.id_field: True}}
    return result


#
# fields[type]=
#
def parse_fields(query: Optional[QueryArgs]) -> Mapping[str, frozenset]:
    result: Dict[str, Set[str]] = {}
    for key in query or {}:
        match = FIELDS_KEY.match(key)
        if not match:
            continue
        type_name = match.group(1)
        names: Set[str] = result.setdefault(type_name, set())
        for value in query_values(query, key):
            names.update(split_list(value))
    return MappingProxyType({type_name: frozenset(names) for type_name, names in result.items()})


#
# page[offset], page[limit]
#
def _parse_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def parse_pagination(query: Optional[QueryArgs], page_size: Union[int, float]) -> Pagination:
    """
    :param page_size: maximum and default page[limit], math.inf disables pagination
    :return: Pagination
    """
    if page_size == math.inf:
        return Pagination(0, math.inf)

    offset_values = query_values(query, "page[offset]")
    offset = _parse_int(offset_values[-1] if offset_values else None)
    if offset is None or offset < 0:
        offset = 0

    limit_values = query_values(query, "page[limit]")
    limit = _parse_int(limit_values[-1] if limit_values else None)
    if limit is None or limit <= 0:
        limit = page_size
    return Pagination(offset, min(limit, page_size))


def compile_query(
    registry: Registry,
    info: ModelInfo,
    query: Optional[QueryArgs],
    page_size: Union[int, float],
    include_info: Optional[Tuple[ModelInfo, str]] = None,
) -> StructuredQuery:
    """
    Compile all query parameters of a request

    :param info: the type of the primary data
    :param include_info: (parent type, relationship) when fetching related resources,
        include paths are then relative to the parent type, eg. /user/1/posts?include=posts.comments
    :return: StructuredQuery
    """
    if include_info is None:
        include = parse_include(registry, info, query)
    else:
        parent_info, relationship = include_info
        include = parse_include(registry, parent_info, query).get(relationship, EMPTY_TREE)
    return StructuredQuery(
        filter=parse_filter(registry, info, query),
        sort=parse_sort(registry, info, query),
        include=include,
        fields=parse_fields(query),
        pagination=parse_pagination(query, page_size),
    )
