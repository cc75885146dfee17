# -*- coding: utf-8 -*-
"""
JSON:API document serialization

The DbClient returns plain dicts, the ResourceSerializer converts them to
resource objects, compound documents and pagination links.
"""

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlencode

from .config import get_config
from .query import EMPTY_TREE, QueryArgs, query_values
from .registry import ModelInfo, Registry
from .serialization import BigInt, serialize

PAGE_ARGS = ("page[offset]", "page[limit]")


class Paginator:
    """
    Creates the first/last/prev/next links of a paginated collection.
    The query parameters of the request, other than page[offset] and page[limit], are kept in the links
    """

    def __init__(self, base_url: str, offset: int, limit: int, total: int, query: Optional[QueryArgs] = None) -> None:
        self.base_url = base_url
        self.offset = offset
        self.limit = limit
        self.total = total
        self.query = query or {}

    def get_link(self, **page: int) -> str:
        args: List[Tuple[str, str]] = []
        for key in self.query:
            if key in PAGE_ARGS:
                continue
            args.extend((key, value) for value in query_values(self.query, key))
        args.extend((f"page[{name}]", str(value)) for name, value in page.items())
        return f"{self.base_url}?{urlencode(args)}"

    def links(self) -> Dict[str, Optional[str]]:
        offset, limit, total = self.offset, self.limit, self.total
        last_offset = max(math.ceil(total / limit) - 1, 0) * limit
        prev_offset = offset - limit
        next_offset = offset + limit
        return {
            "first": self.get_link(limit=limit),
            "last": self.get_link(offset=last_offset),
            "prev": self.get_link(offset=prev_offset, limit=limit) if 0 <= prev_offset <= total - 1 else None,
            "next": self.get_link(offset=next_offset, limit=limit) if next_offset <= total - 1 else None,
        }


class ResourceSerializer:
    """
    Serializes the items returned by the DbClient for one of the registered types

    :param registry: Registry
    :param endpoint: base url of the api, eg. "http://localhost/api"
    """

    def __init__(self, registry: Registry, endpoint: str) -> None:
        self.registry = registry
        self.endpoint = endpoint.rstrip("/")

    def resource_url(self, type_name: str, resource_id: Any) -> str:
        return f"{self.endpoint}/{type_name}/{resource_id}"

    @staticmethod
    def _typed(field_type: str, value: Any) -> Any:
        if field_type != "BigInt":
            return value
        if isinstance(value, list):
            return [BigInt(item) if isinstance(item, int) else item for item in value]
        return BigInt(value) if isinstance(value, int) and not isinstance(value, bool) else value

    def identifier(self, info: ModelInfo, item: Mapping[str, Any]) -> Dict[str, Any]:
        return {"type": info.name, "id": self._typed(info.id_field_type, item[info.id_field])}

    def _relationships(self, info: ModelInfo, item: Mapping[str, Any], self_url: str) -> Dict[str, Any]:
        result = {}
        for name, rel_info in info.relationships.items():
            relationship: Dict[str, Any] = {
                "links": {
                    "self": f"{self_url}/relationships/{name}",
                    "related": f"{self_url}/{name}",
                }
            }
            if name in item:
                target = self.registry[rel_info.target_type]
                value = item[name]
                if rel_info.is_collection:
                    relationship["data"] = [self.identifier(target, related) for related in value or []]
                else:
                    relationship["data"] = self.identifier(target, value) if value is not None else None
            result[name] = relationship
        return result

    def resource(self, type_name: str, item: Mapping[str, Any], fields: Mapping[str, frozenset], only_identifier: bool = False) -> Dict[str, Any]:
        """
        :param item: dict returned by the DbClient
        :param fields: sparse fieldsets, type name -> attribute names
        :return: the resource object
        """
        info = self.registry[type_name]
        result = self.identifier(info, item)
        if only_identifier:
            return result

        projection = fields.get(type_name)
        attributes = {}
        for name in info.attribute_names:
            if name not in item or (projection is not None and name not in projection):
                continue
            attributes[name] = self._typed(info.fields[name].type, item[name])

        self_url = self.resource_url(type_name, item[info.id_field])
        result["attributes"] = attributes
        result["relationships"] = self._relationships(info, item, self_url)
        result["links"] = {"self": self_url}
        return result

    def _included(
        self, type_name: str, items: Sequence[Mapping[str, Any]], include: Mapping[str, Any], fields: Mapping[str, frozenset]
    ) -> List[Dict[str, Any]]:
        """
        Collect the included resources level by level, each resource is added once
        and resources of the primary data are never included
        """
        info = self.registry[type_name]
        seen = {(type_name, str(item[info.id_field])) for item in items}
        result = []
        level = [(type_name, item, include) for item in items]
        while level:
            next_level = []
            for item_type, item, tree in level:
                item_info = self.registry[item_type]
                for name, subtree in tree.items():
                    rel_info = item_info.relationships[name]
                    value = item.get(name)
                    related_items = value if isinstance(value, list) else [value] if value is not None else []
                    target = self.registry[rel_info.target_type]
                    for related in related_items:
                        key = (target.name, str(related[target.id_field]))
                        if key not in seen:
                            seen.add(key)
                            result.append(self.resource(target.name, related, fields))
                        next_level.append((target.name, related, subtree))
            level = next_level
        return result

    def serialize(
        self,
        type_name: str,
        data: Union[None, Mapping[str, Any], Sequence[Mapping[str, Any]]],
        *,
        include: Mapping[str, Any] = EMPTY_TREE,
        fields: Optional[Mapping[str, frozenset]] = None,
        self_link: Optional[str] = None,
        paginator: Optional[Paginator] = None,
        total: Optional[int] = None,
        only_identifier: bool = False,
    ) -> Dict[str, Any]:
        """
        Create a JSON:API document

        :param type_name: type of the primary data
        :param data: a single item, a list of items or None
        :param include: relation tree of the resources to include
        :param fields: sparse fieldsets
        :param self_link: top level self link
        :param paginator: Paginator for paginated collections
        :param total: total number of items of a collection, added to meta
        :param only_identifier: serialize resource identifiers only (relationship documents)
        :return: json encodable document, non-json values are annotated in meta.serialization
        """
        fields = fields or {}
        items = [] if data is None else list(data) if isinstance(data, (list, tuple)) else [data]

        document: Dict[str, Any] = {"jsonapi": {"version": get_config("JSONAPI_VERSION")}}
        resources = [self.resource(type_name, item, fields, only_identifier) for item in items]
        document["data"] = resources if isinstance(data, (list, tuple)) else (resources[0] if resources else None)

        if include and not only_identifier:
            document["included"] = self._included(type_name, items, include, fields)

        links: Dict[str, Any] = {}
        if self_link:
            links["self"] = self_link
        if paginator is not None:
            links.update(paginator.links())
        if links:
            document["links"] = links

        meta: Dict[str, Any] = {}
        if total is not None:
            meta["total"] = total
        if meta:
            document["meta"] = meta

        document, serialization_meta = serialize(document)
        if serialization_meta:
            document.setdefault("meta", {})["serialization"] = serialization_meta
        return document
