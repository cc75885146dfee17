# -*- coding: utf-8 -*-
"""
JSON:API request handler

The host server passes every request for the api endpoint to RequestHandler.handle_request:

    handler = RequestHandler(from_sqlalchemy([User, Post]), "http://localhost/api")
    response = await handler.handle_request(SQLAlchemyClient(session, [User, Post]), "GET", "/post", {"include": "author"})

The response holds the http status and the json document (None for 204 responses).
Request processing is a pipeline: route => compile the query => DbClient call => serialize,
errors raised at any stage are converted to an error document by handle_request.
"""

import logging
import traceback
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel

import sarest
from .client import DbClient
from .config import get_config, is_debug
from .errors import DbError, DbErrorCode, JsonapiError, KnownRequestError, NotFoundError, ValidationError
from .model_meta import ModelMeta
from .payload import RelationshipDocument, ResourceDocument, coerce_attribute, parse_document, validate_attributes
from .query import EMPTY_TREE, QueryArgs, build_relation_include, coerce_id, compile_query, parse_fields, parse_include
from .registry import ModelInfo, RelationshipInfo, build_registry
from .router import Operation, RouteMatch, match_path, resolve_operation
from .serialization import deserialize
from .serializer import Paginator, ResourceSerializer


@dataclass
class Response:
    status: int
    body: Optional[Dict[str, Any]]


class RequestHandler:
    """
    :param model_meta: schema metadata of the exposed models
    :param endpoint: base url of the api, used to create the links
    :param page_size: default and maximum page[limit], math.inf disables pagination
    :param schemas: type name -> {"create": pydantic model, "update": pydantic model} to validate the attributes of writes
    :param logger: logger, defaults to sarest.log
    """

    def __init__(
        self,
        model_meta: ModelMeta,
        endpoint: str,
        page_size: Optional[Union[int, float]] = None,
        schemas: Optional[Mapping[str, Mapping[str, Type[BaseModel]]]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.log = logger or sarest.log
        self.endpoint = endpoint.rstrip("/")
        self.page_size = page_size if page_size is not None else get_config("DEFAULT_PAGE_SIZE")
        self.schemas = schemas or {}
        self.registry = build_registry(model_meta, self.log)
        self.serializer = ResourceSerializer(self.registry, self.endpoint)
        self.operations = {
            Operation.LIST: self.list_resources,
            Operation.READ: self.read_resource,
            Operation.CREATE: self.create_resource,
            Operation.UPDATE: self.update_resource,
            Operation.DELETE: self.delete_resource,
            Operation.READ_RELATED: self.read_related,
            Operation.READ_RELATIONSHIP: self.read_relationship,
            Operation.CONNECT: self.write_relationship,
            Operation.REPLACE: self.write_relationship,
            Operation.DISCONNECT: self.write_relationship,
        }

    async def handle_request(
        self,
        client: DbClient,
        method: str,
        path: str,
        query: Optional[QueryArgs] = None,
        request_body: Any = None,
    ) -> Response:
        """
        :param client: DbClient used to execute the request
        :param method: HTTP verb
        :param path: request path relative to the endpoint, eg. "/user/1/posts"
        :param query: query parameters, a value may be a list for repeated parameters
        :param request_body: parsed json body
        :return: Response
        """
        try:
            route = match_path(path)
            if route is None:
                raise JsonapiError("invalidPath", f"Invalid path {path}")
            operation = resolve_operation(method, route)
            self.log.debug(f"{method} {path}: {operation.value}")
            return await self.operations[operation](client, route, operation, query or {}, request_body)
        except JsonapiError as exc:
            return self.error_response(exc)
        except DbError as exc:
            return self.handle_db_error(exc)
        except Exception as exc:
            self.log.exception(f"Unhandled error while processing {method} {path}: {exc}")
            if is_debug():
                self.log.debug(f"Request query: {query}, body: {request_body}")
            return self.error_response(JsonapiError("unknownError", f"{exc}\n{traceback.format_exc()}"))

    #
    # Error documents
    #
    def error_response(self, exc: JsonapiError) -> Response:
        return Response(exc.status_code, exc.to_document())

    def handle_db_error(self, exc: DbError) -> Response:
        """
        Convert the errors raised by the DbClient
        """
        if isinstance(exc, KnownRequestError):
            self.log.warning(f"Database request error {exc.code}: {exc.message}")
            if exc.code == DbErrorCode.CONSTRAINT_FAILED:
                extra = {"reason": exc.meta["reason"]} if exc.meta.get("reason") else {}
                return self.error_response(JsonapiError("forbidden", exc.message, **extra))
            if exc.code in (DbErrorCode.RECORD_NOT_FOUND, DbErrorCode.REQUIRED_CONNECTED_RECORDS_NOT_FOUND):
                return self.error_response(NotFoundError())
            return self.error_response(JsonapiError("dbError", exc.message, dbCode=exc.code))
        self.log.error(f"Database error: {exc.message}")
        return self.error_response(JsonapiError("dbError", exc.message))

    #
    # Lookups
    #
    def model_info(self, type_name: str, read: bool) -> ModelInfo:
        info = self.registry.get(type_name)
        if info is not None:
            return info
        if type_name in self.registry.excluded:
            raise JsonapiError(self.registry.excluded[type_name], f"Model {type_name} can't be exposed")
        raise JsonapiError("unsupportedModel", f"Model {type_name} is not supported", status_code=None if read else 400)

    def relationship_info(self, info: ModelInfo, name: str, read: bool) -> RelationshipInfo:
        rel_info = info.relationships.get(name)
        if rel_info is None:
            raise JsonapiError("unsupportedRelationship", f"Relationship {info.name}.{name} is not supported", status_code=404 if read else None)
        return rel_info

    def id_filter(self, info: ModelInfo, resource_id: str) -> Dict[str, Any]:
        return {info.id_field: coerce_id(info, resource_id)}

    def resource_url(self, info: ModelInfo, resource_id: Any) -> str:
        return self.serializer.resource_url(info.name, resource_id)

    #
    # GET
    #
    async def list_resources(self, client: DbClient, route: RouteMatch, operation: Operation, query: QueryArgs, body: Any) -> Response:
        info = self.model_info(route.type_name, read=True)
        structured = compile_query(self.registry, info, query, self.page_size)
        args: Dict[str, Any] = {"include": build_relation_include(self.registry, info, structured.include)}
        if structured.filter:
            args["where"] = structured.filter
        if structured.sort:
            args["orderBy"] = list(structured.sort)

        self_link = f"{self.endpoint}/{info.name}"
        paginator = None
        pagination = structured.pagination
        if not pagination.enabled:
            items = await client.find_many(info.name, args)
            total = len(items)
        else:
            items = await client.find_many(info.name, {**args, "skip": pagination.offset, "take": pagination.limit})
            # not in a transaction with find_many, the total may be off when there are concurrent writes
            total = await client.count(info.name, {"where": structured.filter} if structured.filter else {})
            paginator = Paginator(self_link, pagination.offset, pagination.limit, total, query)

        document = self.serializer.serialize(
            info.name,
            items,
            include=structured.include,
            fields=structured.fields,
            self_link=self_link,
            paginator=paginator,
            total=total,
        )
        return Response(200, document)

    async def read_resource(self, client: DbClient, route: RouteMatch, operation: Operation, query: QueryArgs, body: Any) -> Response:
        info = self.model_info(route.type_name, read=True)
        where = self.id_filter(info, route.resource_id)
        include = parse_include(self.registry, info, query)
        item = await client.find_unique(info.name, {"where": where, "include": build_relation_include(self.registry, info, include)})
        if item is None:
            raise NotFoundError()
        document = self.serializer.serialize(
            info.name,
            item,
            include=include,
            fields=parse_fields(query),
            self_link=self.resource_url(info, item[info.id_field]),
        )
        return Response(200, document)

    async def _fetch_related(self, client: DbClient, route: RouteMatch, query: QueryArgs, only_identifier: bool) -> Response:
        info = self.model_info(route.type_name, read=True)
        rel_info = self.relationship_info(info, route.relationship, read=True)
        target = self.registry[rel_info.target_type]
        where = self.id_filter(info, route.resource_id)
        structured = compile_query(self.registry, target, query, self.page_size, include_info=(info, rel_info.name))

        if only_identifier:
            relation_args: Dict[str, Any] = {"select": {target.id_field: True}}
        else:
            relation_args = {"include": build_relation_include(self.registry, target, structured.include)}
        select: Dict[str, Any] = {rel_info.name: relation_args}
        pagination = structured.pagination
        if rel_info.is_collection:
            if structured.filter:
                relation_args["where"] = structured.filter
            if structured.sort:
                relation_args["orderBy"] = list(structured.sort)
            if pagination.enabled:
                relation_args["skip"] = pagination.offset
                relation_args["take"] = pagination.limit
                count_args = {"where": structured.filter} if structured.filter else True
                select["_count"] = {"select": {rel_info.name: count_args}}

        item = await client.find_unique(info.name, {"where": where, "select": select})
        if item is None:
            raise NotFoundError()

        url = self.resource_url(info, route.resource_id)
        self_link = f"{url}/relationships/{rel_info.name}" if only_identifier else f"{url}/{rel_info.name}"
        data = item.get(rel_info.name)
        total = None
        paginator = None
        if rel_info.is_collection:
            data = data or []
            if pagination.enabled:
                total = item["_count"][rel_info.name]
                paginator = Paginator(self_link, pagination.offset, pagination.limit, total, query)
            else:
                total = len(data)

        document = self.serializer.serialize(
            target.name,
            data,
            include=EMPTY_TREE if only_identifier else structured.include,
            fields=structured.fields,
            self_link=self_link,
            paginator=paginator,
            total=total,
            only_identifier=only_identifier,
        )
        return Response(200, document)

    async def read_related(self, client: DbClient, route: RouteMatch, operation: Operation, query: QueryArgs, body: Any) -> Response:
        return await self._fetch_related(client, route, query, only_identifier=False)

    async def read_relationship(self, client: DbClient, route: RouteMatch, operation: Operation, query: QueryArgs, body: Any) -> Response:
        return await self._fetch_related(client, route, query, only_identifier=True)

    #
    # Payloads
    #
    def _parse_resource(self, info: ModelInfo, body: Any) -> ResourceDocument:
        if isinstance(body, dict) and isinstance(body.get("meta"), dict) and body["meta"].get("serialization"):
            body = deserialize(body, body["meta"]["serialization"])
        document = parse_document(ResourceDocument, body)
        if document.data.type != info.name:
            raise ValidationError(f'Resource type "{document.data.type}" doesn\'t match "{info.name}"')
        return document

    def _attributes(self, info: ModelInfo, attributes: Dict[str, Any], kind: str) -> Dict[str, Any]:
        result = {}
        for name, value in attributes.items():
            field_info = info.fields.get(name)
            if field_info is None or field_info.is_data_model:
                raise ValidationError(f'Invalid attribute "{name}" for type {info.name}')
            result[name] = coerce_attribute(field_info, value)
        schema = self.schemas.get(info.name, {}).get(kind)
        if schema is not None:
            result.update(validate_attributes(schema, result))
        return result

    def _linkage(self, rel_info: RelationshipInfo, data: Any) -> List[Dict[str, Any]]:
        """
        :param data: the "data" member of a relationship object
        :return: id filters of the related resources
        """
        if rel_info.is_collection != isinstance(data, list):
            expected = "an array of resource identifiers" if rel_info.is_collection else "a resource identifier or null"
            raise JsonapiError("invalidRelationData", f'Relationship "{rel_info.name}" data must be {expected}')
        target = self.registry[rel_info.target_type]
        identifiers = data if isinstance(data, list) else [data] if data is not None else []
        result = []
        for identifier in identifiers:
            if identifier.type != target.name:
                raise JsonapiError("invalidRelation", f'Invalid type "{identifier.type}" for relationship "{rel_info.name}", expected "{target.name}"')
            result.append(self.id_filter(target, str(identifier.id)))
        return result

    def _relation_write(self, rel_info: RelationshipInfo, data: Any, operation: str) -> Dict[str, Any]:
        """
        :param operation: connect, disconnect or set
        :return: the nested write of the relationship
        """
        wheres = self._linkage(rel_info, data)
        if rel_info.is_collection:
            return {operation: wheres}
        if data is None:
            if not rel_info.is_optional:
                raise ValidationError(f'Relationship "{rel_info.name}" is required')
            return {"disconnect": True}
        return {"connect": wheres[0]}

    #
    # POST, PUT/PATCH, DELETE
    #
    async def create_resource(self, client: DbClient, route: RouteMatch, operation: Operation, query: QueryArgs, body: Any) -> Response:
        info = self.model_info(route.type_name, read=False)
        document = self._parse_resource(info, body)
        resource = document.data
        data = self._attributes(info, resource.attributes, "create")
        if resource.id is not None:
            data[info.id_field] = coerce_id(info, str(resource.id))
        for name, relationship in resource.relationships.items():
            rel_info = self.relationship_info(info, name, read=False)
            if relationship.data is None and not rel_info.is_collection:
                continue
            data[name] = self._relation_write(rel_info, relationship.data, "connect")

        item = await client.create(info.name, {"data": data, "include": build_relation_include(self.registry, info, EMPTY_TREE)})
        self.log.info(f"Created {info.name} {item[info.id_field]}")
        document = self.serializer.serialize(info.name, item, self_link=self.resource_url(info, item[info.id_field]))
        return Response(201, document)

    async def update_resource(self, client: DbClient, route: RouteMatch, operation: Operation, query: QueryArgs, body: Any) -> Response:
        info = self.model_info(route.type_name, read=False)
        where = self.id_filter(info, route.resource_id)
        document = self._parse_resource(info, body)
        resource = document.data
        data = self._attributes(info, resource.attributes, "update")
        for name, relationship in resource.relationships.items():
            rel_info = self.relationship_info(info, name, read=False)
            data[name] = self._relation_write(rel_info, relationship.data, "set")

        item = await client.update(info.name, {"where": where, "data": data, "include": build_relation_include(self.registry, info, EMPTY_TREE)})
        document = self.serializer.serialize(info.name, item, self_link=self.resource_url(info, item[info.id_field]))
        return Response(200, document)

    async def delete_resource(self, client: DbClient, route: RouteMatch, operation: Operation, query: QueryArgs, body: Any) -> Response:
        info = self.model_info(route.type_name, read=False)
        await client.delete(info.name, {"where": self.id_filter(info, route.resource_id)})
        self.log.info(f"Deleted {info.name} {route.resource_id}")
        return Response(204, None)

    async def write_relationship(self, client: DbClient, route: RouteMatch, operation: Operation, query: QueryArgs, body: Any) -> Response:
        """
        POST adds to a to-many relationship, DELETE removes from it and PATCH replaces the relationship
        """
        info = self.model_info(route.type_name, read=False)
        rel_info = self.relationship_info(info, route.relationship, read=False)
        if not rel_info.is_collection and operation != Operation.REPLACE:
            raise JsonapiError("invalidVerb", f'Only PATCH is supported for to-one relationship "{rel_info.name}"')
        where = self.id_filter(info, route.resource_id)
        document = parse_document(RelationshipDocument, body)
        nested_operation = {Operation.CONNECT: "connect", Operation.DISCONNECT: "disconnect", Operation.REPLACE: "set"}[operation]
        target = self.registry[rel_info.target_type]

        item = await client.update(
            info.name,
            {
                "where": where,
                "data": {rel_info.name: self._relation_write(rel_info, document.data, nested_operation)},
                "select": {rel_info.name: {"select": {target.id_field: True}}},
            },
        )
        self_link = f"{self.resource_url(info, route.resource_id)}/relationships/{rel_info.name}"
        document = self.serializer.serialize(target.name, item[rel_info.name], self_link=self_link, only_identifier=True)
        return Response(200, document)
