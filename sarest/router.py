# -*- coding: utf-8 -*-
#
# URL routing: the path of a request is matched against the four JSON:API url shapes
#
#   /{type}                                  collection
#   /{type}/{id}                             single resource
#   /{type}/{id}/{relationship}              related resource(s)
#   /{type}/{id}/relationships/{relationship} relationship linkage
#
import re
from enum import Enum
from typing import NamedTuple, Optional
from urllib.parse import unquote

from .errors import JsonapiError


class PathShape(str, Enum):
    COLLECTION = "collection"
    SINGLE = "single"
    FETCH_RELATED = "fetch_related"
    RELATIONSHIP = "relationship"


class Operation(str, Enum):
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    READ_RELATED = "read_related"
    READ_RELATIONSHIP = "read_relationship"
    CONNECT = "connect"
    REPLACE = "replace"
    DISCONNECT = "disconnect"


class RouteMatch(NamedTuple):
    shape: PathShape
    type_name: str
    resource_id: Optional[str] = None
    relationship: Optional[str] = None


SEGMENT = r"([^/]+)"
PATTERNS = [
    (PathShape.RELATIONSHIP, re.compile(rf"^/?{SEGMENT}/{SEGMENT}/relationships/{SEGMENT}/?$")),
    (PathShape.FETCH_RELATED, re.compile(rf"^/?{SEGMENT}/{SEGMENT}/{SEGMENT}/?$")),
    (PathShape.SINGLE, re.compile(rf"^/?{SEGMENT}/{SEGMENT}/?$")),
    (PathShape.COLLECTION, re.compile(rf"^/?{SEGMENT}/?$")),
]

VERBS = {"GET", "POST", "PUT", "PATCH", "DELETE"}

VERB_MATRIX = {
    PathShape.COLLECTION: {"GET": Operation.LIST, "POST": Operation.CREATE},
    PathShape.SINGLE: {"GET": Operation.READ, "PUT": Operation.UPDATE, "PATCH": Operation.UPDATE, "DELETE": Operation.DELETE},
    PathShape.FETCH_RELATED: {"GET": Operation.READ_RELATED},
    PathShape.RELATIONSHIP: {
        "GET": Operation.READ_RELATIONSHIP,
        "POST": Operation.CONNECT,
        "PUT": Operation.REPLACE,
        "PATCH": Operation.REPLACE,
        "DELETE": Operation.DISCONNECT,
    },
}


def match_path(path: str) -> Optional[RouteMatch]:
    """
    :param path: request path relative to the api endpoint, eg. "/post/1/relationships/author"
    :return: RouteMatch with url-decoded segments or None if the path doesn't have a JSON:API shape
    """
    for shape, pattern in PATTERNS:
        match = pattern.match(path or "")
        if match is None:
            continue
        segments = [unquote(segment) for segment in match.groups()]
        return RouteMatch(shape, *segments)
    return None


def resolve_operation(method: str, route: RouteMatch) -> Operation:
    """
    :param method: HTTP verb
    :param route: matched path
    :return: the operation for the verb/shape combination
    :raises JsonapiError: invalidVerb for unknown verbs, invalidPath for a verb the path shape doesn't accept
    """
    verb = (method or "").upper()
    if verb not in VERBS:
        raise JsonapiError("invalidVerb", f"Unsupported HTTP verb {method}")
    operation = VERB_MATRIX[route.shape].get(verb)
    if operation is None:
        raise JsonapiError("invalidPath", f"{verb} is not allowed on a {route.shape.value} path")
    return operation
