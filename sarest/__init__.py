# flake8: noqa: F401
#
# config must be imported first: the other modules log with sarest.log
#
from .config import log, SARest, get_config, is_debug
from .errors import (
    JsonapiError,
    NotFoundError,
    ValidationError,
    InvalidValueError,
    CrudFailureReason,
    DbError,
    DbErrorCode,
    KnownRequestError,
    UnknownRequestError,
    DbValidationError,
)
from .model_meta import FieldInfo, ModelMeta, from_sqlalchemy
from .registry import build_registry, Registry, ModelInfo, RelationshipInfo
from .client import DbClient
from .sqla_client import SQLAlchemyClient
from .handler import RequestHandler, Response
from .__about__ import __version__, __description__

__all__ = (
    "__version__",
    "__description__",
    # config
    "log",
    "SARest",
    "get_config",
    "is_debug",
    # schema:
    "FieldInfo",
    "ModelMeta",
    "from_sqlalchemy",
    "build_registry",
    "Registry",
    "ModelInfo",
    "RelationshipInfo",
    # request handling:
    "RequestHandler",
    "Response",
    "DbClient",
    "SQLAlchemyClient",
    # Errors:
    "JsonapiError",
    "NotFoundError",
    "ValidationError",
    "InvalidValueError",
    "CrudFailureReason",
    "DbError",
    "DbErrorCode",
    "KnownRequestError",
    "UnknownRequestError",
    "DbValidationError",
)
