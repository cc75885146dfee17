# Exception Handlers
#
# Errors detected while processing a request are raised as JsonapiError instances.
# They are caught in RequestHandler.handle_request and formatted as an error document, for example:
# {
#     "errors": [
#         {"status": 400, "code": "invalid-filter", "title": "Invalid filter", "detail": "..."}
#     ]
# }
#
# DbError and its subclasses are raised by DbClient implementations, the request handler
# maps them to an error document as well (cfr. RequestHandler.handle_db_error)
#
import re
from http import HTTPStatus
from typing import Any, Dict, Optional
from sqlalchemy.exc import DontWrapMixin
import sarest

# name: (status, title, default detail)
ERRORS = {
    "invalidPath": (HTTPStatus.BAD_REQUEST.value, "The request path is invalid", None),
    "invalidVerb": (HTTPStatus.BAD_REQUEST.value, "The HTTP verb is not supported", None),
    "unsupportedModel": (HTTPStatus.NOT_FOUND.value, "Unsupported model type", "The model type is not supported"),
    "unsupportedRelationship": (HTTPStatus.BAD_REQUEST.value, "Unsupported relationship", "The relationship is not supported"),
    "notFound": (HTTPStatus.NOT_FOUND.value, "Resource not found", None),
    "noId": (HTTPStatus.BAD_REQUEST.value, "Model without an ID field is not supported", None),
    "multiId": (HTTPStatus.BAD_REQUEST.value, "Model with multiple ID fields is not supported", None),
    "invalidId": (HTTPStatus.BAD_REQUEST.value, "Resource ID is invalid", None),
    "invalidPayload": (HTTPStatus.BAD_REQUEST.value, "Invalid payload", None),
    "invalidRelationData": (HTTPStatus.BAD_REQUEST.value, "Invalid relation data", "Invalid relationship data"),
    "invalidRelation": (HTTPStatus.BAD_REQUEST.value, "Invalid relation", "Invalid relationship"),
    "invalidFilter": (HTTPStatus.BAD_REQUEST.value, "Invalid filter", None),
    "invalidSort": (HTTPStatus.BAD_REQUEST.value, "Invalid sort", None),
    "invalidValue": (HTTPStatus.BAD_REQUEST.value, "Invalid value for type", None),
    "forbidden": (HTTPStatus.FORBIDDEN.value, "Operation is forbidden", None),
    "validationError": (HTTPStatus.UNPROCESSABLE_ENTITY.value, "Operation is unprocessable due to validation errors", None),
    "dbError": (HTTPStatus.BAD_REQUEST.value, "Database error", None),
    "unknownError": (HTTPStatus.BAD_REQUEST.value, "Unknown error", None),
}


def param_case(name: str) -> str:
    """invalidPath => invalid-path"""
    return re.sub(r"(?<!^)(?=[A-Z])", "-", name).lower()


class CrudFailureReason:
    """
    Values of the "reason" member of an error object
    """

    ACCESS_POLICY_VIOLATION = "ACCESS_POLICY_VIOLATION"
    RESULT_NOT_READABLE = "RESULT_NOT_READABLE"
    DATA_VALIDATION_VIOLATION = "DATA_VALIDATION_VIOLATION"


class JsonapiError(Exception, DontWrapMixin):
    """
    This exception is raised when a request can't be processed,
    it will be returned to the client as a JSON:API error document

    :param name: error name, one of the keys of ERRORS
    :param detail: contextual error detail, the default detail of the error is used if None
    :param status_code: HTTP status code, overrides the default status of the error
    :param extra: additional members of the error object, eg. reason
    """

    name = "unknownError"

    def __init__(self, name: Optional[str] = None, detail: Optional[str] = None, status_code: Optional[int] = None, **extra: Any) -> None:
        if name is not None:
            self.name = name
        default_status, self.title, default_detail = ERRORS[self.name]
        self.status_code = status_code or default_status
        self.code = param_case(self.name)
        self.detail = detail if detail is not None else default_detail
        self.extra = extra
        self.message = f"{self.title}: {self.detail}" if self.detail else self.title
        Exception.__init__(self, self.message)
        sarest.log.debug("%s (%s): %s", self.name, self.status_code, self.message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"status": self.status_code, "code": self.code, "title": self.title}
        if self.detail:
            result["detail"] = self.detail
        result.update(self.extra)
        return result

    def to_document(self) -> Dict[str, Any]:
        return {"errors": [self.to_dict()]}


class NotFoundError(JsonapiError):
    """
    This exception is raised when an item was not found
    """

    name = "notFound"


class ValidationError(JsonapiError):
    """
    This exception is raised when invalid input has been detected in the request payload
    """

    name = "invalidPayload"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None, **extra: Any) -> None:
        super().__init__(self.name, detail, status_code, **extra)
        sarest.log.warning("ValidationError: %s", detail)


class InvalidValueError(JsonapiError):
    """
    This exception is raised when a value can't be coerced to the declared type of a field,
    it is distinct from the query grammar errors (invalidFilter, invalidSort)
    """

    name = "invalidValue"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(self.name, detail)


#
# Database client errors
#
class DbErrorCode:
    """
    Error codes of KnownRequestError, these are the Prisma error codes
    """

    UNIQUE_CONSTRAINT_FAILED = "P2002"
    FOREIGN_KEY_CONSTRAINT_FAILED = "P2003"
    CONSTRAINT_FAILED = "P2004"
    NULL_CONSTRAINT_VIOLATION = "P2011"
    REQUIRED_CONNECTED_RECORDS_NOT_FOUND = "P2018"
    RECORD_NOT_FOUND = "P2025"


class DbError(Exception):
    """
    Base class of the errors raised by a DbClient
    """

    def __init__(self, message: str = "") -> None:
        Exception.__init__(self, message)
        self.message = message


class KnownRequestError(DbError):
    """
    The database rejected the request for a known reason

    :param message: error message
    :param code: one of the DbErrorCode values
    :param meta: additional information, eg. {"reason": CrudFailureReason.ACCESS_POLICY_VIOLATION}
    """

    def __init__(self, message: str, code: str, meta: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.meta = meta or {}


class UnknownRequestError(DbError):
    """
    The database failed for an unknown reason
    """


class DbValidationError(DbError):
    """
    The arguments passed to the DbClient are invalid
    """
