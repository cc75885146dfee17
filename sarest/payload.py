# -*- coding: utf-8 -*-
#
# Request payload validation
#
# The request documents are validated with pydantic models, attribute values
# are converted to the python type of the model field they're written to
#
import base64
import binascii
import datetime
import decimal
from typing import Any, Dict, List, Optional, Type, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .errors import CrudFailureReason, InvalidValueError, ValidationError
from .model_meta import FieldInfo
from .serialization import parse_datetime


class PermissiveModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class ResourceIdentifier(PermissiveModel):
    type: str
    id: Union[int, str]


class RelationshipDocument(PermissiveModel):
    """
    {"data": null | {"type": .., "id": ..} | [{"type": .., "id": ..}, ...]}
    """

    data: Union[ResourceIdentifier, List[ResourceIdentifier], None]


class ResourceObject(PermissiveModel):
    type: str
    id: Optional[Union[int, str]] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    relationships: Dict[str, RelationshipDocument] = Field(default_factory=dict)


class ResourceDocument(PermissiveModel):
    data: ResourceObject
    meta: Optional[Dict[str, Any]] = None


def format_errors(exc: pydantic.ValidationError) -> List[Dict[str, Any]]:
    return [{"loc": [str(loc) for loc in error["loc"]], "msg": error["msg"], "type": error["type"]} for error in exc.errors()]


def _detail(errors: List[Dict[str, Any]]) -> str:
    return "; ".join(f"{'.'.join(error['loc']) or '(root)'}: {error['msg']}" for error in errors)


def parse_document(model: Type[BaseModel], body: Any) -> Any:
    """
    :param model: ResourceDocument or RelationshipDocument
    :param body: request body
    :return: validated model instance
    :raises ValidationError: invalidPayload
    """
    if body is None:
        raise ValidationError("Request body is missing")
    try:
        return model.model_validate(body)
    except pydantic.ValidationError as exc:
        raise ValidationError(_detail(format_errors(exc)))


def validate_attributes(schema: Type[BaseModel], attributes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate the attributes of a create or update request with a user supplied pydantic model

    :return: the validated attributes, fields that weren't set are omitted
    :raises ValidationError: status 422 with the pydantic errors
    """
    try:
        validated = schema.model_validate(attributes)
    except pydantic.ValidationError as exc:
        errors = format_errors(exc)
        raise ValidationError(
            _detail(errors),
            status_code=422,
            reason=CrudFailureReason.DATA_VALIDATION_VIOLATION,
            validationErrors=errors,
        )
    return validated.model_dump(exclude_unset=True)


def _coerce_scalar(field_type: str, value: Any) -> Any:
    if field_type == "DateTime":
        if isinstance(value, str):
            value = parse_datetime(value)
        if isinstance(value, datetime.datetime) and value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc)
        return value
    if field_type == "Decimal" and not isinstance(value, decimal.Decimal):
        return decimal.Decimal(str(value))
    if field_type == "BigInt" and isinstance(value, str):
        return int(value)
    if field_type == "Bytes" and isinstance(value, str):
        return base64.b64decode(value, validate=True)
    return value


def coerce_attribute(field_info: FieldInfo, value: Any) -> Any:
    """
    Convert a payload attribute value to the type of the field,
    values restored from the serialization meta are passed through

    :raises InvalidValueError: the value doesn't represent the field type
    """
    if value is None:
        return None
    try:
        if field_info.is_array and isinstance(value, list):
            return [_coerce_scalar(field_info.type, item) for item in value]
        return _coerce_scalar(field_info.type, value)
    except (ValueError, TypeError, decimal.InvalidOperation, binascii.Error):
        raise InvalidValueError(f'Invalid value for field "{field_info.name}" of type {field_info.type}')
