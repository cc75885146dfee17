# -*- coding: utf-8 -*-
"""
Schema metadata consumed by the request handler

The metadata is a mapping of model name -> field name -> FieldInfo,
it can be declared by hand or derived from SQLAlchemy declarative models with `from_sqlalchemy`
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Type

import sqlalchemy
from sqlalchemy.orm.interfaces import MANYTOONE
from sqlalchemy.sql import sqltypes

import sarest

SCALAR_TYPES = ("String", "Int", "BigInt", "Float", "Decimal", "Boolean", "DateTime", "Bytes", "Json")


@dataclass(frozen=True)
class FieldInfo:
    """
    Metadata of a model field

    :param name: field name
    :param type: one of SCALAR_TYPES, or the name of the related model for relation fields
    :param is_id: the field is (part of) the model identifier
    :param is_data_model: the field is a relation to another model
    :param is_array: list field, for relations this means a to-many relation
    :param is_optional: the field can be null
    """

    name: str
    type: str
    is_id: bool = False
    is_data_model: bool = False
    is_array: bool = False
    is_optional: bool = False


@dataclass(frozen=True)
class ModelMeta:
    fields: Mapping[str, Mapping[str, FieldInfo]]

    @classmethod
    def from_dict(cls, fields: Dict[str, Dict[str, FieldInfo]]) -> "ModelMeta":
        return cls(MappingProxyType({model: MappingProxyType(dict(model_fields)) for model, model_fields in fields.items()}))


def get_id_fields(model_meta: ModelMeta, model: str) -> List[FieldInfo]:
    """
    :param model: model name
    :return: the id fields of the model, an empty list if the model is unknown
    """
    return [field for field in model_meta.fields.get(model, {}).values() if field.is_id]


def _column_type(column: Any) -> Tuple[str, bool]:
    """
    :param column: SQLAlchemy column
    :return: (scalar type name, is_array)
    """
    col_type = column.type
    is_array = False
    if isinstance(col_type, sqltypes.ARRAY):
        col_type = col_type.item_type
        is_array = True
    # order matters: Boolean/BigInteger/Float are checked before their base classes
    if isinstance(col_type, sqltypes.Boolean):
        result = "Boolean"
    elif isinstance(col_type, sqltypes.BigInteger):
        result = "BigInt"
    elif isinstance(col_type, sqltypes.Integer):
        result = "Int"
    elif isinstance(col_type, sqltypes.Float):
        result = "Float"
    elif isinstance(col_type, sqltypes.Numeric):
        result = "Decimal" if col_type.asdecimal else "Float"
    elif isinstance(col_type, (sqltypes.DateTime, sqltypes.Date)):
        result = "DateTime"
    elif isinstance(col_type, (sqltypes.LargeBinary, sqltypes.BINARY, sqltypes.VARBINARY)):
        result = "Bytes"
    elif isinstance(col_type, sqltypes.JSON):
        result = "Json"
    else:
        result = "String"
    return result, is_array


def _relationship_is_optional(rel: Any) -> bool:
    if rel.direction is MANYTOONE:
        return any(column.nullable for column in rel.local_columns)
    # the other side of a one-to-one or a collection
    return True


def model_fields(Model: Type[Any]) -> Dict[str, FieldInfo]:
    """
    :param Model: SQLAlchemy declarative class
    :return: mapping of attribute name -> FieldInfo
    """
    mapper = sqlalchemy.inspect(Model)
    fields: Dict[str, FieldInfo] = {}
    for prop in mapper.column_attrs:
        column = prop.columns[0]
        field_type, is_array = _column_type(column)
        fields[prop.key] = FieldInfo(
            name=prop.key,
            type=field_type,
            is_id=bool(column.primary_key),
            is_array=is_array,
            is_optional=bool(column.nullable) and not column.primary_key,
        )
    for rel in mapper.relationships:
        fields[rel.key] = FieldInfo(
            name=rel.key,
            type=rel.mapper.class_.__name__,
            is_data_model=True,
            is_array=bool(rel.uselist),
            is_optional=_relationship_is_optional(rel),
        )
    return fields


def from_sqlalchemy(models: Iterable[Type[Any]]) -> ModelMeta:
    """
    Create the schema metadata for the given SQLAlchemy models

    :param models: SQLAlchemy declarative classes
    :return: ModelMeta with the model class names as keys
    """
    result = {}
    for Model in models:
        result[Model.__name__] = model_fields(Model)
        sarest.log.debug(f"Model metadata for {Model.__name__}: {list(result[Model.__name__])}")
    return ModelMeta.from_dict(result)
