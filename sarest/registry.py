# -*- coding: utf-8 -*-
"""
Type/relationship registry

The registry is built once from the schema metadata, when the request handler is created.
Every JSON:API resource type maps to a ModelInfo that holds the identifier field,
the fields and the relationships of the type.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, Optional

import sarest
from .model_meta import FieldInfo, ModelMeta, get_id_fields


def lower_case_first(name: str) -> str:
    """PostLike => postLike"""
    return name[:1].lower() + name[1:]


@dataclass(frozen=True)
class RelationshipInfo:
    name: str
    target_type: str
    id_field: str
    id_field_type: str
    is_collection: bool
    is_optional: bool


@dataclass(frozen=True)
class ModelInfo:
    name: str
    id_field: str
    id_field_type: str
    fields: Mapping
    relationships: Mapping

    @property
    def attribute_names(self):
        """Names of the fields serialized as attributes"""
        return [name for name, field in self.fields.items() if not field.is_data_model and name != self.id_field]


class Registry(Mapping):
    """
    Immutable mapping of resource type name -> ModelInfo

    `excluded` holds the names of the types that were skipped, with the error name ("noId" or "multiId")
    """

    def __init__(self, models: Dict[str, ModelInfo], excluded: Dict[str, str]) -> None:
        self._models = MappingProxyType(dict(models))
        self.excluded = MappingProxyType(dict(excluded))

    def __getitem__(self, type_name: str) -> ModelInfo:
        return self._models[type_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def __repr__(self) -> str:
        return f"<Registry {list(self._models)}>"


def _single_id_field(model_meta: ModelMeta, model: str, log: logging.Logger) -> Optional[FieldInfo]:
    id_fields = get_id_fields(model_meta, model)
    if len(id_fields) == 1:
        return id_fields[0]
    if not id_fields:
        log.warning(f"Model {model} has no id field, it is not exposed")
    else:
        log.warning(f"Model {model} has multiple id fields ({', '.join(f.name for f in id_fields)}), it is not exposed")
    return None


def build_registry(model_meta: ModelMeta, logger: Optional[logging.Logger] = None) -> Registry:
    """
    Derive the resource types from the schema metadata.
    Models without exactly one id field and relationships to such models are skipped with a warning.

    :param model_meta: schema metadata
    :param logger: logger for the warnings, defaults to sarest.log
    :return: Registry
    """
    log = logger or sarest.log
    models: Dict[str, ModelInfo] = {}
    excluded: Dict[str, str] = {}

    for model, fields in model_meta.fields.items():
        type_name = lower_case_first(model)
        id_field = _single_id_field(model_meta, model, log)
        if id_field is None:
            excluded[type_name] = "noId" if not get_id_fields(model_meta, model) else "multiId"
            continue

        relationships: Dict[str, RelationshipInfo] = {}
        for field in fields.values():
            if not field.is_data_model:
                continue
            if field.type not in model_meta.fields:
                log.warning(f"Relationship {model}.{field.name}: unknown target type {field.type}")
                continue
            target_ids = get_id_fields(model_meta, field.type)
            if len(target_ids) != 1:
                log.warning(f"Relationship {model}.{field.name} is not exposed: {field.type} has no single id field")
                continue
            relationships[field.name] = RelationshipInfo(
                name=field.name,
                target_type=lower_case_first(field.type),
                id_field=target_ids[0].name,
                id_field_type=target_ids[0].type,
                is_collection=field.is_array,
                is_optional=field.is_optional,
            )

        models[type_name] = ModelInfo(
            name=type_name,
            id_field=id_field.name,
            id_field_type=id_field.type,
            fields=MappingProxyType(dict(fields)),
            relationships=MappingProxyType(relationships),
        )

    return Registry(models, excluded)
