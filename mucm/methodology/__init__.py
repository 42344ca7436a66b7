"""Methodology definitions, the registry that loads them and the field collector."""

from mucm.methodology.registry import (
    FIELD_TYPES,
    CustomFieldConfig,
    DocumentationLevel,
    MethodologyDef,
    MethodologyRegistry,
    parse_view_spec,
)
from mucm.methodology.fields import FieldCollector, FieldSet

__all__ = [
    "FIELD_TYPES",
    "CustomFieldConfig",
    "DocumentationLevel",
    "FieldCollector",
    "FieldSet",
    "MethodologyDef",
    "MethodologyRegistry",
    "parse_view_spec",
]
