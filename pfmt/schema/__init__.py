"""Schema registry package."""

from pfmt.schema.registry import (
    ENTITY_COLLECTIONS,
    ENTITY_SCHEMAS,
    SCHEMA_VERSION,
    SOFT_DELETE_COLLECTIONS,
    EntitySchema,
    Relationship,
    RelationshipType,
    default_document,
    get_entity_schema,
    get_relationships,
    get_required_fields,
)

__all__ = [
    "ENTITY_COLLECTIONS",
    "ENTITY_SCHEMAS",
    "SCHEMA_VERSION",
    "SOFT_DELETE_COLLECTIONS",
    "EntitySchema",
    "Relationship",
    "RelationshipType",
    "default_document",
    "get_entity_schema",
    "get_relationships",
    "get_required_fields",
]
