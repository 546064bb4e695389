"""Response normalization and schema matching."""

from httpbridge.normalize.normalizer import (
    Document,
    ResponseNormalizer,
    coerce_scalar,
    xml_to_document,
)
from httpbridge.normalize.schema import (
    InMemorySchemaRegistry,
    ResolvedSchema,
    SchemaCandidate,
    SchemaRegistry,
    SchemaResolver,
)

__all__ = [
    "Document",
    "ResponseNormalizer",
    "coerce_scalar",
    "xml_to_document",
    "InMemorySchemaRegistry",
    "ResolvedSchema",
    "SchemaCandidate",
    "SchemaRegistry",
    "SchemaResolver",
]
