"""
Response normalization.

Turns a raw response body into a canonical document (a mapping of field
names to scalars, nested for XML and JSON) according to the configured
response format:

- ``json``: parsed to validate, returned as parsed
- ``xml``: tags become keys, text becomes string values
- ``csv``: delimited text, keyed ``field0..fieldN-1`` (schema-creation
  mode) or by the names of a registered schema (schema-reuse mode)

Failures raise :class:`~httpbridge.core.errors.NormalizationError`; the
dispatcher logs them and drops the record.
"""

from __future__ import annotations

import json
import math
import re
import xml.etree.ElementTree as ET
from typing import Any

from httpbridge.core.enums import ResponseFormat
from httpbridge.core.errors import ConfigError, NormalizationError, ParseError
from httpbridge.core.logging import get_logger
from httpbridge.normalize.schema import SchemaResolver

logger = get_logger(__name__)

Document = dict[str, Any]

_DECIMAL = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_INTEGER = re.compile(r"[+-]?[0-9]+")
_HEX = re.compile(r"[+-]?0[xX][0-9a-fA-F]+")

# Key used for an element's own text when it also has children or attributes.
XML_TEXT_KEY = "content"


def coerce_scalar(token: str) -> int | float | str:
    """
    Number if the whole token is numeric, otherwise the token unchanged.

    ``"42"`` → ``42``, ``"2.5"`` → ``2.5``, ``"1e3"`` → ``1000.0``,
    ``"0x1F"`` → ``31``; ``"42a"``, ``" 42"``, ``"nan"``, ``"1e999"`` and
    ``""`` stay strings. Only ASCII digits count.
    """
    if _INTEGER.fullmatch(token):
        return int(token)
    if _HEX.fullmatch(token):
        return int(token, 16)
    if _DECIMAL.fullmatch(token):
        value = float(token)
        if not math.isinf(value):
            return value
    return token


def split_delimited(body: str, separator: str) -> list[str]:
    """Tokens of a one-line delimited body; empty tokens are kept."""
    return body.rstrip("\r\n").split(separator)


def synthesized_field_names(count: int) -> list[str]:
    return [f"field{i}" for i in range(count)]


# =============================================================================
# XML
# =============================================================================


def _element_value(element: ET.Element) -> Any:
    children = list(element)
    text = (element.text or "").strip()
    if not children and not element.attrib:
        return text

    value: dict[str, Any] = dict(element.attrib)
    for child in children:
        child_value = _element_value(child)
        if child.tag in value:
            existing = value[child.tag]
            if isinstance(existing, list):
                existing.append(child_value)
            else:
                value[child.tag] = [existing, child_value]
        else:
            value[child.tag] = child_value
    if text:
        value[XML_TEXT_KEY] = text
    return value


def xml_to_document(body: str) -> Document:
    """
    Convert well-formed XML to a nested document.

    ``<a><b>1</b></a>`` → ``{"a": {"b": "1"}}``. Attributes become keys,
    repeated sibling tags become lists, and text next to children or
    attributes is kept under ``"content"``.

    Raises:
        ParseError: body is not well-formed XML
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ParseError(f"Malformed XML: {e}", cause=e).with_context(response_format="xml")
    return {root.tag: _element_value(root)}


# =============================================================================
# NORMALIZER
# =============================================================================


class ResponseNormalizer:
    """Normalizes response bodies of one configured format."""

    def __init__(
        self,
        response_format: ResponseFormat | str = ResponseFormat.JSON,
        *,
        field_separator: str = ",",
        create_schema: bool = True,
        schema_name: str = "httpbridge",
        resolver: SchemaResolver | None = None,
        build_geometry_from_fields: bool = False,
    ) -> None:
        try:
            self.response_format = ResponseFormat.parse(response_format)
        except ValueError as e:
            raise ConfigError(f"Unknown response format: {response_format!r}", cause=e)
        if not field_separator:
            raise ConfigError("field_separator must not be empty")
        if self.response_format is ResponseFormat.CSV and not create_schema and resolver is None:
            raise ConfigError("Schema-reuse mode needs a SchemaResolver")

        self.field_separator = field_separator
        self.create_schema = create_schema
        self.schema_name = schema_name
        self.resolver = resolver
        self.build_geometry_from_fields = build_geometry_from_fields

    def normalize(self, body: str, response_format: ResponseFormat | str | None = None) -> Any:
        """Normalize ``body`` in the configured (or the given) format."""
        fmt = ResponseFormat.parse(response_format) if response_format else self.response_format
        if fmt is ResponseFormat.JSON:
            return self._from_json(body)
        if fmt is ResponseFormat.XML:
            document = xml_to_document(body)
        else:
            document = self._from_delimited(body)
        logger.debug("normalize.document", response_format=fmt.value, keys=len(document))
        return document

    def _from_json(self, body: str) -> Any:
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise ParseError(f"Malformed JSON: {e}", cause=e).with_context(response_format="json")

    def _from_delimited(self, body: str) -> Document:
        tokens = split_delimited(body, self.field_separator)
        if self.create_schema:
            names = synthesized_field_names(len(tokens))
        else:
            names = self._schema_field_names(len(tokens))
        return {name: coerce_scalar(token) for name, token in zip(names, tokens)}

    def _schema_field_names(self, token_count: int) -> tuple[str, ...]:
        desired = token_count + 1 if self.build_geometry_from_fields else token_count
        schema = self.resolver.resolve(desired, self.schema_name)
        if len(schema.field_names) < token_count:
            raise NormalizationError(
                f"Schema has {len(schema.field_names)} fields but payload has {token_count} values"
            ).with_context(
                response_format="csv",
                schema_name=self.schema_name,
                identifier=schema.identifier,
            )
        return schema.field_names


__all__ = [
    "Document",
    "ResponseNormalizer",
    "coerce_scalar",
    "split_delimited",
    "synthesized_field_names",
    "xml_to_document",
]
