"""Schema resolution for delimited-text responses.

WHY
───
A delimited-text body is just ``1,foo,2.5``: it carries no field names and
no schema identity. To turn it into a named document the bridge looks up
a schema by name in the registry and picks the one whose arity (field
count) matches the number of tokens. Arity is a proxy for "same feed shape
as last time".

The steady state is a stable shape, so the last resolved schema is kept in
a one-slot cache and reused without a registry search as long as it still
exists and its arity still matches.

ARCHITECTURE
────────────
::

    SchemaResolver(registry)
      ├── .resolve(count, name)   ─ cache hit → search exact arity
      │                             → first result → SchemaNotFoundError
      ├── .publish(name, fields)  ─ create/reuse a schema, track ownership
      └── .release_published()    ─ delete owned schemas on shutdown

    SchemaRegistry (Protocol)
      └── InMemorySchemaRegistry  ─ thread-safe reference implementation

CONCURRENCY
───────────
The cache is an immutable :class:`CacheSnapshot` swapped by a single
reference assignment, so readers on worker threads see either the old or
the new ``(identifier, field_count)`` pair, never a mix. Cache writes,
publication and release are serialized by one lock.
"""

from __future__ import annotations

import itertools
import threading
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from httpbridge.core.errors import SchemaNotFoundError
from httpbridge.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SchemaCandidate:
    """A named, ordered list of field names held by the registry."""

    identifier: str
    name: str
    field_names: tuple[str, ...]

    @property
    def field_count(self) -> int:
        return len(self.field_names)


@dataclass(frozen=True)
class ResolvedSchema:
    identifier: str
    field_names: tuple[str, ...]


@dataclass(frozen=True)
class CacheSnapshot:
    identifier: str
    field_count: int
    version: int


@runtime_checkable
class SchemaRegistry(Protocol):
    """External schema registry."""

    def search_by_name(self, name: str) -> Sequence[SchemaCandidate]:
        """All schemas registered under ``name``, in registry order."""
        ...

    def get_by_identifier(self, identifier: str) -> SchemaCandidate | None:
        ...

    def create(self, name: str, field_names: Sequence[str]) -> SchemaCandidate:
        ...

    def delete(self, identifier: str) -> None:
        ...


class InMemorySchemaRegistry:
    """Thread-safe registry keeping schemas in insertion order."""

    def __init__(self, schemas: Sequence[SchemaCandidate] = ()) -> None:
        self._lock = threading.Lock()
        self._schemas: dict[str, SchemaCandidate] = {s.identifier: s for s in schemas}

    def search_by_name(self, name: str) -> list[SchemaCandidate]:
        with self._lock:
            return [s for s in self._schemas.values() if s.name == name]

    def get_by_identifier(self, identifier: str) -> SchemaCandidate | None:
        with self._lock:
            return self._schemas.get(identifier)

    def create(self, name: str, field_names: Sequence[str]) -> SchemaCandidate:
        candidate = SchemaCandidate(
            identifier=str(uuid.uuid4()),
            name=name,
            field_names=tuple(field_names),
        )
        with self._lock:
            self._schemas[candidate.identifier] = candidate
        return candidate

    def delete(self, identifier: str) -> None:
        with self._lock:
            self._schemas.pop(identifier, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._schemas)


@dataclass
class ResolverStats:
    cache_hits: int = 0
    searches: int = 0
    fallbacks: int = 0


class SchemaResolver:
    """Maps a token count to a registered schema, with a one-slot cache."""

    def __init__(self, registry: SchemaRegistry) -> None:
        self._registry = registry
        self._lock = threading.Lock()
        self._snapshot: CacheSnapshot | None = None
        self._versions = itertools.count(1)
        self._published: dict[tuple[str, int], str] = {}
        self.stats = ResolverStats()

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    @property
    def cached(self) -> CacheSnapshot | None:
        return self._snapshot

    def resolve(self, desired_field_count: int, schema_name: str) -> ResolvedSchema:
        """
        Find the schema to use for ``desired_field_count`` values.

        Falls back to the first schema registered under ``schema_name`` when
        none has the exact arity. That choice is best-effort: nothing checks
        the fallback is semantically compatible with the payload.

        Raises:
            SchemaNotFoundError: no schema is registered under ``schema_name``
        """
        snapshot = self._snapshot
        if snapshot is not None and snapshot.field_count == desired_field_count:
            candidate = self._registry.get_by_identifier(snapshot.identifier)
            if candidate is not None and candidate.field_count == desired_field_count:
                self._bump("cache_hits")
                return ResolvedSchema(candidate.identifier, candidate.field_names)

        self._bump("searches")
        results = list(self._registry.search_by_name(schema_name))
        if not results:
            raise SchemaNotFoundError(
                f"Schema '{schema_name}' does not exist"
            ).with_context(schema_name=schema_name, field_count=desired_field_count)

        chosen = next((c for c in results if c.field_count == desired_field_count), None)
        if chosen is None:
            chosen = results[0]
            self._bump("fallbacks")
            logger.warning(
                "schema.arity_fallback",
                schema_name=schema_name,
                identifier=chosen.identifier,
                desired_field_count=desired_field_count,
                field_count=chosen.field_count,
            )

        self._remember(chosen)
        return ResolvedSchema(chosen.identifier, chosen.field_names)

    def _bump(self, counter: str) -> None:
        with self._lock:
            setattr(self.stats, counter, getattr(self.stats, counter) + 1)

    def _remember(self, candidate: SchemaCandidate) -> None:
        with self._lock:
            self._snapshot = CacheSnapshot(
                identifier=candidate.identifier,
                field_count=candidate.field_count,
                version=next(self._versions),
            )

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None

    # ── Ownership of synthesized schemas ─────────────────────────────

    def publish(self, name: str, field_names: Sequence[str]) -> str:
        """
        Make sure a schema ``name`` with exactly ``field_names`` exists.

        Schemas created here are owned by the resolver and removed by
        :meth:`release_published`. Existing registry entries with the same
        name and arity are reused and never deleted.
        """
        key = (name, len(field_names))
        with self._lock:
            if key in self._published:
                return self._published[key]
            for candidate in self._registry.search_by_name(name):
                if candidate.field_names == tuple(field_names):
                    return candidate.identifier
            created = self._registry.create(name, field_names)
            self._published[key] = created.identifier
            logger.info(
                "schema.published",
                schema_name=name,
                identifier=created.identifier,
                field_count=created.field_count,
            )
            return created.identifier

    @property
    def published(self) -> list[str]:
        with self._lock:
            return list(self._published.values())

    def release_published(self) -> int:
        """Delete every schema this resolver created. Returns how many."""
        with self._lock:
            released = 0
            for identifier in self._published.values():
                try:
                    self._registry.delete(identifier)
                    released += 1
                except Exception as e:
                    logger.warning("schema.release_failed", identifier=identifier, error=str(e))
            self._published.clear()
            self._snapshot = None
            return released


__all__ = [
    "SchemaCandidate",
    "ResolvedSchema",
    "CacheSnapshot",
    "SchemaRegistry",
    "InMemorySchemaRegistry",
    "SchemaResolver",
]
