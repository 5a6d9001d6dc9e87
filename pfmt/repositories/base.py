"""
Generic Repository

CRUD over one collection of the normalized document.

DESIGN DECISION: Every public mutation runs inside the store's
transaction, so the read, the id allocation, the insert and the flush
happen in one critical section. Records are validated through the
collection's pydantic model and stored as the model's camelCase dump;
callers always receive deep copies, never live rows. Entity audit events
are emitted only once the outermost transaction has persisted.

Records are plain dicts in the stored (camelCase) shape. Patches and
criteria use the same keys as the document.
"""

import copy
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from pfmt.audit import AuditLogger
from pfmt.config import StoreSettings
from pfmt.models.entities import ENTITY_MODELS, EntityModel
from pfmt.repositories.criteria import CriteriaInput, matches, parse_criteria
from pfmt.schema.registry import (
    SOFT_DELETE_COLLECTIONS,
    EntitySchema,
    RelationshipType,
    get_entity_schema,
)
from pfmt.storage.interface import (
    DocumentStore,
    DuplicateError,
    NotFoundError,
    ValidationFailedError,
)

Record = dict[str, Any]


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_timestamp(previous: Any = None) -> str:
    """
    Current UTC time as ISO-8601, strictly later than previous.

    Two mutations inside one clock tick still get increasing stamps.
    """
    now = datetime.now(timezone.utc)
    last = parse_timestamp(previous)
    if last is not None and now <= last:
        now = last + timedelta(microseconds=1)
    return now.isoformat()


def format_validation_error(error: ValidationError) -> list[str]:
    issues = []
    for err in error.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "record"
        issues.append(f"{location}: {err.get('msg')}")
    return issues


def same_id(left: Any, right: Any) -> bool:
    return left == right and not isinstance(left, bool) and not isinstance(right, bool)


def load_relationships(
    document: dict[str, Any],
    entity_type: str,
    entity: Record,
    names: Optional[Iterable[str]] = None,
    active_only: bool = True,
) -> Record:
    """
    Resolve the registry's declared relationships for one entity.

    belongsTo relationships become a related row (or None); hasMany become
    lists. Rows of soft-delete collections retired through isActive=False
    are left out of hasMany results unless active_only is False.
    Returns a new dict.
    """
    schema = get_entity_schema(entity_type)
    wanted = set(names) if names is not None else None
    hydrated = copy.deepcopy(entity)

    for rel in schema.relationships:
        if wanted is not None and rel.name not in wanted:
            continue
        rows = document.get(rel.entity) or []
        if rel.type == RelationshipType.BELONGS_TO:
            target = entity.get(rel.foreign_key)
            found = None
            if target is not None:
                found = next((r for r in rows if same_id(r.get("id"), target)), None)
            hydrated[rel.name] = copy.deepcopy(found)
        else:
            related = [r for r in rows if same_id(r.get(rel.foreign_key), entity.get("id"))]
            if active_only and rel.entity in SOFT_DELETE_COLLECTIONS:
                related = [r for r in related if r.get("isActive") is not False]
            hydrated[rel.name] = copy.deepcopy(related)

    return hydrated


class Repository:
    """
    CRUD for one entity collection.

    Subclasses set `collection` and may set `unique_fields`; the pydantic
    model is looked up from the collection name.
    """

    collection: str = ""
    unique_fields: tuple[str, ...] = ()

    def __init__(
        self,
        store: DocumentStore,
        audit: Optional[AuditLogger] = None,
        settings: Optional[StoreSettings] = None,
    ):
        if not self.collection:
            raise TypeError(f"{type(self).__name__} does not declare a collection")
        self._store = store
        self._audit = audit or AuditLogger()
        self._settings = settings or store.settings
        self.schema: EntitySchema = get_entity_schema(self.collection)
        self.model: type[EntityModel] = ENTITY_MODELS[self.collection]

    @property
    def store(self) -> DocumentStore:
        return self._store

    # -------------------------------------------------------------------------
    # Internals (callers hold the store lock)
    # -------------------------------------------------------------------------

    def _rows(self) -> list[Record]:
        return self._store.rows(self.collection)

    def _index_of(self, rows: list[Record], entity_id: Any) -> Optional[int]:
        for index, row in enumerate(rows):
            if same_id(row.get("id"), entity_id):
                return index
        return None

    def _generate_id(self, rows: list[Record]) -> Any:
        """Dense integer ids: max(existing) + 1."""
        ids = [
            row["id"] for row in rows
            if isinstance(row.get("id"), int) and not isinstance(row.get("id"), bool)
        ]
        return max(ids, default=0) + 1

    def _validate(self, record: Record) -> Record:
        try:
            return self.model.model_validate(record).to_document()
        except ValidationError as e:
            issues = format_validation_error(e)
            raise ValidationFailedError(
                f"Invalid {self.schema.name}: {'; '.join(issues)}", issues=issues
            ) from e

    def _check_unique(self, record: Record, rows: list[Record]) -> None:
        for field in self.unique_fields:
            value = record.get(field)
            if value is None:
                continue
            for row in rows:
                if row.get(field) == value and not same_id(row.get("id"), record.get("id")):
                    raise DuplicateError(
                        f"{self.schema.name} with {field} {value!r} already exists",
                        issues=[f"{field}: duplicate value {value!r}"],
                    )

    def _check_foreign_keys(self, record: Record, fields: Optional[Iterable[str]] = None) -> None:
        """Reject dangling belongsTo references (only the given fields on update)."""
        if not self._settings.enforce_foreign_keys:
            return
        document = self._store.document
        checked = set(fields) if fields is not None else None
        issues = []
        for rel in self.schema.belongs_to:
            if checked is not None and rel.foreign_key not in checked:
                continue
            target = record.get(rel.foreign_key)
            if target is None:
                continue
            rows = document.get(rel.entity) or []
            if not any(same_id(row.get("id"), target) for row in rows):
                issues.append(f"{rel.foreign_key}: no {rel.entity} row with id {target!r}")
        if issues:
            raise ValidationFailedError(
                f"Dangling reference on {self.schema.name}: {'; '.join(issues)}",
                issues=issues,
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find_by_id(self, entity_id: Any) -> Optional[Record]:
        """The entity with this id, or None."""
        with self._store.lock:
            rows = self._rows()
            index = self._index_of(rows, entity_id)
            return copy.deepcopy(rows[index]) if index is not None else None

    def find_one(self, criteria: Optional[CriteriaInput] = None) -> Optional[Record]:
        parsed = parse_criteria(criteria)
        with self._store.lock:
            for row in self._rows():
                if matches(row, parsed):
                    return copy.deepcopy(row)
        return None

    def find_many(self, criteria: Optional[CriteriaInput] = None) -> list[Record]:
        parsed = parse_criteria(criteria)
        with self._store.lock:
            return [copy.deepcopy(row) for row in self._rows() if matches(row, parsed)]

    def find_all(self) -> list[Record]:
        return self.find_many()

    def count(self, criteria: Optional[CriteriaInput] = None) -> int:
        parsed = parse_criteria(criteria)
        with self._store.lock:
            return sum(1 for row in self._rows() if matches(row, parsed))

    def exists(self, entity_id: Any) -> bool:
        with self._store.lock:
            return self._index_of(self._rows(), entity_id) is not None

    def load_relationships(
        self,
        entity: Record,
        names: Optional[Iterable[str]] = None,
    ) -> Record:
        with self._store.lock:
            return load_relationships(self._store.document, self.collection, entity, names)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create(self, data: Record) -> Record:
        """
        Insert a new entity.

        Assigns an id unless one is given, stamps createdAt/updatedAt,
        validates, persists and returns the stored record.

        Raises:
            ValidationFailedError: If the record is invalid or references
                a missing row
            DuplicateError: If a unique value or the given id is taken
        """
        with self._store.transaction():
            rows = self._store.collection(self.collection)
            record = dict(data)
            if record.get("id") is None:
                record["id"] = self._generate_id(rows)
            elif self._index_of(rows, record["id"]) is not None:
                raise DuplicateError(
                    f"{self.schema.name} with id {record['id']!r} already exists",
                    issues=[f"id: duplicate value {record['id']!r}"],
                )
            now = next_timestamp()
            record["createdAt"] = now
            record["updatedAt"] = now

            stored = self._validate(record)
            self._check_unique(stored, rows)
            self._check_foreign_keys(stored)

            rows.append(stored)
            self._store.write()
            self._store.after_commit(partial(self._audit.log_created, self.collection, stored["id"]))

        return copy.deepcopy(stored)

    def update(self, entity_id: Any, patch: Record) -> Record:
        """
        Shallow-merge patch onto the entity and refresh updatedAt.

        id and createdAt cannot be changed through a patch.

        Raises:
            NotFoundError: If the id is absent
            ValidationFailedError: If the merged record is invalid
        """
        with self._store.transaction():
            rows = self._rows()
            index = self._index_of(rows, entity_id)
            if index is None:
                raise NotFoundError(self.collection, entity_id)
            existing = rows[index]

            merged = {**existing, **patch}
            merged["id"] = existing["id"]
            merged["createdAt"] = existing.get("createdAt")
            merged["updatedAt"] = next_timestamp(existing.get("updatedAt"))

            stored = self._validate(merged)
            self._check_unique(stored, rows)
            self._check_foreign_keys(stored, fields=patch.keys())

            rows[index] = stored
            self._store.write()
            self._store.after_commit(partial(self._audit.log_updated, self.collection, entity_id, sorted(patch)))

        return copy.deepcopy(stored)

    def delete(self, entity_id: Any) -> Record:
        """
        Hard-delete the entity and return it.

        Raises:
            NotFoundError: If the id is absent
        """
        with self._store.transaction():
            rows = self._rows()
            index = self._index_of(rows, entity_id)
            if index is None:
                raise NotFoundError(self.collection, entity_id)
            removed = rows.pop(index)
            self._store.write()
            self._store.after_commit(partial(self._audit.log_deleted, self.collection, entity_id))

        return removed


class SoftDeleteRepository(Repository):
    """Repository for relationship rows that are retired, not removed."""

    def deactivate(self, entity_id: Any) -> Record:
        """Flip isActive to False. Raises NotFoundError if absent."""
        with self._store.transaction():
            record = self.update(entity_id, {"isActive": False})
            self._store.after_commit(partial(self._audit.log_deactivated, self.collection, entity_id))
        return record

    def find_active(self, criteria: Optional[CriteriaInput] = None) -> list[Record]:
        return self.find_many({**(criteria or {}), "isActive": {"notEquals": False}})

    def find_by_project(self, project_id: str, active_only: bool = True) -> list[Record]:
        if active_only:
            return self.find_active({"projectId": project_id})
        return self.find_many({"projectId": project_id})
