"""
Integrity validation for the normalized document.

check_integrity() reports problems, it never raises on bad data: a
migration or an operator needs the full list, not the first failure.
"""

from typing import Any

from pydantic import BaseModel, Field

from pfmt.schema.registry import ENTITY_COLLECTIONS, get_entity_schema


# Groups every migrated project must carry
PROJECT_GROUPS = ("financial", "location", "building", "statusTracking", "workflow", "pfmt")


class IntegrityReport(BaseModel):
    missing_collections: list[str] = Field(default_factory=list)
    malformed_rows: list[str] = Field(default_factory=list)
    duplicate_ids: list[str] = Field(default_factory=list)
    dangling_references: list[str] = Field(default_factory=list)
    incomplete_projects: list[str] = Field(default_factory=list)
    missing_metadata: bool = False

    @property
    def issues(self) -> list[str]:
        issues = [f"Missing collection: {name}" for name in self.missing_collections]
        if self.missing_metadata:
            issues.append("Missing _metadata")
        return (
            issues
            + self.malformed_rows
            + self.duplicate_ids
            + self.dangling_references
            + self.incomplete_projects
        )

    @property
    def ok(self) -> bool:
        return not self.issues


def check_integrity(document: Any) -> IntegrityReport:
    report = IntegrityReport()
    if not isinstance(document, dict):
        report.missing_metadata = True
        report.missing_collections = list(ENTITY_COLLECTIONS)
        return report

    report.missing_metadata = not isinstance(document.get("_metadata"), dict)

    ids: dict[str, set[Any]] = {}
    for name in ENTITY_COLLECTIONS:
        rows = document.get(name)
        if not isinstance(rows, list):
            report.missing_collections.append(name)
            ids[name] = set()
            continue
        seen: set[Any] = set()
        for index, row in enumerate(rows):
            if not isinstance(row, dict) or "id" not in row:
                report.malformed_rows.append(f"{name}[{index}] has no id")
                continue
            try:
                duplicate = row["id"] in seen
            except TypeError:
                report.malformed_rows.append(f"{name}[{index}] has an unhashable id")
                continue
            if duplicate:
                report.duplicate_ids.append(f"{name}: duplicate id {row['id']!r}")
            seen.add(row["id"])
        ids[name] = seen

    for name in ENTITY_COLLECTIONS:
        rows = document.get(name)
        if not isinstance(rows, list):
            continue
        schema = get_entity_schema(name)
        for row in rows:
            if not isinstance(row, dict):
                continue
            for rel in schema.belongs_to:
                target = row.get(rel.foreign_key)
                if target is None:
                    continue
                try:
                    found = target in ids.get(rel.entity, set())
                except TypeError:
                    found = False
                if not found:
                    report.dangling_references.append(
                        f"{name} {row.get('id')!r}: {rel.foreign_key} -> missing {rel.entity} {target!r}"
                    )

    for row in document.get("projects") or []:
        if not isinstance(row, dict):
            continue
        missing = [group for group in PROJECT_GROUPS if not isinstance(row.get(group), dict)]
        if missing:
            report.incomplete_projects.append(
                f"projects {row.get('id')!r} missing groups: {', '.join(missing)}"
            )

    return report
