"""
Unit of Work

Stage several repository writes and apply them together.

DESIGN DECISION: commit() is a true all-or-nothing transaction. Staged
operations run in registration order inside one store transaction, the
document is flushed once at the end, and any failure puts the pre-commit
document back in memory with nothing persisted.

Staged writes return PendingResult placeholders. A placeholder, or one
of its fields, may be used inside later staged data and is resolved at
commit time:

    with UnitOfWork(repos) as uow:
        project = uow.projects.create({"name": "Courthouse", "ownerId": 1})
        uow.funding_lines.create({"projectId": project.field("id"), "approvedValue": 5e6})
"""

from typing import Any, Callable, Optional

from pfmt.audit import AuditLogger, create_correlation_id
from pfmt.repositories.base import Repository
from pfmt.repositories.registry import RepositoryRegistry


_UNRESOLVED = object()


class PendingResult:
    """The future return value of one staged operation."""

    def __init__(self, description: str):
        self.description = description
        self._value: Any = _UNRESOLVED

    @property
    def resolved(self) -> bool:
        return self._value is not _UNRESOLVED

    @property
    def value(self) -> Any:
        if self._value is _UNRESOLVED:
            raise RuntimeError(f"'{self.description}' has not been committed")
        return self._value

    def field(self, name: str) -> "PendingField":
        return PendingField(self, name)

    def _resolve(self, value: Any) -> None:
        self._value = value

    def _reset(self) -> None:
        self._value = _UNRESOLVED

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "pending"
        return f"<PendingResult {self.description} ({state})>"


class PendingField:
    """One field of a PendingResult's eventual value."""

    def __init__(self, result: PendingResult, name: str):
        self.result = result
        self.name = name

    @property
    def value(self) -> Any:
        return self.result.value[self.name]


def resolve_placeholders(value: Any) -> Any:
    """Replace placeholders, also inside dicts and lists, with their values."""
    if isinstance(value, (PendingResult, PendingField)):
        return value.value
    if isinstance(value, dict):
        return {key: resolve_placeholders(item) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_placeholders(item) for item in value]
    return value


class StagedRepository:
    """
    Transaction-aware proxy over a repository.

    Writes are staged on the unit of work; reads pass straight through and
    see committed state only.
    """

    def __init__(self, uow: "UnitOfWork", repository: Repository):
        self._uow = uow
        self._repository = repository

    def create(self, data: dict[str, Any]) -> PendingResult:
        repo = self._repository
        return self._uow.stage(
            f"create {repo.collection}",
            lambda: repo.create(resolve_placeholders(data)),
        )

    def update(self, entity_id: Any, patch: dict[str, Any]) -> PendingResult:
        repo = self._repository
        return self._uow.stage(
            f"update {repo.collection} {entity_id}",
            lambda: repo.update(resolve_placeholders(entity_id), resolve_placeholders(patch)),
        )

    def delete(self, entity_id: Any) -> PendingResult:
        repo = self._repository
        return self._uow.stage(
            f"delete {repo.collection} {entity_id}",
            lambda: repo.delete(resolve_placeholders(entity_id)),
        )

    def deactivate(self, entity_id: Any) -> PendingResult:
        repo = self._repository
        if not hasattr(repo, "deactivate"):
            raise AttributeError(f"{repo.collection} rows cannot be deactivated")
        return self._uow.stage(
            f"deactivate {repo.collection} {entity_id}",
            lambda: repo.deactivate(resolve_placeholders(entity_id)),
        )

    def __getattr__(self, name: str) -> Any:
        return getattr(self._repository, name)


class UnitOfWork:
    """
    A batch of staged writes over the repositories of one store.

    Used as a context manager it commits on clean exit and rolls back
    when the block raises.
    """

    def __init__(self, repos: RepositoryRegistry, audit: Optional[AuditLogger] = None):
        self._repos = repos
        self._audit = audit or AuditLogger()
        self._operations: list[tuple[PendingResult, Callable[[], Any]]] = []
        self._proxies = {repo.collection: StagedRepository(self, repo) for repo in repos}

        self.users = self._proxies["users"]
        self.vendors = self._proxies["vendors"]
        self.projects = self._proxies["projects"]
        self.project_assignments = self._proxies["projectAssignments"]
        self.funding_lines = self._proxies["fundingLines"]
        self.project_vendors = self._proxies["projectVendors"]
        self.change_orders = self._proxies["changeOrders"]
        self.files = self._proxies["files"]

    def __getitem__(self, collection: str) -> StagedRepository:
        return self._proxies[collection]

    @property
    def pending_count(self) -> int:
        return len(self._operations)

    def stage(self, description: str, operation: Callable[[], Any]) -> PendingResult:
        """Append an operation; it runs at commit time, in order."""
        pending = PendingResult(description)
        self._operations.append((pending, operation))
        return pending

    def commit(self) -> list[Any]:
        """
        Run every staged operation in order and flush once.

        Returns:
            The operations' results, in registration order

        Raises:
            Whatever the failing operation raised, after the document was
            restored and the staged list discarded
        """
        operations, self._operations = self._operations, []
        correlation_id = create_correlation_id()
        results = []

        try:
            with self._repos.store.transaction():
                for pending, operation in operations:
                    result = operation()
                    pending._resolve(result)
                    results.append(result)
        except Exception as e:
            for pending, _ in operations:
                pending._reset()
            self._audit.log_rolled_back(len(operations), f"{type(e).__name__}: {e}", correlation_id)
            raise

        self._audit.log_committed(len(operations), correlation_id)
        return results

    def rollback(self) -> None:
        """Discard staged operations and reload the document from storage."""
        discarded = len(self._operations)
        self._operations = []
        self._repos.store.read(refresh=True)
        self._audit.log_rolled_back(discarded, "rollback requested")

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.rollback()
            return
        self.commit()
