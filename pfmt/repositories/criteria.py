"""
Query criteria for repository lookups.

A criteria mapping is field -> value, where the value is either a plain
value (equality) or a one-key operator mapping:

    {"status": "Active"}
    {"ownerId": {"in": [1, 2]}}
    {"financial.totalBudget": {"greaterThan": 1000000}}

Operator mappings are parsed once into Criterion variants. All entries
must match (AND). Dotted paths address nested fields.
"""

from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict


_MISSING = object()


class Criterion(BaseModel):
    """Base of the criterion variants."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: Any = None

    def matches(self, actual: Any) -> bool:
        raise NotImplementedError


class Equals(Criterion):
    def matches(self, actual: Any) -> bool:
        return actual is not _MISSING and actual == self.value


class In(Criterion):
    value: list[Any]

    def matches(self, actual: Any) -> bool:
        return actual is not _MISSING and actual in self.value


class NotEquals(Criterion):
    def matches(self, actual: Any) -> bool:
        return actual is _MISSING or actual != self.value


class GreaterThan(Criterion):
    def matches(self, actual: Any) -> bool:
        if actual is _MISSING or actual is None or self.value is None:
            return False
        try:
            return actual > self.value
        except TypeError:
            return False


class LessThan(Criterion):
    def matches(self, actual: Any) -> bool:
        if actual is _MISSING or actual is None or self.value is None:
            return False
        try:
            return actual < self.value
        except TypeError:
            return False


OPERATORS: dict[str, type[Criterion]] = {
    "in": In,
    "$in": In,
    "notEquals": NotEquals,
    "$ne": NotEquals,
    "greaterThan": GreaterThan,
    "$gt": GreaterThan,
    "lessThan": LessThan,
    "$lt": LessThan,
}

CriteriaInput = Mapping[str, Any]


def to_criterion(value: Any) -> Criterion:
    """
    Turn one criteria value into a Criterion.

    A mapping is an operator only when its single key is an operator name;
    any other mapping is compared for equality.
    """
    if isinstance(value, Criterion):
        return value
    if isinstance(value, Mapping) and len(value) == 1:
        (name, operand), = value.items()
        if name in OPERATORS:
            if OPERATORS[name] is In and not isinstance(operand, (list, tuple, set, frozenset)):
                raise ValueError(f"'{name}' expects a list, got {operand!r}")
            if OPERATORS[name] is In:
                operand = list(operand)
            return OPERATORS[name](value=operand)
    return Equals(value=value)


def parse_criteria(criteria: Union[CriteriaInput, None]) -> list[tuple[str, Criterion]]:
    if not criteria:
        return []
    return [(field, to_criterion(value)) for field, value in criteria.items()]


def get_path(record: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path; returns a private sentinel when absent."""
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def matches(record: Mapping[str, Any], parsed: list[tuple[str, Criterion]]) -> bool:
    """True if the record satisfies every parsed criterion."""
    return all(criterion.matches(get_path(record, field)) for field, criterion in parsed)
