"""
Shared fixtures for the PFMT data layer tests.

Stores are in memory unless a test needs the file system, in which case
the JSON store lives under pytest's tmp_path.
"""

import copy
import random

import pytest

from pfmt.config import get_settings
from pfmt.orchestrator import DataLayer, ProjectService
from pfmt.repositories import RepositoryRegistry
from pfmt.schema import default_document
from pfmt.storage import InMemoryDocumentStore, JsonFileDocumentStore


USERS = [
    {"id": 1, "name": "Alice Manager", "email": "alice@gov.ab.ca", "role": "Project Manager"},
    {"id": 2, "name": "Bob Manager", "email": "bob@gov.ab.ca", "role": "Project Manager"},
    {"id": 3, "name": "Dana Director", "email": "dana@gov.ab.ca", "role": "Director"},
    {"id": 4, "name": "Sam Senior", "email": "sam@gov.ab.ca", "role": "Senior Project Manager"},
]


def build_legacy_document() -> dict:
    """Two flat legacy projects sharing the vendor XYZ Corp."""
    return {
        "users": copy.deepcopy(USERS[:2]),
        "projects": [
            {
                "id": 1,
                "name": "Courthouse Renewal",
                "status": "Active",
                "ownerId": 1,
                "contractor": "ABC Construction Ltd.",
                "approvedTPC": "$5,000,000",
                "eac": "5,250,000",
                "totalBudget": 5000000,
                "amountSpent": "1,200,000",
                "geographicRegion": "Edmonton",
                "municipality": "Edmonton",
                "buildingName": "Law Courts",
                "scheduleStatus": "Yellow",
                "monthlyComments": "Foundations complete",
                "vendors": [
                    {
                        "name": "ABC Construction Ltd.",
                        "contractId": "C-100",
                        "currentCommitment": "$1,000,000",
                        "billedToDate": 250000,
                        "holdback": 12500,
                        "percentSpent": 25,
                    },
                    {
                        "name": "XYZ Corp",
                        "email": "ops@xyz.example",
                        "currentCommitment": 400000,
                        "billedToDate": 0,
                    },
                ],
                "fundingLines": [
                    {
                        "source": "Capital Plan",
                        "description": "Main build",
                        "approvedValue": "$5,000,000",
                        "fiscalYear": "2023-24",
                    },
                ],
                "changeOrders": [
                    {
                        "vendor": "XYZ Corp",
                        "referenceNumber": "CO-1",
                        "value": "25,000",
                        "status": "Approved",
                        "notes": "Extra rebar",
                    },
                ],
            },
            {
                "id": 2,
                "name": "Regional Lab",
                "contractor": "XYZ Corp",
                "approvedTPC": 800000,
                "vendors": [
                    {"name": "XYZ Corp", "currentCommitment": 600000},
                ],
                "fundingLines": [
                    {"source": "Federal", "approvedValue": 800000},
                ],
                "changeOrders": [],
            },
        ],
    }


def build_seeded_document() -> dict:
    """An empty normalized document with the four test users."""
    document = default_document(created_at="2024-01-01T00:00:00+00:00")
    for user in USERS:
        document["users"].append({
            **user,
            "isActive": True,
            "createdAt": "2024-01-01T00:00:00+00:00",
            "updatedAt": "2024-01-01T00:00:00+00:00",
        })
    return document


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are re-read from the environment for every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def legacy_document():
    """Factory for the legacy flat document."""
    return build_legacy_document


@pytest.fixture
def store():
    return InMemoryDocumentStore(build_seeded_document())


@pytest.fixture
def empty_store():
    return InMemoryDocumentStore()


@pytest.fixture
def legacy_store(legacy_document):
    return InMemoryDocumentStore(legacy_document())


@pytest.fixture
def json_store(tmp_path):
    return JsonFileDocumentStore(tmp_path / "db.json")


@pytest.fixture
def repos(store):
    return RepositoryRegistry(store, rng=random.Random(7))


@pytest.fixture
def layer(store):
    return DataLayer(store, rng=random.Random(11))


@pytest.fixture
def service(layer):
    return ProjectService(layer)


@pytest.fixture
def project(repos):
    """A project owned by Alice (user 1)."""
    return repos.projects.create({"name": "Courthouse Renewal", "ownerId": 1})
