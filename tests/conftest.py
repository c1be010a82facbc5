from __future__ import annotations

import pytest

from maintdesk.locations.directory import LocationCatalog
from maintdesk.locations.models import LocationRef
from maintdesk.people.repository import PersonRepository

from tests.fakes import FakeDocumentStore, FakeFileStore, RecordingNotifier


@pytest.fixture
def document_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def file_store() -> FakeFileStore:
    return FakeFileStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def locations() -> LocationCatalog:
    return LocationCatalog(
        [
            LocationRef(id="loc-001", name="Central", location_type_id="store", phone_numbers=("3055550100",)),
            LocationRef(id="loc-002", name="Norte", location_type_id="store", phone_numbers=("3055550200",)),
        ],
        email_domains={"central.com": "loc-001", "norte.com": "loc-002"},
    )


@pytest.fixture
def person_repository() -> PersonRepository:
    return PersonRepository(FakeDocumentStore())
