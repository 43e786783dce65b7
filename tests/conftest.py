from __future__ import annotations

import random

import pytest

from spotmap.config.settings import get_settings
from spotmap.core.events import EventBus
from spotmap.domain.models import Spot
from spotmap.services.spots import SpotService
from spotmap.store.codec import spot_to_document
from spotmap.store.memory import InMemoryDocumentStore


def spot_doc(**fields) -> dict:
    """A stored spot document built from `Spot` keyword fields."""
    fields.setdefault("name", "Spot")
    fields.setdefault("ranking", 0.5)
    return spot_to_document(Spot(**fields))


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def service(store, events) -> SpotService:
    return SpotService(store, settings=get_settings(), events=events, rng=random.Random(7))
