"""
Shared fixtures: every repository wired to one in-memory container.
"""

import time

import pytest

from src.campaign.status import CampaignStatusMachine
from src.repositories.brand_assets import BrandAssetRepository
from src.repositories.brands import BrandRepository
from src.repositories.campaigns import CampaignRepository
from src.repositories.personas import PersonaRepository
from src.repositories.social_posts import SocialPostRepository
from src.repositories.writing_examples import WritingExampleRepository
from src.shared.cosmos_client import CosmosTableClient
from src.shared.cursor_codec import CursorCodec
from tests.factories import TENANT, brand_payload, campaign_payload, persona_payload
from tests.fakes import FakeContainer, FakeObjectStore, FakePublisher


# ====================
# Store
# ====================


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch):
    """Transient-error retries run without waiting."""
    monkeypatch.setattr(time, "sleep", lambda seconds: None)


@pytest.fixture
def container():
    return FakeContainer()


@pytest.fixture
def table(container):
    return CosmosTableClient(container, "entities")


@pytest.fixture
def codec():
    return CursorCodec("test-signing-key")


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def objects():
    return FakeObjectStore()


# ====================
# Repositories
# ====================


@pytest.fixture
def brands(table, codec):
    return BrandRepository(table, codec)


@pytest.fixture
def personas(table, codec):
    return PersonaRepository(table, codec)


@pytest.fixture
def campaigns(table, codec, publisher):
    return CampaignRepository(table, codec, publisher=publisher)


@pytest.fixture
def posts(table, codec):
    return SocialPostRepository(table, codec)


@pytest.fixture
def assets(table, codec, brands, objects):
    return BrandAssetRepository(table, codec, brands, objects)


@pytest.fixture
def examples(table, codec):
    return WritingExampleRepository(table, codec)


@pytest.fixture
def machine(campaigns, posts, publisher):
    return CampaignStatusMachine(campaigns, posts, publisher)


# ====================
# Seeded entities
# ====================


@pytest.fixture
def brand(brands):
    return brands.create(TENANT, brand_payload())


@pytest.fixture
def persona(personas):
    return personas.create(TENANT, persona_payload())


@pytest.fixture
def campaign(campaigns, brand, persona):
    return campaigns.create(TENANT, campaign_payload([persona.id], brand_id=brand.id))
