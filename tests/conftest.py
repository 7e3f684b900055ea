import pytest

from app.features.attribution.domain import ClientConfig
from tests.fakes import (
    FakeClientConfigs,
    FakeLedger,
    FakePersonalDomains,
    FakeRedis,
    FakeStore,
)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def acme_client():
    return ClientConfig(id="cfg-1", client_id="client-1", client_name="Acme Agency", slug="acme-agency")


@pytest.fixture
def client_configs(acme_client):
    return FakeClientConfigs(acme_client)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def personal_domains():
    return FakePersonalDomains()


@pytest.fixture
def store():
    return FakeStore()
