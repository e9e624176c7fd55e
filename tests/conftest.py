import logging

import pytest
from fastapi.testclient import TestClient

from instance_attest.main import create_app
from instance_attest.provider import StaticInstanceProvider

from support import PROXY_IPV4, FakeClock


# configure_logging replaces the root handlers; put pytest's back afterwards
@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return StaticInstanceProvider()


@pytest.fixture
def app(tmp_path, provider, clock):
    return create_app(db_path=str(tmp_path / "attest.db"), provider=provider, clock=clock,
                      trust_forwarded=True, trusted_proxies=[f"{PROXY_IPV4}/32"])


# requests arrive through the trusted proxy
@pytest.fixture
def client(app):
    with TestClient(app, client=(PROXY_IPV4, 50000)) as c:
        yield c
