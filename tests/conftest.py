"""Shared pytest fixtures for the archival pipeline tests.

No test touches the network: hostnames resolve through ``fake_resolver`` and
HTTP traffic is served by respx.
"""

import socket

import pytest

from linkradar.archiving.url_validator import UrlValidator
from linkradar.core.config import ArchiveConfig
from linkradar.services.links import LinkService
from linkradar.storage.database import create_engine_and_sessionmaker, init_models

CONTACT_URL = "https://linkradar.example.com/about"

# Hostname -> addresses returned by the fake resolver
FAKE_DNS = {
    "example.com": ["93.184.216.34"],
    "www.example.com": ["93.184.216.34"],
    "b.example": ["151.101.1.69"],
    "cdn.example": ["151.101.65.69", "2606:4700::6810:84e5"],
    "internal.example": ["10.0.0.5"],
    "sneaky.example": ["151.101.129.69", "127.0.0.1"],
    "mapped.example": ["::ffff:192.168.1.10"],
    "v6local.example": ["fe80::1%eth0"],
}


def _fake_resolve(hostname: str) -> list[str]:
    try:
        return FAKE_DNS[hostname.lower().rstrip(".")]
    except KeyError:
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known") from None


@pytest.fixture
def fake_resolver():
    """Resolver answering from FAKE_DNS; unknown hosts fail like NXDOMAIN."""
    return _fake_resolve


@pytest.fixture
def validator() -> UrlValidator:
    return UrlValidator(resolver=_fake_resolve)


@pytest.fixture
def archive_config() -> ArchiveConfig:
    return ArchiveConfig(user_agent_contact_url=CONTACT_URL, _env_file=None)


@pytest.fixture
async def session_factory():
    """In-memory SQLite database with all tables created."""
    engine, factory = create_engine_and_sessionmaker("sqlite+aiosqlite:///:memory:")
    await init_models(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def link_service(session_factory) -> LinkService:
    return LinkService(session_factory)
