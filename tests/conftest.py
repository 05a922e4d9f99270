import pytest

from parley.agent import DEFAULT_AGENTS, AgentRegistry
from parley.commands import CommandRegistry
from parley.config import DEFAULT_PRESETS
from parley.manager import SessionManager
from parley.models import Note
from parley.notes import InMemoryNotesManager
from tests.fakes import FakeProvider


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def notes(provider: FakeProvider) -> InMemoryNotesManager:
    return InMemoryNotesManager(
        provider,
        [
            Note(id="n-cars", title="Cars in cities", content="Congestion pricing cut traffic by 20%."),
            Note(id="n-bikes", title="Bike lanes", content="Protected lanes double ridership."),
        ],
    )


@pytest.fixture
def manager(provider: FakeProvider, notes: InMemoryNotesManager) -> SessionManager:
    return SessionManager(
        provider=provider,
        agents=AgentRegistry(DEFAULT_AGENTS),
        commands=CommandRegistry(),
        notes=notes,
        presets=DEFAULT_PRESETS,
    )
