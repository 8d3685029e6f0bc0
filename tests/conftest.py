import pytest

from helpers.loader import generate_key, load_registry

from otcflow_rules.engine import PathwayEngine
from otcflow_rules.extraction import TranscriptParser


@pytest.fixture
def registry():
    return load_registry()

@pytest.fixture
def engine(registry):
    return PathwayEngine(registry)

@pytest.fixture
def parser(registry):
    return TranscriptParser(registry)

@pytest.fixture(scope="session")
def signing_key():
    return generate_key()
