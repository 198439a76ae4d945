"""Shared fixtures for cardkeep tests."""

import pytest

from cardkeep.board import CardBoard
from cardkeep.config import Config
from cardkeep.server import create_app
from cardkeep.storage import MemoryStorage
from cardkeep.store import CardStore


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return CardStore(storage)


@pytest.fixture
def board(store):
    return CardBoard(store)


@pytest.fixture
def client(board):
    app = create_app(board, Config())
    app.config["TESTING"] = True
    return app.test_client()
