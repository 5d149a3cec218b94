"""Shared fixtures: a fake upstream session and a relay app wired to it."""

from unittest.mock import MagicMock

import pytest
import requests

from anirelay.config import Config
from anirelay.proxy import create_app


@pytest.fixture
def config():
    return Config(public_base_url="https://relay.example.com")


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def app(config, session):
    app = create_app(config, session=session)
    app.testing = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
