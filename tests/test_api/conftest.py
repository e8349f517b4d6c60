"""Fixtures for control API tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from l2_bridge.api.app import create_app
from l2_bridge.engine import client as engine_client
from l2_bridge.engine.client import BridgeEngine


@pytest.fixture
def api_config(app_config, private_key):
    """Config that opens a session for the development key on startup."""
    return app_config.model_copy(
        update={"chain": app_config.chain.model_copy(update={"private_key": private_key})}
    )


@pytest.fixture
def engine(api_config, relay, store, contract, monkeypatch):
    """Engine whose session claims through the contract double."""
    monkeypatch.setattr(
        engine_client, "BridgeContract", lambda config, signer, *, web3=None: contract
    )
    return BridgeEngine(api_config, relay=relay, store=store, web3=MagicMock())


@pytest.fixture
def client(api_config, engine):
    with TestClient(create_app(config=api_config, engine=engine)) as c:
        yield c


@pytest.fixture
def no_session_client(app_config, relay, store):
    engine = BridgeEngine(app_config, relay=relay, store=store, web3=MagicMock())
    with TestClient(create_app(engine=engine)) as c:
        yield c
