"""Tests for L2 transfers."""

from __future__ import annotations

import json

import pytest

from l2_bridge.engine.session import BridgeSession
from l2_bridge.engine.transfers import TransferService
from l2_bridge.errors.definitions import AuthenticationUnavailable, ValidationError


class TestTransfer:
    async def test_signed_transfer(self, session, relay, other_address):
        receipt = await TransferService(session, relay).transfer(other_address.lower(), 5)

        call = relay.transfer_calls[0]
        assert call["recipient"] == other_address
        assert call["signed"].verify(session.address)
        body = json.loads(call["signed"].message)
        assert body["to"] == other_address.lower()
        assert body["type"] == "transfer"
        assert "nonce" not in body
        assert receipt.amount == 5

    async def test_self_transfer(self, session, relay):
        with pytest.raises(ValidationError, match="self"):
            await TransferService(session, relay).transfer(session.address.lower(), 5)

    async def test_insufficient_balance(self, session, relay, other_address):
        relay.balance = 1
        with pytest.raises(ValidationError):
            await TransferService(session, relay).transfer(other_address, 5)
        assert relay.transfer_calls == []

    async def test_bad_recipient(self, session, relay):
        with pytest.raises(ValidationError):
            await TransferService(session, relay).transfer("nobody", 5)

    async def test_keys_not_derived(self, signer, relay, other_address):
        with pytest.raises(AuthenticationUnavailable):
            await TransferService(BridgeSession(signer), relay).transfer(other_address, 5)
