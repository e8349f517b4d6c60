"""Tests for the dual-signature authenticator."""

from __future__ import annotations

import json

import pytest

from l2_bridge.auth.authenticator import DualSignatureAuthenticator, IntentType, canonical_message
from l2_bridge.auth.keys import verify_secondary_signature
from l2_bridge.engine.session import BridgeSession
from l2_bridge.errors.definitions import AuthenticationUnavailable, ValidationError
from l2_bridge.wallet.signer import verify_account_signature


class TestCanonicalMessage:
    def test_withdrawal_field_order(self) -> None:
        msg = canonical_message(
            IntentType.WITHDRAWAL,
            account="0xAbC0000000000000000000000000000000000001",
            amount=15,
            timestamp=1700000000000,
            nonce=7,
        )
        assert msg == (
            '{"ethereumAddress":"0xabc0000000000000000000000000000000000001",'
            '"amount":"15","nonce":"7","timestamp":1700000000000,"type":"withdrawal"}'
        )

    def test_nonce_omitted_when_unknown(self) -> None:
        msg = canonical_message(IntentType.WITHDRAWAL, account="0x1", amount=1, timestamp=1)
        assert "nonce" not in json.loads(msg)

    def test_transfer_includes_recipient(self) -> None:
        msg = canonical_message(
            IntentType.TRANSFER, account="0xA", amount=1, timestamp=1, recipient="0xB"
        )
        assert list(json.loads(msg)) == ["ethereumAddress", "to", "amount", "timestamp", "type"]
        assert json.loads(msg)["to"] == "0xb"

    def test_large_amount_is_exact(self) -> None:
        msg = canonical_message(IntentType.WITHDRAWAL, account="0x1", amount=2**200, timestamp=1)
        assert json.loads(msg)["amount"] == str(2**200)


class TestAuthenticate:
    async def test_both_signatures_verify(self, session) -> None:
        signed = await DualSignatureAuthenticator(session).authenticate(
            IntentType.WITHDRAWAL, amount=10**18, nonce=3
        )
        assert verify_secondary_signature(
            signed.secondary_public_key, signed.message, signed.secondary_signature
        )
        assert verify_account_signature(session.address, signed.message, signed.account_signature)
        assert signed.verify(session.address)
        assert signed.secondary_public_key == session.keypair.pub

    async def test_message_carries_request(self, session) -> None:
        signed = await DualSignatureAuthenticator(session).authenticate(
            IntentType.WITHDRAWAL, amount=5, nonce=9, timestamp=1234
        )
        body = json.loads(signed.message)
        assert body["ethereumAddress"] == session.address.lower()
        assert body["amount"] == "5"
        assert body["nonce"] == "9"
        assert body["timestamp"] == 1234
        assert signed.timestamp == 1234

    async def test_wire_fields(self, session) -> None:
        signed = await DualSignatureAuthenticator(session).authenticate(
            IntentType.WITHDRAWAL, amount=5
        )
        assert set(signed.to_wire()) == {"message", "seaSignature", "ethSignature", "gunPubKey"}

    async def test_requires_derived_keypair(self, signer) -> None:
        with pytest.raises(AuthenticationUnavailable):
            await DualSignatureAuthenticator(BridgeSession(signer)).authenticate(
                IntentType.WITHDRAWAL, amount=1
            )

    async def test_rejects_non_positive_amount(self, session) -> None:
        with pytest.raises(ValidationError):
            await DualSignatureAuthenticator(session).authenticate(IntentType.WITHDRAWAL, amount=0)

    async def test_transfer_requires_recipient(self, session) -> None:
        with pytest.raises(ValidationError, match="recipient"):
            await DualSignatureAuthenticator(session).authenticate(IntentType.TRANSFER, amount=1)

    async def test_withdrawal_rejects_recipient(self, session, other_address) -> None:
        with pytest.raises(ValidationError):
            await DualSignatureAuthenticator(session).authenticate(
                IntentType.WITHDRAWAL, amount=1, recipient=other_address
            )

    async def test_tampered_message_fails(self, session) -> None:
        signed = await DualSignatureAuthenticator(session).authenticate(
            IntentType.WITHDRAWAL, amount=1
        )
        assert not verify_account_signature(
            session.address, signed.message.replace('"1"', '"2"'), signed.account_signature
        )
