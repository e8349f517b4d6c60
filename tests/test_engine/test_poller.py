"""Tests for the proof poller."""

from __future__ import annotations

import asyncio
import contextlib

import pytest

from l2_bridge.engine.poller import PollStatus, ProofPoller
from l2_bridge.errors.definitions import NetworkError, ProofNotReady
from l2_bridge.relay.models import ProofLookup, ProofStatus

ACCOUNT = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
PENDING = ProofLookup(ProofStatus.PENDING)
PROCESSED = ProofLookup(ProofStatus.ALREADY_PROCESSED)


class TestPollOutcomes:
    async def test_ready_after_pending(self, relay, proof_for):
        relay.set_proof(7, PENDING, PENDING, proof_for(ACCOUNT, 5, 7))
        outcome = await ProofPoller(relay, interval=0, max_attempts=5).poll(ACCOUNT, 5, 7)
        assert outcome.status is PollStatus.READY
        assert outcome.attempts == 3
        assert outcome.proof.batch_id == 42
        assert outcome.is_success

    async def test_expires_after_budget(self, relay):
        outcome = await ProofPoller(relay, interval=0, max_attempts=4).poll(ACCOUNT, 5, 7)
        assert outcome.status is PollStatus.EXPIRED
        assert outcome.attempts == 4
        assert relay.proof_calls == 4
        assert not outcome.is_success
        assert isinstance(outcome.error, ProofNotReady)
        assert outcome.error.status_code == 404

    async def test_already_processed(self, relay):
        relay.set_proof(9, PROCESSED)
        outcome = await ProofPoller(relay, interval=0).poll(ACCOUNT, 2 * 10**18, 9)
        assert outcome.status is PollStatus.ALREADY_PROCESSED
        assert outcome.is_success

    async def test_already_processed_is_sticky(self, relay):
        relay.set_proof(9, PROCESSED)
        poller = ProofPoller(relay, interval=0)
        await poller.poll(ACCOUNT, 1, 9)
        calls = relay.proof_calls

        for _ in range(3):
            outcome = await poller.poll(ACCOUNT.lower(), 1, 9)
            assert outcome.status is PollStatus.ALREADY_PROCESSED
        assert relay.proof_calls == calls
        assert poller.is_settled(ACCOUNT, 9)

    async def test_forget_releases_settled_marker(self, relay, proof_for):
        relay.set_proof(9, PROCESSED)
        poller = ProofPoller(relay, interval=0)
        await poller.poll(ACCOUNT, 1, 9)

        poller.forget(ACCOUNT.lower(), 9)

        assert not poller.is_settled(ACCOUNT, 9)
        relay.set_proof(9, proof_for(ACCOUNT, 1, 9))
        outcome = await poller.poll(ACCOUNT, 1, 9)
        assert outcome.status is PollStatus.READY

    async def test_lookup_error_stops_polling(self, relay):
        relay.set_proof(7, PENDING, NetworkError("relay down"))
        poller = ProofPoller(relay, interval=0, max_attempts=10)
        outcome = await poller.poll(ACCOUNT, 5, 7)
        assert outcome.status is PollStatus.FAILED
        assert isinstance(outcome.error, NetworkError)
        assert relay.proof_calls == 2

    async def test_on_attempt_callback(self, relay, proof_for):
        relay.set_proof(7, PENDING, proof_for(ACCOUNT, 5, 7))
        seen: list[str] = []
        await ProofPoller(relay, interval=0, on_attempt=seen.append).poll(ACCOUNT, 5, 7)
        assert seen == ["pending", "available"]

    def test_invalid_budget(self, relay):
        with pytest.raises(ValueError, match="max_attempts"):
            ProofPoller(relay, max_attempts=0)


class TestSingleFlight:
    async def test_new_poll_supersedes_old(self, relay):
        poller = ProofPoller(relay, interval=0.01, max_attempts=1000)
        first = asyncio.create_task(poller.poll(ACCOUNT, 5, 7))
        await asyncio.sleep(0.03)
        assert poller.is_polling(ACCOUNT, 7)

        second = poller.start(ACCOUNT, 5, 7)
        outcome = await first
        assert outcome.status is PollStatus.CANCELLED
        assert poller.is_polling(ACCOUNT, 7)

        poller.cancel(ACCOUNT, 7)
        with contextlib.suppress(asyncio.CancelledError):
            await second
        assert not poller.is_polling(ACCOUNT, 7)

    async def test_keys_are_independent(self, relay, proof_for):
        relay.set_proof(8, proof_for(ACCOUNT, 5, 8))
        poller = ProofPoller(relay, interval=0.01, max_attempts=1000)
        slow = asyncio.create_task(poller.poll(ACCOUNT, 5, 7))
        await asyncio.sleep(0)

        outcome = await poller.poll(ACCOUNT, 5, 8)
        assert outcome.status is PollStatus.READY
        assert poller.is_polling(ACCOUNT, 7)

        poller.cancel_all()
        assert (await slow).status is PollStatus.CANCELLED

    async def test_cancel_without_poll(self, relay):
        assert ProofPoller(relay).cancel(ACCOUNT, 1) is False

    async def test_caller_cancellation_propagates(self, relay):
        poller = ProofPoller(relay, interval=0.01, max_attempts=1000)
        caller = asyncio.create_task(poller.poll(ACCOUNT, 5, 7))
        await asyncio.sleep(0.02)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
