"""Tests for the L1 bridge contract client — web3 objects are mocked."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from web3.exceptions import ContractLogicError, TransactionNotFound

from l2_bridge.chain.bridge_contract import BridgeContract, classify_failure
from l2_bridge.config.settings import ChainConfig
from l2_bridge.errors.chain_errors import ClaimFailureKind, ClaimReverted, TransactionFailed
from l2_bridge.errors.definitions import NetworkError, SigningRejected, ValidationError

BRIDGE = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
SENDER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
TX_HASH = bytes.fromhex("ab" * 32)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _signer() -> MagicMock:
    signer = MagicMock()
    signer.address = SENDER
    signer.sign_transaction = AsyncMock(return_value=b"\x02raw")
    return signer


def _fn(gas: int = 100_000) -> MagicMock:
    fn = MagicMock()
    fn.estimate_gas = AsyncMock(return_value=gas)
    fn.build_transaction = AsyncMock(side_effect=lambda params: {**params, "to": BRIDGE})
    return fn


def _web3(receipts: list) -> MagicMock:
    web3 = MagicMock()
    contract = MagicMock()
    contract.address = BRIDGE
    web3.eth.contract.return_value = contract
    web3.eth.get_transaction_count = AsyncMock(return_value=3)
    web3.eth.send_raw_transaction = AsyncMock(return_value=TX_HASH)
    web3.eth.get_transaction_receipt = AsyncMock(side_effect=receipts)
    web3.eth.get_balance = AsyncMock(return_value=5 * 10**18)
    return web3


def _mined(status: int = 1, gas_used: int = 50_000) -> dict:
    return {"blockNumber": 10, "gasUsed": gas_used, "status": status}


async def _bridge(web3: MagicMock, signer: MagicMock | None = None) -> BridgeContract:
    bridge = BridgeContract(
        ChainConfig(bridge_address=BRIDGE, receipt_poll_interval=0),
        signer or _signer(),
        web3=web3,
    )
    await bridge.connect()
    return bridge


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_requires_address(self):
        bridge = BridgeContract(ChainConfig(), _signer(), web3=MagicMock())
        with pytest.raises(ValidationError, match="not configured"):
            await bridge.connect()

    async def test_address_override(self):
        web3 = _web3([])
        bridge = BridgeContract(ChainConfig(), _signer(), web3=web3)
        await bridge.connect(BRIDGE.lower())
        assert bridge.is_connected
        web3.eth.contract.assert_called_once()
        assert web3.eth.contract.call_args.kwargs["address"] == BRIDGE

    async def test_not_connected(self):
        bridge = BridgeContract(ChainConfig(), _signer(), web3=MagicMock())
        with pytest.raises(ValidationError, match="not connected"):
            await bridge.deposit(1)

    async def test_close_keeps_injected_provider(self):
        web3 = _web3([])
        bridge = await _bridge(web3)
        await bridge.close()
        assert not bridge.is_connected
        web3.provider.disconnect.assert_not_called()


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


class TestWithdraw:
    async def test_success_waits_for_receipt(self):
        web3 = _web3([TransactionNotFound("pending"), None, _mined()])
        bridge = await _bridge(web3)
        fn = _fn()
        bridge._contract.functions.withdraw.return_value = fn

        receipt = await bridge.withdraw(5, 7, 42, ["0x" + "11" * 32])

        bridge._contract.functions.withdraw.assert_called_once_with(5, 7, 42, ["0x" + "11" * 32])
        assert receipt.succeeded
        assert receipt.tx_hash == "0x" + "ab" * 32
        assert receipt.block_number == 10
        assert web3.eth.get_transaction_receipt.await_count == 3
        tx = fn.build_transaction.call_args.args[0]
        assert tx["gas"] == int(100_000 * 1.2)
        assert tx["nonce"] == 3
        assert tx["chainId"] == 84532

    async def test_out_of_gas_receipt(self):
        bridge = await _bridge(_web3([_mined(status=0, gas_used=200_000)]))
        bridge._contract.functions.withdraw.return_value = _fn()

        with pytest.raises(ClaimReverted) as exc_info:
            await bridge.withdraw(5, 7, 42, [])
        assert exc_info.value.kind is ClaimFailureKind.OUT_OF_GAS
        assert exc_info.value.tx_hash == "0x" + "ab" * 32

    async def test_plain_revert_receipt(self):
        bridge = await _bridge(_web3([_mined(status=0, gas_used=60_000)]))
        bridge._contract.functions.withdraw.return_value = _fn()

        with pytest.raises(ClaimReverted) as exc_info:
            await bridge.withdraw(5, 7, 42, [])
        assert exc_info.value.kind is ClaimFailureKind.REVERTED

    async def test_invalid_proof_on_estimate(self):
        bridge = await _bridge(_web3([]))
        fn = _fn()
        fn.estimate_gas = AsyncMock(side_effect=ContractLogicError("execution reverted: Invalid proof"))
        bridge._contract.functions.withdraw.return_value = fn

        with pytest.raises(ClaimReverted) as exc_info:
            await bridge.withdraw(5, 7, 42, [])
        assert exc_info.value.kind is ClaimFailureKind.INVALID_PROOF

    async def test_already_processed_on_estimate(self):
        bridge = await _bridge(_web3([]))
        fn = _fn()
        fn.estimate_gas = AsyncMock(
            side_effect=ContractLogicError("execution reverted: Already processed")
        )
        bridge._contract.functions.withdraw.return_value = fn

        with pytest.raises(ClaimReverted) as exc_info:
            await bridge.withdraw(5, 7, 42, [])
        assert exc_info.value.kind is ClaimFailureKind.ALREADY_PROCESSED

    async def test_user_rejects_signature(self):
        signer = _signer()
        signer.sign_transaction = AsyncMock(side_effect=SigningRejected())
        web3 = _web3([])
        bridge = await _bridge(web3, signer)
        bridge._contract.functions.withdraw.return_value = _fn()

        with pytest.raises(ClaimReverted) as exc_info:
            await bridge.withdraw(5, 7, 42, [])
        assert exc_info.value.kind is ClaimFailureKind.USER_REJECTED
        web3.eth.send_raw_transaction.assert_not_awaited()

    async def test_insufficient_funds_on_send(self):
        web3 = _web3([])
        web3.eth.send_raw_transaction = AsyncMock(
            side_effect=ValueError("insufficient funds for gas * price + value")
        )
        bridge = await _bridge(web3)
        bridge._contract.functions.withdraw.return_value = _fn()

        with pytest.raises(ClaimReverted) as exc_info:
            await bridge.withdraw(5, 7, 42, [])
        assert exc_info.value.kind is ClaimFailureKind.INSUFFICIENT_FUNDS


# ---------------------------------------------------------------------------
# Deposits and reads
# ---------------------------------------------------------------------------


class TestDepositAndReads:
    async def test_deposit_sends_value(self):
        bridge = await _bridge(_web3([_mined()]))
        fn = _fn()
        bridge._contract.functions.deposit.return_value = fn

        receipt = await bridge.deposit(10**16)
        assert receipt.succeeded
        assert fn.build_transaction.call_args.args[0]["value"] == 10**16

    async def test_deposit_failure_is_transaction_failed(self):
        bridge = await _bridge(_web3([_mined(status=0)]))
        bridge._contract.functions.deposit.return_value = _fn()

        with pytest.raises(TransactionFailed):
            await bridge.deposit(10**16)

    async def test_deposit_rejects_zero(self):
        bridge = await _bridge(_web3([]))
        with pytest.raises(ValidationError):
            await bridge.deposit(0)

    async def test_contract_balance(self):
        web3 = _web3([])
        bridge = await _bridge(web3)
        assert await bridge.get_balance() == 5 * 10**18
        web3.eth.get_balance.assert_awaited_once_with(BRIDGE)

    async def test_rpc_failure_is_network_error(self):
        web3 = _web3([])
        web3.eth.get_balance = AsyncMock(side_effect=OSError("connection reset"))
        bridge = await _bridge(web3)
        with pytest.raises(NetworkError):
            await bridge.get_account_balance(SENDER)

    async def test_escape_hatch_calls(self):
        bridge = await _bridge(_web3([_mined(), _mined()]))
        bridge._contract.functions.initiateForceWithdrawal.return_value = _fn()
        bridge._contract.functions.proveCensorship.return_value = _fn()

        await bridge.initiate_force_withdrawal(5, 7)
        await bridge.prove_censorship(SENDER.lower(), 5, 7)

        bridge._contract.functions.initiateForceWithdrawal.assert_called_once_with(5, 7)
        bridge._contract.functions.proveCensorship.assert_called_once_with(SENDER, 5, 7)


class TestClassifyFailure:
    @pytest.mark.parametrize(
        ("text", "kind"),
        [
            ("MetaMask Tx Signature: User denied transaction signature.", ClaimFailureKind.USER_REJECTED),
            ("insufficient funds for gas", ClaimFailureKind.INSUFFICIENT_FUNDS),
            ("out of gas", ClaimFailureKind.OUT_OF_GAS),
            ("execution reverted: Invalid merkle proof", ClaimFailureKind.INVALID_PROOF),
            ("execution reverted: Nonce already used", ClaimFailureKind.ALREADY_PROCESSED),
            ("execution reverted", ClaimFailureKind.REVERTED),
        ],
    )
    def test_text(self, text: str, kind: ClaimFailureKind):
        assert classify_failure(text) is kind

    @pytest.mark.parametrize(
        ("text", "kind"),
        [
            (
                "insufficient funds for gas * price + value: address 0xf39F have 140012 want 990000",
                ClaimFailureKind.INSUFFICIENT_FUNDS,
            ),
            ("execution reverted: invalid proof (batch 4001)", ClaimFailureKind.INVALID_PROOF),
            ("execution reverted: already claimed nonce 40010", ClaimFailureKind.ALREADY_PROCESSED),
            ("execution reverted at block 14001", ClaimFailureKind.REVERTED),
        ],
    )
    def test_embedded_numbers_do_not_mean_rejection(self, text: str, kind: ClaimFailureKind):
        assert classify_failure(text) is kind

    def test_provider_code_attribute(self):
        error = RuntimeError("request failed")
        error.code = 4001
        assert classify_failure(error) is ClaimFailureKind.USER_REJECTED

    def test_provider_error_dict(self):
        error = ValueError({"code": 4001, "message": "request failed"})
        assert classify_failure(error) is ClaimFailureKind.USER_REJECTED

    def test_code_in_text(self):
        assert classify_failure("rpc error: code=4001") is ClaimFailureKind.USER_REJECTED

    def test_other_provider_code(self):
        error = ValueError({"code": -32000, "message": "insufficient funds for gas"})
        assert classify_failure(error) is ClaimFailureKind.INSUFFICIENT_FUNDS

    def test_signing_rejected(self):
        assert classify_failure(SigningRejected()) is ClaimFailureKind.USER_REJECTED
