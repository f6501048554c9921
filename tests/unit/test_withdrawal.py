"""Tests for withdrawal validation and settlement."""

import dataclasses
import logging

import pytest

from conftest import DENOMINATION, DEPOSITOR, POOL_ADDRESS, RECIPIENT, RELAYER, STRANGER, TOKEN
from privacy_pool.core.pool import PrivacyPool
from privacy_pool.core.withdrawal import WithdrawalProof, WithdrawRequest
from privacy_pool.exceptions import (
    CallExpired,
    FeeExceedsDenomination,
    InvalidZKProof,
    MsgValueInvalid,
    NoteAlreadySpent,
    RelayerMismatch,
    UnknownRoot,
    ZeroAddress,
)
from privacy_pool.utils.encoding import NATIVE_ASSET, ZERO_ADDRESS

FEE = DENOMINATION // 10


class TestWithdrawalProof:
    """Tests for the proof record."""

    def test_addresses_normalized(self, funded_native_pool, prove):
        pool, notes = funded_native_pool
        proof = prove(pool, notes[0], 0, recipient=RECIPIENT.upper().replace("0X", "0x"))
        assert proof.recipient == RECIPIENT

    def test_public_signal_order(self, funded_native_pool, prove):
        pool, notes = funded_native_pool
        proof = prove(pool, notes[0], 0)
        signals = proof.public_signals(pool.asset_metadata)
        assert signals == (proof.root, proof.subset_root, proof.nullifier, pool.asset_metadata,
                           proof.withdraw_metadata)

    def test_to_dict(self, funded_native_pool, prove):
        pool, notes = funded_native_pool
        data = prove(pool, notes[0], 0, subset_data=b"\x01").to_dict()
        assert data["subset_data"] == "0x01"
        assert len(data["flat_proof"]) == 8
        assert data["nullifier"].startswith("0x")


class TestSettlement:
    """Tests for successful withdrawals."""

    def test_fee_split(self, bank, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        relayer_before = bank.balance_of(NATIVE_ASSET, RELAYER)
        proof = prove(pool, notes[1], 1, fee=FEE)

        event = pool.withdraw(RELAYER, request_for(proof))

        assert bank.balance_of(NATIVE_ASSET, RECIPIENT) == DENOMINATION - FEE
        assert bank.balance_of(NATIVE_ASSET, RELAYER) == relayer_before + FEE
        assert bank.balance_of(NATIVE_ASSET, POOL_ADDRESS) == 2 * DENOMINATION
        assert event.fee == FEE
        assert event.nullifier == notes[1].nullifier(1)
        assert pool.is_spent(event.nullifier)

    def test_zero_fee_receiver_waives_fee(self, bank, funded_native_pool, prove, request_for):
        """Test that a zero fee receiver sends the full amount to the recipient."""
        pool, notes = funded_native_pool
        proof = prove(pool, notes[0], 0, fee=FEE)

        event = pool.withdraw(RELAYER, request_for(proof, fee_receiver=ZERO_ADDRESS))

        assert bank.balance_of(NATIVE_ASSET, RECIPIENT) == DENOMINATION
        assert event.fee == FEE

    def test_fee_equal_to_denomination(self, bank, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0, fee=DENOMINATION)))
        assert bank.balance_of(NATIVE_ASSET, RECIPIENT) == 0

    def test_zero_relayer_allows_anyone(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        proof = prove(pool, notes[0], 0, relayer=ZERO_ADDRESS)
        event = pool.withdraw(STRANGER, request_for(proof, fee_receiver=ZERO_ADDRESS))
        assert event.relayer == ZERO_ADDRESS

    def test_deadline_in_future(self, bank, verifier, make_note, prove, request_for):
        pool = PrivacyPool.with_bank(
            bank, asset=NATIVE_ASSET, denomination=DENOMINATION, verifier=verifier,
            address=POOL_ADDRESS, depth=4, clock=lambda: 1000.0,
        )
        note = make_note(pool, 7)
        pool.deposit(DEPOSITOR, note.raw_commitment, value=DENOMINATION)
        pool.withdraw(RELAYER, request_for(prove(pool, note, 0, deadline=1000)))
        assert pool.is_spent(note.nullifier(0))

    def test_old_root_accepted(self, funded_native_pool, make_note, prove, request_for):
        """Test that a proof against an earlier root stays valid after more deposits."""
        pool, notes = funded_native_pool
        proof = prove(pool, notes[0], 0)
        pool.deposit(DEPOSITOR, make_note(pool, 99).raw_commitment, value=DENOMINATION)
        assert proof.root != pool.latest_root()
        pool.withdraw(RELAYER, request_for(proof))

    def test_token_refund(self, bank, funded_token_pool, prove, request_for):
        """Test that the attached native value is forwarded to the recipient as the refund."""
        pool, notes = funded_token_pool
        refund = 10**15
        relayer_native = bank.balance_of(NATIVE_ASSET, RELAYER)
        proof = prove(pool, notes[0], 0, fee=FEE, refund=refund)

        pool.withdraw(RELAYER, request_for(proof), value=refund)

        assert bank.balance_of(TOKEN, RECIPIENT) == DENOMINATION - FEE
        assert bank.balance_of(TOKEN, RELAYER) == FEE
        assert bank.balance_of(NATIVE_ASSET, RECIPIENT) == refund
        assert bank.balance_of(NATIVE_ASSET, RELAYER) == relayer_native - refund
        assert bank.balance_of(NATIVE_ASSET, POOL_ADDRESS) == 0


class TestGates:
    """Tests for each rejection, and that a rejection changes nothing."""

    def test_expired_deadline(self, bank, verifier, make_note, prove, request_for):
        pool = PrivacyPool.with_bank(
            bank, asset=NATIVE_ASSET, denomination=DENOMINATION, verifier=verifier,
            address=POOL_ADDRESS, depth=4, clock=lambda: 1000.0,
        )
        note = make_note(pool, 7)
        pool.deposit(DEPOSITOR, note.raw_commitment, value=DENOMINATION)
        with pytest.raises(CallExpired):
            pool.withdraw(RELAYER, request_for(prove(pool, note, 0, deadline=999)))

    def test_zero_recipient(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        with pytest.raises(ZeroAddress):
            pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0, recipient=ZERO_ADDRESS)))

    def test_fee_exceeds_denomination(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        with pytest.raises(FeeExceedsDenomination):
            pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0, fee=DENOMINATION + 1)))

    def test_native_refund_rejected(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        with pytest.raises(MsgValueInvalid):
            pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0, refund=1)), value=1)

    def test_native_value_rejected(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        with pytest.raises(MsgValueInvalid):
            pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0)), value=1)

    def test_token_value_must_match_refund(self, funded_token_pool, prove, request_for):
        pool, notes = funded_token_pool
        with pytest.raises(MsgValueInvalid):
            pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0, refund=5)), value=4)

    def test_wrong_caller(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        with pytest.raises(RelayerMismatch):
            pool.withdraw(STRANGER, request_for(prove(pool, notes[0], 0)))

    def test_unknown_root(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        with pytest.raises(UnknownRoot):
            pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0, root=12345)))

    def test_double_spend(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        proof = prove(pool, notes[0], 0)
        pool.withdraw(RELAYER, request_for(proof))
        with pytest.raises(NoteAlreadySpent):
            pool.withdraw(RELAYER, request_for(proof))

    def test_forged_proof(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        proof = prove(pool, notes[0], 0)
        forged = dataclasses.replace(proof, flat_proof=(1,) * 8)
        with pytest.raises(InvalidZKProof):
            pool.withdraw(RELAYER, request_for(forged))

    @pytest.mark.parametrize("change", [
        {"fee": FEE + 1},
        {"recipient": STRANGER},
        {"deadline": 10**12},
        {"access_type": 1},
        {"bit_length": 5},
        {"subset_data": b"\x02"},
        {"subset_root": 777},
    ])
    def test_tampered_field_breaks_proof(self, funded_native_pool, prove, request_for, change):
        """Test that changing any bound field after proving invalidates the proof."""
        pool, notes = funded_native_pool
        tampered = dataclasses.replace(prove(pool, notes[0], 0, fee=FEE), **change)
        with pytest.raises(InvalidZKProof):
            pool.withdraw(RELAYER, request_for(tampered))

    def test_proof_bound_to_pool(self, funded_native_pool, token_pool, prove):
        """Test that a proof made for one pool's asset metadata fails in another."""
        pool, notes = funded_native_pool
        proof = prove(pool, notes[0], 0)
        verifier_calls = pool.verifier.calls
        with pytest.raises(InvalidZKProof):
            token_pool.verify_withdrawal(proof)
        assert pool.verifier.calls == verifier_calls + 1

    def test_failure_changes_nothing(self, bank, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        before = (bank.snapshot(), pool.latest_root(), len(pool.events))
        with pytest.raises(UnknownRoot):
            pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0, root=1)))
        assert (bank.snapshot(), pool.latest_root(), len(pool.events)) == before
        assert not pool.is_spent(notes[0].nullifier(0))


class TestGateOrder:
    """Tests that cheaper checks run first and the verifier runs last."""

    def test_deadline_before_root(self, bank, verifier, make_note, prove, request_for):
        pool = PrivacyPool.with_bank(
            bank, asset=NATIVE_ASSET, denomination=DENOMINATION, verifier=verifier,
            address=POOL_ADDRESS, depth=4, clock=lambda: 1000.0,
        )
        note = make_note(pool, 7)
        with pytest.raises(CallExpired):
            pool.withdraw(STRANGER, request_for(prove(pool, note, 0, deadline=1, root=5)))

    def test_relayer_before_root(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        with pytest.raises(RelayerMismatch):
            pool.withdraw(STRANGER, request_for(prove(pool, notes[0], 0, root=5)))

    def test_root_before_nullifier(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0)))
        with pytest.raises(UnknownRoot):
            pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0, root=5)))

    def test_verifier_not_called_when_gate_fails(self, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        with pytest.raises(RelayerMismatch):
            pool.withdraw(STRANGER, request_for(prove(pool, notes[0], 0)))
        assert pool.verifier.calls == 0


class TestWithdrawalLogging:
    """Tests for the state transitions reported in logs."""

    def test_successful_transitions(self, caplog, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        caplog.set_level(logging.DEBUG, logger="privacy_pool.core.withdrawal")
        pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0)))
        messages = [r.getMessage() for r in caplog.records if r.name == "privacy_pool.core.withdrawal"]
        assert any("RECEIVED -> VALIDATED" in m for m in messages)
        assert any("VALIDATED -> PROOF_CHECKED" in m for m in messages)
        assert any("PROOF_CHECKED -> SETTLED" in m for m in messages)

    def test_abort_logged(self, caplog, funded_native_pool, prove, request_for):
        pool, notes = funded_native_pool
        caplog.set_level(logging.DEBUG, logger="privacy_pool.core.withdrawal")
        with pytest.raises(UnknownRoot):
            pool.withdraw(RELAYER, request_for(prove(pool, notes[0], 0, root=5)))
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING and r.name == "privacy_pool.core.withdrawal"]
        assert len(warnings) == 1
        assert "RECEIVED" in warnings[0].getMessage()
        assert "UnknownRoot" in warnings[0].getMessage()


class TestWithdrawRequest:
    """Tests for the request wrapper."""

    def test_fee_receiver_normalized(self):
        proof = WithdrawalProof(
            access_type=0, bit_length=4, subset_data="0x", flat_proof=[0] * 8, root=1,
            subset_root=2, nullifier=3, recipient=RECIPIENT, refund=0, relayer=RELAYER, fee=0,
        )
        request = WithdrawRequest(proof=proof, fee_receiver=RELAYER.upper().replace("0X", "0x"))
        assert request.fee_receiver == RELAYER
        assert proof.subset_data == b""
        assert proof.flat_proof == (0,) * 8
