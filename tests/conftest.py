"""Pytest configuration and fixtures."""

import dataclasses

import pytest
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from privacy_pool.core.commitment import Commitment  # noqa: E402
from privacy_pool.core.pool import PrivacyPool  # noqa: E402
from privacy_pool.core.transfer import Bank  # noqa: E402
from privacy_pool.core.withdrawal import WithdrawalProof, WithdrawRequest  # noqa: E402
from privacy_pool.crypto.groth16 import FLAT_PROOF_LENGTH, ProofVerifier  # noqa: E402
from privacy_pool.crypto.poseidon import poseidon  # noqa: E402
from privacy_pool.utils.encoding import NATIVE_ASSET  # noqa: E402
from privacy_pool.utils.hash import hash_mod, hash_string  # noqa: E402

DEPOSITOR = "0x" + "a1" * 20
RECIPIENT = "0x" + "b2" * 20
RELAYER = "0x" + "c3" * 20
STRANGER = "0x" + "d4" * 20
POOL_ADDRESS = "0x" + "50" * 20
TOKEN = "0x" + "70" * 20

DENOMINATION = 10**18
TEST_DEPTH = 4


def digest_proof(public_signals):
    """Stand-in prover: a proof blob that only matches these exact signals."""
    signals = [int(s) for s in public_signals]
    return [hash_mod(["uint256"] * 6, signals + [i]) for i in range(FLAT_PROOF_LENGTH)]


class DigestVerifier(ProofVerifier):
    """Accepts exactly the blobs produced by :func:`digest_proof`."""

    def __init__(self):
        self.calls = 0

    def verify(self, public_signals, flat_proof):
        self.calls += 1
        return list(flat_proof) == digest_proof(public_signals)


def reference_root(leaves, depth, seed="empty", hasher=poseidon):
    """Root of a full binary tree over ``leaves`` padded with empty subtrees."""
    zeros = [hash_string(seed)]
    for _ in range(depth):
        zeros.append(hasher(zeros[-1], zeros[-1]))
    if not leaves:
        return zeros[depth]

    layer = list(leaves)
    for level in range(depth):
        if len(layer) % 2:
            layer.append(zeros[level])
        layer = [hasher(layer[i], layer[i + 1]) for i in range(0, len(layer), 2)]
    return layer[0]


def build_withdrawal(
    pool,
    note,
    index,
    recipient=RECIPIENT,
    relayer=RELAYER,
    fee=0,
    refund=0,
    deadline=0,
    access_type=0,
    bit_length=TEST_DEPTH,
    subset_data=b"",
    subset_root=None,
    root=None,
):
    """Assemble a withdrawal of ``note`` (deposited at ``index``) with a matching digest proof."""
    unsigned = WithdrawalProof(
        access_type=access_type,
        bit_length=bit_length,
        subset_data=subset_data,
        flat_proof=(0,) * FLAT_PROOF_LENGTH,
        root=pool.latest_root() if root is None else root,
        subset_root=hash_string("subset-root") if subset_root is None else subset_root,
        nullifier=note.nullifier(index),
        recipient=recipient,
        refund=refund,
        relayer=relayer,
        fee=fee,
        deadline=deadline,
    )
    flat = digest_proof(unsigned.public_signals(pool.asset_metadata))
    return dataclasses.replace(unsigned, flat_proof=tuple(flat))


@pytest.fixture
def temp_db(tmp_path):
    """Fixture providing a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def verifier():
    return DigestVerifier()


@pytest.fixture
def bank():
    """Bank with funded depositor, relayer and a token with supply."""
    bank = Bank()
    bank.mint(NATIVE_ASSET, DEPOSITOR, 100 * DENOMINATION)
    bank.mint(NATIVE_ASSET, RELAYER, 10 * DENOMINATION)
    bank.mint(TOKEN, DEPOSITOR, 100 * DENOMINATION)
    return bank


@pytest.fixture
def native_pool(bank, verifier):
    """Empty native-coin pool with a small tree."""
    return PrivacyPool.with_bank(
        bank, asset=NATIVE_ASSET, denomination=DENOMINATION, verifier=verifier,
        address=POOL_ADDRESS, depth=TEST_DEPTH,
    )


@pytest.fixture
def token_pool(bank, verifier):
    """Empty token pool with a small tree."""
    return PrivacyPool.with_bank(
        bank, asset=TOKEN, denomination=DENOMINATION, verifier=verifier,
        address=POOL_ADDRESS, depth=TEST_DEPTH,
    )


@pytest.fixture
def make_note():
    """Factory for notes of a given pool, with deterministic secrets."""
    def _make(pool, secret):
        return Commitment.create_note(pool.asset, pool.denomination, secret=secret)
    return _make


@pytest.fixture
def funded_native_pool(native_pool, make_note):
    """Native pool holding three deposits; returns (pool, notes)."""
    notes = [make_note(native_pool, secret) for secret in (11, 22, 33)]
    for note in notes:
        native_pool.deposit(DEPOSITOR, note.raw_commitment, value=DENOMINATION)
    return native_pool, notes


@pytest.fixture
def funded_token_pool(token_pool, make_note):
    """Token pool holding two deposits; returns (pool, notes)."""
    notes = [make_note(token_pool, secret) for secret in (44, 55)]
    for note in notes:
        token_pool.deposit(DEPOSITOR, note.raw_commitment)
    return token_pool, notes


@pytest.fixture
def prove():
    return build_withdrawal


@pytest.fixture
def request_for():
    def _request(proof, fee_receiver=RELAYER):
        return WithdrawRequest(proof=proof, fee_receiver=fee_receiver)
    return _request


