#!/usr/bin/env python3
"""
Quick start guide for the privacy pool.

Run this to see a complete deposit and withdrawal with a compliance subset.

The Groth16 key below is built from known scalars so that the script can
produce proofs without a circuit. Anyone holding those scalars can forge
proofs; real deployments load ``verification_key.json`` from their trusted
setup instead.
"""

import sys
from dataclasses import replace
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from py_ecc.optimized_bn128 import G1, G2, curve_order, multiply

from privacy_pool import (
    AccessType,
    Bank,
    Commitment,
    PoolRegistry,
    SubsetTree,
    WithdrawalProof,
    WithdrawRequest,
)
from privacy_pool.config import configure_logging
from privacy_pool.crypto.groth16 import Groth16Verifier, flatten_proof, g1_to_json, g2_to_json
from privacy_pool.utils.encoding import NATIVE_ASSET, field_to_hex

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
RELAYER = "0x" + "c3" * 20
FRESH_ADDRESS = "0x" + "e5" * 20

ALPHA, BETA, GAMMA, DELTA = 3, 5, 7, 11
IC = [13, 17, 19, 23, 29, 31]


def toy_setup():
    """Return a verifier and a matching prover over a key with known scalars."""
    vk = {
        "protocol": "groth16",
        "vk_alpha_1": g1_to_json(multiply(G1, ALPHA)),
        "vk_beta_2": g2_to_json(multiply(G2, BETA)),
        "vk_gamma_2": g2_to_json(multiply(G2, GAMMA)),
        "vk_delta_2": g2_to_json(multiply(G2, DELTA)),
        "IC": [g1_to_json(multiply(G1, s)) for s in IC],
    }

    def prove(signals, a=4, b=6):
        x = (IC[0] + sum(s * k for s, k in zip(signals, IC[1:]))) % curve_order
        c = (a * b - ALPHA * BETA - x * GAMMA) * pow(DELTA, -1, curve_order) % curve_order
        return flatten_proof({
            "pi_a": g1_to_json(multiply(G1, a)),
            "pi_b": g2_to_json(multiply(G2, b)),
            "pi_c": g1_to_json(multiply(G1, c)),
        })

    return Groth16Verifier.from_json(vk), prove


def main():
    """Run a simple example of the privacy pool."""
    configure_logging("WARNING")

    print("=" * 70)
    print("PRIVACY POOL QUICK START EXAMPLE")
    print("=" * 70)
    print()

    # Step 1: Create a pool
    print("Step 1: Create a 1-coin pool for the native asset")
    print("-" * 70)
    verifier, prove = toy_setup()
    bank = Bank()
    bank.mint(NATIVE_ASSET, ALICE, 5 * 10**18)
    bank.mint(NATIVE_ASSET, BOB, 5 * 10**18)
    bank.mint(NATIVE_ASSET, RELAYER, 10**18)
    registry = PoolRegistry(bank, verifier, depth=8)
    pool = registry.create_pool(NATIVE_ASSET, 18)
    print(f"✓ Pool created at {pool.address} (256 deposits of 10**18)")
    print()

    # Step 2: Deposits
    print("Step 2: Alice and Bob deposit")
    print("-" * 70)
    alice_note = Commitment.create_note(pool.asset, pool.denomination)
    bob_note = Commitment.create_note(pool.asset, pool.denomination)
    alice_event = pool.deposit(ALICE, alice_note.raw_commitment, value=pool.denomination)
    pool.deposit(BOB, bob_note.raw_commitment, value=pool.denomination)
    print(f"✓ Alice's commitment at index {alice_event.index}: {field_to_hex(alice_event.commitment)[:18]}...")
    print(f"  Root: {field_to_hex(pool.latest_root())[:18]}...")
    print()

    # Step 3: Compliance subset
    print("Step 3: A compliance actor publishes a block list")
    print("-" * 70)
    subset = SubsetTree(AccessType.BLOCKLIST, depth=8)
    subset.extend_to(len(pool.tree))
    print(f"✓ Nobody blocked, subset root {field_to_hex(subset.root)[:18]}...")
    print()

    # Step 4: Withdrawal through a relayer
    print("Step 4: Alice withdraws to a fresh address through a relayer")
    print("-" * 70)
    fee = 10**16
    unsigned = WithdrawalProof(
        access_type=int(AccessType.BLOCKLIST),
        bit_length=8,
        subset_data=b"",
        flat_proof=(0,) * 8,
        root=pool.latest_root(),
        subset_root=subset.root,
        nullifier=alice_note.nullifier(alice_event.index),
        recipient=FRESH_ADDRESS,
        refund=0,
        relayer=RELAYER,
        fee=fee,
    )
    proof = replace(unsigned, flat_proof=tuple(prove(unsigned.public_signals(pool.asset_metadata))))
    event = pool.withdraw(RELAYER, WithdrawRequest(proof, fee_receiver=RELAYER))
    print("✓ Withdrawal successful!")
    print(f"  Nullifier: {field_to_hex(event.nullifier)[:18]}...")
    print(f"  Fresh address balance: {bank.balance_of(NATIVE_ASSET, FRESH_ADDRESS)}")
    print()

    # Step 5: Status
    print("Step 5: Pool Status")
    print("-" * 70)
    state = pool.get_state()
    print(f"  Deposits: {state['next_index']}")
    print(f"  Spent nullifiers: {state['num_nullifiers']}")
    print(f"  Pool balance: {bank.balance_of(NATIVE_ASSET, pool.address)}")
    print()

    print("=" * 70)
    print("✓ QUICK START COMPLETE")
    print("=" * 70)


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
