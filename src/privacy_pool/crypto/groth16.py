"""Groth16 proof verification over BN254.

The withdrawal circuit is proven with Groth16. The pool treats the verifier as
an oracle: it hands over the ordered public signals and the flat proof blob,
and gets back a boolean.

Flat proof layout (matches the Solidity verifier calldata)::

    [A.x, A.y, B.x.c1, B.x.c0, B.y.c1, B.y.c0, C.x, C.y]

Verification equation::

    e(-A, B) * e(alpha, beta) * e(vk_x, gamma) * e(C, delta) == 1
    vk_x = IC[0] + sum(signal_i * IC[i + 1])
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    FQ12,
    add,
    b,
    b2,
    curve_order,
    field_modulus,
    final_exponentiate,
    is_on_curve,
    multiply,
    neg,
    normalize,
    pairing,
)

logger = logging.getLogger(__name__)

FLAT_PROOF_LENGTH = 8


class ProofVerifier(ABC):
    """Proof-verification oracle consumed by the withdrawal engine."""

    @abstractmethod
    def verify(self, public_signals: Sequence[int], flat_proof: Sequence[int]) -> bool:
        """Return True if ``flat_proof`` proves the circuit for ``public_signals``."""


def _g1_point(coords: Sequence[Any]) -> Tuple[FQ, FQ, FQ]:
    x, y = int(coords[0]), int(coords[1])
    return (FQ(x), FQ(y), FQ.one())


def _g2_point(coords: Sequence[Sequence[Any]]) -> Tuple[FQ2, FQ2, FQ2]:
    x = FQ2([int(coords[0][0]), int(coords[0][1])])
    y = FQ2([int(coords[1][0]), int(coords[1][1])])
    return (x, y, FQ2.one())


def _as_int(value: Any) -> int:
    return int(getattr(value, "n", value))


def g1_to_json(point) -> List[str]:
    """Serialize a G1 point in snarkjs form ``[x, y, "1"]``."""
    x, y = normalize(point)
    return [str(_as_int(x)), str(_as_int(y)), "1"]


def g2_to_json(point) -> List[List[str]]:
    """Serialize a G2 point in snarkjs form ``[[x0, x1], [y0, y1], ["1", "0"]]``."""
    x, y = normalize(point)
    return [
        [str(_as_int(x.coeffs[0])), str(_as_int(x.coeffs[1]))],
        [str(_as_int(y.coeffs[0])), str(_as_int(y.coeffs[1]))],
        ["1", "0"],
    ]


def flatten_proof(proof: Dict[str, Any]) -> List[int]:
    """
    Flatten a snarkjs proof object into the 8-element calldata layout.

    Args:
        proof: Dict with ``pi_a``, ``pi_b`` and ``pi_c``

    Returns:
        List[int]: Flat proof
    """
    pi_a, pi_b, pi_c = proof["pi_a"], proof["pi_b"], proof["pi_c"]
    return [
        int(pi_a[0]),
        int(pi_a[1]),
        int(pi_b[0][1]),
        int(pi_b[0][0]),
        int(pi_b[1][1]),
        int(pi_b[1][0]),
        int(pi_c[0]),
        int(pi_c[1]),
    ]


def unflatten_proof(flat_proof: Sequence[int]) -> Dict[str, Any]:
    """Inverse of :func:`flatten_proof`."""
    if len(flat_proof) != FLAT_PROOF_LENGTH:
        raise ValueError(f"Flat proof must have {FLAT_PROOF_LENGTH} elements")
    p = [int(v) for v in flat_proof]
    return {
        "pi_a": [p[0], p[1]],
        "pi_b": [[p[3], p[2]], [p[5], p[4]]],
        "pi_c": [p[6], p[7]],
    }


@dataclass(frozen=True)
class VerificationKey:
    """Groth16 verification key for one circuit."""

    alpha: Tuple[FQ, FQ, FQ]
    beta: Tuple[FQ2, FQ2, FQ2]
    gamma: Tuple[FQ2, FQ2, FQ2]
    delta: Tuple[FQ2, FQ2, FQ2]
    ic: Tuple[Tuple[FQ, FQ, FQ], ...]

    @property
    def n_public(self) -> int:
        return len(self.ic) - 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationKey":
        """Load a key from the snarkjs ``verification_key.json`` layout."""
        if data.get("protocol", "groth16") != "groth16":
            raise ValueError(f"Unsupported protocol: {data.get('protocol')}")
        return cls(
            alpha=_g1_point(data["vk_alpha_1"]),
            beta=_g2_point(data["vk_beta_2"]),
            gamma=_g2_point(data["vk_gamma_2"]),
            delta=_g2_point(data["vk_delta_2"]),
            ic=tuple(_g1_point(point) for point in data["IC"]),
        )


class Groth16Verifier(ProofVerifier):
    """
    Groth16 verifier backed by py_ecc's optimized BN254 pairing.

    Malformed input (wrong length, coordinates outside the base field, points
    off the curve, signals outside the scalar field) makes ``verify`` return
    False instead of raising, so the caller sees a single binary outcome.
    """

    def __init__(self, verification_key: VerificationKey):
        self.vk = verification_key

    @classmethod
    def from_json(cls, source: Union[str, Path, Dict[str, Any]]) -> "Groth16Verifier":
        """Build a verifier from a snarkjs key given as a dict or a JSON file path."""
        if isinstance(source, dict):
            data = source
        else:
            with open(source, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        return cls(VerificationKey.from_dict(data))

    def verify(self, public_signals: Sequence[int], flat_proof: Sequence[int]) -> bool:
        if len(public_signals) != self.vk.n_public:
            logger.debug("Expected %d public signals, got %d", self.vk.n_public, len(public_signals))
            return False
        if len(flat_proof) != FLAT_PROOF_LENGTH:
            return False
        if any(not 0 <= int(s) < curve_order for s in public_signals):
            return False
        if any(not 0 <= int(v) < field_modulus for v in flat_proof):
            return False

        p = [int(v) for v in flat_proof]
        a = (FQ(p[0]), FQ(p[1]), FQ.one())
        b_point = (FQ2([p[3], p[2]]), FQ2([p[5], p[4]]), FQ2.one())
        c = (FQ(p[6]), FQ(p[7]), FQ.one())

        if not (is_on_curve(a, b) and is_on_curve(c, b) and is_on_curve(b_point, b2)):
            return False

        vk_x = self.vk.ic[0]
        for signal, ic_point in zip(public_signals, self.vk.ic[1:]):
            vk_x = add(vk_x, multiply(ic_point, int(signal)))

        pairs = [
            (b_point, neg(a)),
            (self.vk.beta, self.vk.alpha),
            (self.vk.gamma, vk_x),
            (self.vk.delta, c),
        ]

        product = FQ12.one()
        for g2_point, g1_point in pairs:
            if g1_point[2] == FQ.zero():
                # point at infinity contributes the identity
                continue
            product = product * pairing(g2_point, g1_point, final_exponentiate=False)

        return final_exponentiate(product) == FQ12.one()


__all__ = [
    "FLAT_PROOF_LENGTH",
    "Groth16Verifier",
    "ProofVerifier",
    "VerificationKey",
    "flatten_proof",
    "g1_to_json",
    "g2_to_json",
    "unflatten_proof",
]
