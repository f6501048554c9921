"""Cryptographic primitives module"""

from privacy_pool.crypto.poseidon import poseidon

from privacy_pool.crypto.groth16 import (
    FLAT_PROOF_LENGTH,
    Groth16Verifier,
    ProofVerifier,
    VerificationKey,
    flatten_proof,
    unflatten_proof,
)

__all__ = [
    'poseidon',
    'FLAT_PROOF_LENGTH',
    'Groth16Verifier',
    'ProofVerifier',
    'VerificationKey',
    'flatten_proof',
    'unflatten_proof',
]
