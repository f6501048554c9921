"""Custom exceptions for the privacy pool engine."""


class PrivacyPoolError(Exception):
    """Base exception for all privacy pool errors."""

    code = "PrivacyPoolError"


# Input Errors
class InputError(PrivacyPoolError):
    """Base exception for malformed or disallowed call inputs."""

    code = "InputError"


class MsgValueInvalid(InputError):
    """Raised when the attached native value does not match what the call requires."""

    code = "MsgValueInvalid"


class ZeroAddress(InputError):
    """Raised when a required address is the zero address."""

    code = "ZeroAddress"


class DenominationInvalid(InputError):
    """Raised when a pool is created with a zero denomination."""

    code = "DenominationInvalid"


class FeeExceedsDenomination(InputError):
    """Raised when the relayer fee is larger than the pool denomination."""

    code = "FeeExceedsDenomination"


class PoolInputNotAllowed(InputError):
    """Raised when pool creation parameters are not allowed."""

    code = "PoolInputNotAllowed"


class CallExpired(InputError):
    """Raised when a withdrawal is submitted after its deadline."""

    code = "CallExpired"


class FieldElementInvalid(InputError):
    """Raised when a value does not fit in the SNARK scalar field."""

    code = "FieldElementInvalid"


# Capacity Errors
class CapacityError(PrivacyPoolError):
    """Base exception for exhausted resources."""

    code = "CapacityError"


class MerkleTreeCapacity(CapacityError):
    """Raised when inserting into a full Merkle tree."""

    code = "MerkleTreeCapacity"


# Integrity Errors
class IntegrityError(PrivacyPoolError):
    """Base exception for proofs that do not match the pool state."""

    code = "IntegrityError"


class UnknownRoot(IntegrityError):
    """Raised when a proof references a root the tree never produced."""

    code = "UnknownRoot"


class InvalidZKProof(IntegrityError):
    """Raised when the verifier rejects a withdrawal proof."""

    code = "InvalidZKProof"


class NoteAlreadySpent(IntegrityError):
    """Raised when attempting to spend the same note twice."""

    code = "NoteAlreadySpent"


class RelayerMismatch(IntegrityError):
    """Raised when the caller is not the relayer bound into the proof."""

    code = "RelayerMismatch"


class InvalidLeafIndex(IntegrityError):
    """Raised when a leaf index was never written."""

    code = "InvalidLeafIndex"


# Transfer Errors
class TransferError(PrivacyPoolError):
    """Base exception for failed asset movement."""

    code = "TransferError"


class FailedInnerCall(TransferError):
    """Raised when an outgoing transfer is rejected or re-enters the pool."""

    code = "FailedInnerCall"


class InsufficientBalance(TransferError):
    """Raised when an account cannot cover a pull."""

    code = "InsufficientBalance"


# Registry Errors
class RegistryError(PrivacyPoolError):
    """Base exception for pool registry errors."""

    code = "RegistryError"


class PreviousPoolTreeLimitNotReached(RegistryError):
    """Raised when a new pool is requested while the previous one still has room."""

    code = "PreviousPoolTreeLimitNotReached"


# Storage Errors
class StorageError(PrivacyPoolError):
    """Base exception for storage errors."""

    code = "StorageError"
