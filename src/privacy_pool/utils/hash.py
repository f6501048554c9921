"""Cryptographic hash utilities."""

from typing import Any, Sequence, Union

from Crypto.Hash import keccak

from privacy_pool.utils.encoding import abi_encode

# BN254 scalar field; every public signal and tree node lives below it
SNARK_SCALAR_FIELD = 21888242871839275222246405745257275088548364400416034343698204186575808495617

NULLIFIER_DOMAIN = 1

ASSET_METADATA_TYPES = ("address", "uint256")
WITHDRAW_METADATA_TYPES = (
    "address",  # recipient
    "uint256",  # refund
    "address",  # relayer
    "uint256",  # fee
    "uint256",  # deadline
    "uint8",  # accessType
    "uint24",  # bitLength
    "bytes",  # subsetData
)


def keccak256(data: Union[bytes, str]) -> bytes:
    """
    Compute Keccak-256 (the Ethereum variant, not SHA3-256) of data.

    Args:
        data: Bytes or string to hash

    Returns:
        bytes: 32-byte digest
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return keccak.new(digest_bits=256, data=data).digest()


def hash_mod(types: Sequence[str], values: Sequence[Any]) -> int:
    """
    Hash ABI-encoded values into the SNARK scalar field.

    Computes ``keccak256(abi.encode(values)) mod p`` so that arbitrary
    on-chain data can be fed to the circuit as a single public signal.

    Args:
        types: Solidity type names
        values: Values to encode

    Returns:
        int: Field element
    """
    digest = keccak256(abi_encode(types, values))
    return int.from_bytes(digest, "big") % SNARK_SCALAR_FIELD


def hash_string(value: str) -> int:
    """Map a domain seed string to a field element."""
    return hash_mod(["string"], [value])


def asset_metadata(asset: str, denomination: int) -> int:
    """
    Compute the asset metadata binding a commitment to one pool.

    Args:
        asset: Asset address (the native sentinel for native-coin pools)
        denomination: Fixed pool amount

    Returns:
        int: Field element
    """
    return hash_mod(ASSET_METADATA_TYPES, [asset, denomination])


def withdraw_metadata(
    recipient: str,
    refund: int,
    relayer: str,
    fee: int,
    deadline: int,
    access_type: int,
    bit_length: int,
    subset_data: Union[bytes, str],
) -> int:
    """
    Compute the withdrawal metadata public signal.

    The hash commits the proof to every caller-chosen withdrawal field, so
    changing any single one of them invalidates a previously valid proof.
    """
    return hash_mod(
        WITHDRAW_METADATA_TYPES,
        [recipient, refund, relayer, fee, deadline, access_type, bit_length, subset_data],
    )
