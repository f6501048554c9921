"""Encoding and decoding utilities."""

import re
from typing import Any, List, Sequence, Union

ZERO_ADDRESS = "0x" + "00" * 20
NATIVE_ASSET = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_UINT_RE = re.compile(r"^uint(\d*)$")


def bytes_to_hex(data: bytes) -> str:
    """
    Convert bytes to hexadecimal string.

    Args:
        data: Bytes to convert

    Returns:
        str: Hexadecimal string with '0x' prefix
    """
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """
    Convert hexadecimal string to bytes.

    Args:
        hex_str: Hexadecimal string (with or without '0x' prefix)

    Returns:
        bytes: Decoded bytes

    Raises:
        ValueError: If hex string is invalid
    """
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]

    if len(hex_str) % 2 != 0:
        raise ValueError("Hex string must have even number of characters")

    return bytes.fromhex(hex_str)


def ensure_bytes(data: Union[bytes, str]) -> bytes:
    """
    Ensure data is in bytes format.

    Hex strings with a '0x' prefix are decoded, anything else is UTF-8 encoded.
    """
    if isinstance(data, bytes):
        return data
    elif isinstance(data, str):
        return hex_to_bytes(data) if data.startswith("0x") else data.encode("utf-8")
    else:
        raise TypeError(f"Expected bytes or str, got {type(data)}")


def normalize_address(address: str) -> str:
    """
    Return the canonical lowercase form of a 20-byte hex address.

    Raises:
        ValueError: If the address is not 0x followed by 40 hex digits
    """
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise ValueError(f"Invalid address: {address!r}")
    return address.lower()


def is_zero_address(address: str) -> bool:
    """Check whether an address is the zero address."""
    return normalize_address(address) == ZERO_ADDRESS


def field_to_hex(value: int) -> str:
    """Format a field element as a 32-byte, 0x-prefixed hex string."""
    return "0x" + value.to_bytes(32, "big").hex()


def hex_to_field(value: Union[str, int]) -> int:
    """Parse a field element given as an int, a decimal string or a 0x hex string."""
    if isinstance(value, int):
        return value
    if value.startswith("0x"):
        return int(value, 16)
    return int(value)


def _encode_uint(bits: int, value: int) -> bytes:
    if not isinstance(value, int) or value < 0 or value >= 2**bits:
        raise ValueError(f"Value {value!r} does not fit in uint{bits}")
    return value.to_bytes(32, "big")


def _encode_dynamic(data: bytes) -> bytes:
    padding = (-len(data)) % 32
    return len(data).to_bytes(32, "big") + data + b"\x00" * padding


def abi_encode(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """
    ABI-encode a tuple of values (non-packed, head/tail layout).

    Supported types are ``address``, ``uint`` / ``uintN``, ``bytes`` and
    ``string``, which covers every metadata hash the pool computes.

    Args:
        types: Solidity type names
        values: Values matching ``types`` one to one

    Returns:
        bytes: Encoded payload

    Raises:
        ValueError: On unsupported types or out-of-range values
    """
    if len(types) != len(values):
        raise ValueError("Types and values must have the same length")

    heads: List[bytes] = []
    tails: List[bytes] = []
    head_size = 32 * len(types)
    tail_offset = head_size

    for abi_type, value in zip(types, values):
        uint_match = _UINT_RE.match(abi_type)
        if abi_type == "address":
            heads.append(bytes(12) + hex_to_bytes(normalize_address(value)))
        elif uint_match:
            bits = int(uint_match.group(1) or 256)
            if bits % 8 != 0 or not 8 <= bits <= 256:
                raise ValueError(f"Unsupported type: {abi_type}")
            heads.append(_encode_uint(bits, value))
        elif abi_type in ("bytes", "string"):
            payload = value.encode("utf-8") if abi_type == "string" else ensure_bytes(value)
            encoded = _encode_dynamic(payload)
            heads.append(tail_offset.to_bytes(32, "big"))
            tails.append(encoded)
            tail_offset += len(encoded)
        else:
            raise ValueError(f"Unsupported type: {abi_type}")

    return b"".join(heads) + b"".join(tails)
