"""
Poseidon hash over the BN254 scalar field.

Poseidon is an algebraic sponge with a very low constraint count inside
arithmetic circuits, which is why the deposit tree, commitments and
nullifiers all use it.

Parameters:
- Field: BN254 scalar field (SNARK_SCALAR_FIELD)
- Width t = number of inputs + 1 (one capacity element)
- 8 full rounds, partial rounds per width as in circomlib
- S-box x^5

Round constants and the Cauchy MDS matrix are derived from the Grain LFSR
seeded with the instance parameters, the procedure of the Poseidon reference
parameter generator. This yields circomlib's published constants, so hashes
match the ``Poseidon(n)`` templates of circom circuits.

References:
- Poseidon paper: https://eprint.iacr.org/2019/458
- circomlib implementation: https://github.com/iden3/circomlib
"""

from collections import deque
from functools import lru_cache
from typing import Iterator, List, Sequence, Tuple

from privacy_pool.utils.hash import SNARK_SCALAR_FIELD

FIELD_PRIME = SNARK_SCALAR_FIELD
FIELD_BITS = FIELD_PRIME.bit_length()

ROUNDS_F = 8
# Partial rounds indexed by width t (t = 2..5)
ROUNDS_P = {2: 56, 3: 57, 4: 56, 5: 60}

MAX_INPUTS = max(ROUNDS_P) - 1


def _grain_bits(t: int, rounds_p: int) -> Iterator[int]:
    """
    Yield the self-shrinking Grain LFSR bit stream for a Poseidon instance.

    The 80-bit register starts as: field type (2 bits, 1 = prime field),
    S-box type (4 bits, 0 = x^alpha), field size (12), t (12), full rounds
    (10), partial rounds (10), then thirty 1 bits.
    """
    init = (
        "01"
        + "0000"
        + format(FIELD_BITS, "012b")
        + format(t, "012b")
        + format(ROUNDS_F, "010b")
        + format(rounds_p, "010b")
        + "1" * 30
    )
    register = deque(int(bit) for bit in init)

    def step() -> int:
        bit = register[62] ^ register[51] ^ register[38] ^ register[23] ^ register[13] ^ register[0]
        register.popleft()
        register.append(bit)
        return bit

    for _ in range(160):
        step()

    # Bits come in pairs; the second is output only when the first is 1
    while True:
        if step():
            yield step()
        else:
            step()


def _next_int(bits: Iterator[int]) -> int:
    value = 0
    for _ in range(FIELD_BITS):
        value = (value << 1) | next(bits)
    return value


def _generate_round_constants(bits: Iterator[int], t: int, rounds: int) -> List[int]:
    """Draw ``rounds * t`` constants, rejecting samples at or above the prime."""
    constants = []
    while len(constants) < rounds * t:
        value = _next_int(bits)
        if value < FIELD_PRIME:
            constants.append(value)
    return constants


def _generate_mds_matrix(bits: Iterator[int], t: int) -> List[List[int]]:
    """
    Generate a t x t Cauchy MDS matrix, M[i][j] = 1 / (x_i + y_j).

    The 2t values x_0..x_{t-1}, y_0..y_{t-1} are drawn from the same stream
    that produced the round constants. They are redrawn until all of them
    are distinct and no x_i + y_j is zero.
    """
    while True:
        values = [_next_int(bits) % FIELD_PRIME for _ in range(2 * t)]
        if len(set(values)) != len(values):
            continue
        xs, ys = values[:t], values[t:]
        if any((x + y) % FIELD_PRIME == 0 for x in xs for y in ys):
            continue
        return [[pow(x + y, FIELD_PRIME - 2, FIELD_PRIME) for y in ys] for x in xs]


@lru_cache(maxsize=None)
def _get_parameters(t: int) -> Tuple[Tuple[int, ...], Tuple[Tuple[int, ...], ...]]:
    """Get or compute (round constants, MDS matrix) for width t."""
    rounds_p = ROUNDS_P[t]
    bits = _grain_bits(t, rounds_p)
    constants = tuple(_generate_round_constants(bits, t, ROUNDS_F + rounds_p))
    matrix = tuple(tuple(row) for row in _generate_mds_matrix(bits, t))
    return constants, matrix


def _sbox(x: int) -> int:
    return pow(x, 5, FIELD_PRIME)


def _mds_multiply(state: List[int], matrix: Sequence[Sequence[int]]) -> List[int]:
    return [
        sum(m * s for m, s in zip(row, state)) % FIELD_PRIME
        for row in matrix
    ]


def poseidon(*inputs: int) -> int:
    """
    Compute the Poseidon hash of 1 to 4 field elements.

    Args:
        *inputs: Field elements (integers below the field prime)

    Returns:
        int: Hash as a field element

    Raises:
        ValueError: If the arity is unsupported or an input is out of range
    """
    if not 1 <= len(inputs) <= MAX_INPUTS:
        raise ValueError(f"Poseidon supports 1 to {MAX_INPUTS} inputs, got {len(inputs)}")

    for i, value in enumerate(inputs):
        if not isinstance(value, int) or not 0 <= value < FIELD_PRIME:
            raise ValueError(f"Input {i} out of field range: {value!r}")

    t = len(inputs) + 1
    constants, matrix = _get_parameters(t)
    half_f = ROUNDS_F // 2
    rounds_p = ROUNDS_P[t]

    state = [0] + list(inputs)

    for round_idx in range(ROUNDS_F + rounds_p):
        offset = round_idx * t
        state = [(s + constants[offset + i]) % FIELD_PRIME for i, s in enumerate(state)]

        if round_idx < half_f or round_idx >= half_f + rounds_p:
            state = [_sbox(s) for s in state]
        else:
            state[0] = _sbox(state[0])

        state = _mds_multiply(state, matrix)

    return state[0]
