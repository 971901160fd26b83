"""
Poseidon2 permutation and sponge over the BN254 scalar field.

Mirrors the hash used by the proving circuits (Noir ``std::hash::poseidon2``
and Barretenberg ``poseidon2Hash``), so commitments, nullifiers and Merkle
nodes computed here are accepted by the external verifier.

Parameters (state width t = 4):
    - S-box: x^5
    - Full rounds: R_F = 8 (4 before and 4 after the partial rounds)
    - Partial rounds: R_P = 56
    - External layer: the 4x4 MDS matrix [[5,7,1,3],[4,6,1,1],[1,3,5,7],[1,1,4,6]]
    - Internal layer: 1 + diag(mu) with the fixed diagonal below
    - Round constants: Grain LFSR stream, R_F * t + R_P field elements

Sponge:
    - rate 3, capacity 1
    - capacity element initialised to ``len(inputs) << 64``
    - absorb three elements per duplex, squeeze a single element

Example:
    Hashing a pair of field elements::

        from shieldpool.crypto.poseidon2 import Poseidon2Sponge

        sponge = Poseidon2Sponge()
        digest = sponge.hash([1, 2])

The permutation is checked against the reference test vector in
``tests/unit/test_hashing.py``. Do not modify constants without re-running it.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, List, Sequence, Tuple

from shieldpool.utils.field import FIELD_MODULUS

STATE_WIDTH = 4
RATE = 3
FULL_ROUNDS = 8
PARTIAL_ROUNDS = 56
SBOX_DEGREE = 5
FIELD_SIZE_BITS = 254

# Diagonal of the internal matrix minus one (applied as x_i * d_i + sum(x))
INTERNAL_DIAGONAL_M1 = (
    0x10DC6E9C006EA38B04B1E03B4BD9490C0D03F98929CA1D7FB56821FD19D3B6E7,
    0x0C28145B6A44DF3E0149B3D0A30B3BB599DF9756D4DD9B84A86B38CFB45A740B,
    0x00544B8338791518B2C7645A50392798B21F75BB60E3596170067D00141CAC15,
    0x222C01175718386F2E2E82EB122789E352E105A3B8FA852613BC534433EE428B,
)


def _grain_bits(n: int, t: int, r_f: int, r_p: int) -> Iterator[int]:
    """
    Self-shrinking Grain LFSR used to derive round constants.

    The 80-bit register is seeded with the instance description
    (prime field, x^alpha S-box, field size, width, round counts) followed
    by thirty 1-bits; the first 160 outputs are discarded.
    """
    register: List[int] = []
    for value, width in ((1, 2), (0, 4), (n, 12), (t, 12), (r_f, 10), (r_p, 10)):
        register.extend(int(bit) for bit in format(value, f"0{width}b"))
    register.extend([1] * 30)

    def step() -> int:
        new_bit = (
            register[62] ^ register[51] ^ register[38]
            ^ register[23] ^ register[13] ^ register[0]
        )
        register.pop(0)
        register.append(new_bit)
        return new_bit

    for _ in range(160):
        step()

    while True:
        selector = step()
        while selector == 0:
            step()
            selector = step()
        yield step()


@lru_cache(maxsize=None)
def round_constants(
    t: int = STATE_WIDTH,
    r_f: int = FULL_ROUNDS,
    r_p: int = PARTIAL_ROUNDS,
) -> Tuple[Tuple[int, ...], ...]:
    """
    Round constants as ``r_f + r_p`` rows of width ``t``.

    Partial-round rows carry a single constant in position 0 and zeros
    elsewhere.
    """
    bits = _grain_bits(FIELD_SIZE_BITS, t, r_f, r_p)

    def next_element() -> int:
        while True:
            value = 0
            for _ in range(FIELD_SIZE_BITS):
                value = (value << 1) | next(bits)
            if value < FIELD_MODULUS:
                return value

    half = r_f // 2
    rows: List[Tuple[int, ...]] = []
    for _ in range(half):
        rows.append(tuple(next_element() for _ in range(t)))
    for _ in range(r_p):
        rows.append((next_element(),) + (0,) * (t - 1))
    for _ in range(half):
        rows.append(tuple(next_element() for _ in range(t)))
    return tuple(rows)


def _external_layer(state: List[int]) -> List[int]:
    x0, x1, x2, x3 = state
    t0 = x0 + x1
    t1 = x2 + x3
    t2 = 2 * x1 + t1
    t3 = 2 * x3 + t0
    t4 = 4 * t1 + t3
    t5 = 4 * t0 + t2
    t6 = t3 + t5
    t7 = t2 + t4
    p = FIELD_MODULUS
    return [t6 % p, t5 % p, t7 % p, t4 % p]


def _internal_layer(state: List[int]) -> List[int]:
    total = sum(state)
    return [
        (x * d + total) % FIELD_MODULUS
        for x, d in zip(state, INTERNAL_DIAGONAL_M1)
    ]


def permute(state: Sequence[int]) -> List[int]:
    """
    Apply the Poseidon2 permutation to a width-4 state.

    Args:
        state: Four field elements

    Returns:
        List[int]: The permuted state
    """
    if len(state) != STATE_WIDTH:
        raise ValueError(f"State must have exactly {STATE_WIDTH} elements")

    p = FIELD_MODULUS
    constants = round_constants()
    half = FULL_ROUNDS // 2

    current = _external_layer([x % p for x in state])

    for r in range(half):
        current = [pow((x + c) % p, SBOX_DEGREE, p) for x, c in zip(current, constants[r])]
        current = _external_layer(current)

    for r in range(half, half + PARTIAL_ROUNDS):
        current[0] = pow((current[0] + constants[r][0]) % p, SBOX_DEGREE, p)
        current = _internal_layer(current)

    for r in range(half + PARTIAL_ROUNDS, FULL_ROUNDS + PARTIAL_ROUNDS):
        current = [pow((x + c) % p, SBOX_DEGREE, p) for x, c in zip(current, constants[r])]
        current = _external_layer(current)

    return current


@dataclass
class Poseidon2Sponge:
    """
    Fixed-length Poseidon2 sponge (rate 3, capacity 1).

    Attributes:
        length_prefixed_iv: Seed the capacity element with ``len << 64``.
            Disable only to reproduce IV-less external hashers.
    """

    length_prefixed_iv: bool = True

    def initial_state(self, message_length: int) -> List[int]:
        iv = (message_length << 64) if self.length_prefixed_iv else 0
        return [0, 0, 0, iv % FIELD_MODULUS]

    def hash(self, inputs: Sequence[int]) -> int:
        """
        Hash a sequence of field elements to a single field element.

        Args:
            inputs: Field elements (reduced modulo p before absorption)

        Returns:
            int: Digest in the BN254 scalar field
        """
        state = self.initial_state(len(inputs))
        cache: List[int] = []

        for value in inputs:
            if len(cache) == RATE:
                state = self._duplex(state, cache)
                cache = []
            cache.append(value % FIELD_MODULUS)

        state = self._duplex(state, cache)
        return state[0]

    @staticmethod
    def _duplex(state: List[int], cache: List[int]) -> List[int]:
        absorbed = list(state)
        for i, value in enumerate(cache):
            absorbed[i] = (absorbed[i] + value) % FIELD_MODULUS
        return permute(absorbed)
