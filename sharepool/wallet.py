"""Standard wallet addresses: base58 decoding, checksum and public key validation."""

from __future__ import annotations

import functools

from Crypto.Hash import keccak

from .types import HASH_SIZE, Hash, NetworkType

# Public keys: 64 bytes -> 88 base58 characters; prefix and checksum -> 7 more.
ADDRESS_LENGTH = 95

# Only regular addresses are accepted: no integrated addresses, no subaddresses.
_PREFIX_TYPES = {
    18: NetworkType.MAINNET,
    53: NetworkType.TESTNET,
    24: NetworkType.STAGENET,
}

_BLOCK_SIZES = (0, 2, 3, 5, 6, 7, 9, 10, 11)
_BLOCK_SIZES_LOOKUP = (0, -1, 1, 2, -1, 3, 4, 5, -1, 6, 7)
_FULL_BLOCK_SIZE = _BLOCK_SIZES[-1]
_FULL_BLOCK_BYTES = 8

_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_REV_ALPHABET = {c: i for i, c in enumerate(_ALPHABET)}

_U64_LIMIT = 1 << 64
_CHECKSUM_SIZE = 4

# Curve25519 field and twisted Edwards curve constants.
_P = (1 << 255) - 19
_D = (-121665 * pow(121666, -1, _P)) % _P
_SQRT_M1 = pow(2, (_P - 1) // 4, _P)


def is_valid_point(key: Hash | bytes) -> bool:
    """True if the 32 bytes are a canonical encoding of a point on ed25519."""
    data = bytes(key)
    if len(data) != HASH_SIZE:
        return False

    y = int.from_bytes(data, "little") & ((1 << 255) - 1)
    sign = data[31] >> 7
    if y >= _P:
        return False

    yy = y * y % _P
    u = (yy - 1) % _P
    v = (_D * yy + 1) % _P

    x = u * pow(v, 3, _P) * pow(u * pow(v, 7, _P), (_P - 5) // 8, _P) % _P
    vxx = v * x * x % _P
    if vxx != u:
        if vxx != (-u) % _P:
            return False
        x = x * _SQRT_M1 % _P

    if (x & 1) != sign:
        # If x = 0, the sign must be positive
        if x == 0:
            return False
        x = _P - x

    return True


def _decode_base58(address: str) -> bytes | None:
    """Decode a fixed-length address into raw bytes, or None if it is malformed."""
    num_full_blocks = ADDRESS_LENGTH // _FULL_BLOCK_SIZE
    last_block_size = ADDRESS_LENGTH % _FULL_BLOCK_SIZE
    last_block_bytes = _BLOCK_SIZES_LOOKUP[last_block_size]

    out = bytearray()
    for i in range(num_full_blocks + 1):
        start = i * _FULL_BLOCK_SIZE
        is_full = i < num_full_blocks
        chunk = address[start:start + (_FULL_BLOCK_SIZE if is_full else last_block_size)]

        num = 0
        order = 1
        for c in reversed(chunk):
            digit = _REV_ALPHABET.get(c)
            if digit is None:
                return None
            num += order * digit
            if num >= _U64_LIMIT:
                return None
            order *= len(_ALPHABET)

        size = _FULL_BLOCK_BYTES if is_full else last_block_bytes
        out += (num & ((1 << (size * 8)) - 1)).to_bytes(size, "big")

    return bytes(out)


@functools.total_ordering
class Wallet:
    """A wallet's public spend and view keys with the network they belong to."""

    def __init__(self, address: str | None = None) -> None:
        self._prefix = 0
        self._spend_public_key = Hash()
        self._view_public_key = Hash()
        self._checksum = 0
        self._type = NetworkType.INVALID
        self.decode(address)

    def decode(self, address: str | None) -> bool:
        """Decode a base58 address; returns whether the result is valid."""
        self._type = NetworkType.INVALID

        if not isinstance(address, str) or len(address) != ADDRESS_LENGTH:
            return False

        data = _decode_base58(address)
        if data is None:
            return False

        self._prefix = data[0]
        network_type = _PREFIX_TYPES.get(self._prefix)
        if network_type is None:
            return False
        self._type = network_type

        self._spend_public_key = Hash(data[1:1 + HASH_SIZE])
        self._view_public_key = Hash(data[1 + HASH_SIZE:1 + HASH_SIZE * 2])
        checksum = data[1 + HASH_SIZE * 2:1 + HASH_SIZE * 2 + _CHECKSUM_SIZE]
        self._checksum = int.from_bytes(checksum, "little")

        digest = keccak.new(digest_bits=256, data=data[:-_CHECKSUM_SIZE]).digest()
        if digest[:_CHECKSUM_SIZE] != checksum:
            self._type = NetworkType.INVALID

        if not (is_valid_point(self._spend_public_key) and is_valid_point(self._view_public_key)):
            self._type = NetworkType.INVALID

        return self.valid()

    def assign(self, spend_pub_key: Hash, view_pub_key: Hash, network_type: NetworkType) -> bool:
        """Set the keys directly; returns False and changes nothing if a key is not a curve point."""
        if not (is_valid_point(spend_pub_key) and is_valid_point(view_pub_key)):
            return False

        self._prefix = 0
        self._spend_public_key = spend_pub_key
        self._view_public_key = view_pub_key
        self._checksum = 0
        self._type = network_type
        return True

    def valid(self) -> bool:
        return self._type is not NetworkType.INVALID

    def type(self) -> NetworkType:
        return self._type

    def spend_public_key(self) -> Hash:
        return self._spend_public_key

    def view_public_key(self) -> Hash:
        return self._view_public_key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Wallet):
            return NotImplemented
        return self._spend_public_key == other._spend_public_key

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Wallet):
            return NotImplemented
        return self._spend_public_key < other._spend_public_key

    def __hash__(self) -> int:
        return hash(self._spend_public_key)

    def __repr__(self) -> str:
        return (
            f"Wallet(type={self._type.name}, spend={self._spend_public_key.hex()}, "
            f"view={self._view_public_key.hex()})"
        )