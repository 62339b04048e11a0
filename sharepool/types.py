"""Core value types: 256-bit hashes, 128-bit difficulties, raw IPs and chain data."""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass, field

HASH_SIZE = 32
HARDFORK_VIEW_TAGS_VERSION = 15
HARDFORK_SUPPORTED_VERSION = 16
MINER_REWARD_UNLOCK_TIME = 60
NONCE_SIZE = 4
EXTRA_NONCE_SIZE = 4
EXTRA_NONCE_MAX_SIZE = EXTRA_NONCE_SIZE + 10
TX_VERSION = 2
TXIN_GEN = 0xFF
TXOUT_TO_KEY = 2
TXOUT_TO_TAGGED_KEY = 3
TX_EXTRA_TAG_PUBKEY = 1
TX_EXTRA_NONCE = 2
TX_EXTRA_MERGE_MINING_TAG = 3

_U64_MAX = (1 << 64) - 1
_U128_MOD = 1 << 128
_U256 = 1 << 256
_HEX_DIGITS = "0123456789abcdefABCDEF"


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Hash:
    """A 32-byte hash, ordered as a little-endian 256-bit number."""

    h: bytes = bytes(HASH_SIZE)

    def __post_init__(self) -> None:
        data = bytes(self.h)
        if len(data) != HASH_SIZE:
            raise ValueError(f"hash must be {HASH_SIZE} bytes, got {len(data)}")
        object.__setattr__(self, "h", data)

    def __int__(self) -> int:
        return int.from_bytes(self.h, "little")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Hash):
            return NotImplemented
        return self.h == other.h

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Hash):
            return NotImplemented
        return int(self) < int(other)

    def __hash__(self) -> int:
        return hash(self.h)

    def __bytes__(self) -> bytes:
        return self.h

    def __str__(self) -> str:
        return self.hex()

    def is_empty(self) -> bool:
        """True if every byte is zero."""
        return not any(self.h)

    def hex(self) -> str:
        """Lower-case hexadecimal form, 64 characters."""
        return self.h.hex()

    @classmethod
    def parse(cls, text: str) -> "Hash":
        """Read hex digits, skipping leading non-hex text and stopping at the first
        non-hex character that follows them."""
        out = bytearray(HASH_SIZE)
        index = 0
        found = False
        for c in text:
            if c in _HEX_DIGITS:
                found = True
                if index >= HASH_SIZE * 2:
                    break
                i = index >> 1
                out[i] = ((out[i] << 4) | int(c, 16)) & 0xFF
                index += 1
            elif found:
                break
        return cls(bytes(out))


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Difficulty:
    """An unsigned 128-bit difficulty split into 64-bit halves."""

    lo: int = 0
    hi: int = 0

    def __post_init__(self) -> None:
        for name, value in (("lo", self.lo), ("hi", self.hi)):
            if not 0 <= value <= _U64_MAX:
                raise ValueError(f"{name} must fit in 64 bits, got {value}")

    @classmethod
    def from_int(cls, value: int) -> "Difficulty":
        """Build from a non-negative integer below 2**128."""
        if not 0 <= value < _U128_MOD:
            raise ValueError(f"difficulty out of range: {value}")
        return cls(value & _U64_MAX, value >> 64)

    @classmethod
    def parse(cls, text: str) -> "Difficulty":
        """Read a decimal number, skipping leading non-digits and stopping at the
        first non-digit after it; overflow wraps modulo 2**128."""
        value = 0
        found = False
        for c in text:
            if "0" <= c <= "9":
                found = True
                value = (value * 10 + (ord(c) - 48)) % _U128_MOD
            elif found:
                break
        return cls.from_int(value)

    def to_int(self) -> int:
        return (self.hi << 64) | self.lo

    def __int__(self) -> int:
        return self.to_int()

    def to_double(self) -> float:
        return float(self.hi) * 18446744073709551616.0 + float(self.lo)

    def is_empty(self) -> bool:
        return self.lo == 0 and self.hi == 0

    def target(self) -> int:
        """64-bit mining target, 2**64 / difficulty rounded up."""
        if self.hi:
            return 1
        if self.lo <= 1:
            return _U64_MAX
        return -((-(1 << 64)) // self.lo)

    def check_pow(self, pow_hash: Hash) -> bool:
        """True if hash * difficulty fits in 256 bits."""
        return int(pow_hash) * self.to_int() < _U256

    def __add__(self, other: object) -> "Difficulty":
        if not isinstance(other, Difficulty):
            return NotImplemented
        return Difficulty.from_int((self.to_int() + other.to_int()) % _U128_MOD)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Difficulty):
            return self.lo == other.lo and self.hi == other.hi
        if isinstance(other, int) and not isinstance(other, bool):
            return self.hi == 0 and self.lo == other
        return NotImplemented

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Difficulty):
            return NotImplemented
        return (self.hi, self.lo) < (other.hi, other.lo)

    def __hash__(self) -> int:
        return hash(self.to_int())

    def __str__(self) -> str:
        return str(self.to_int())


_LOCALHOST_V4 = bytes(10) + b"\xff\xff\x7f\x00\x00\x01"
_LOCALHOST_V6 = bytes(15) + b"\x01"


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class RawIp:
    """A 16-byte IP address (IPv4 stored as IPv4-mapped IPv6)."""

    data: bytes = bytes(16)

    def __post_init__(self) -> None:
        data = bytes(self.data)
        if len(data) != 16:
            raise ValueError(f"raw ip must be 16 bytes, got {len(data)}")
        object.__setattr__(self, "data", data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RawIp):
            return NotImplemented
        return self.data == other.data

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RawIp):
            return NotImplemented
        return int.from_bytes(self.data, "little") < int.from_bytes(other.data, "little")

    def __hash__(self) -> int:
        return hash(self.data)

    def is_localhost(self) -> bool:
        return self.data in (_LOCALHOST_V4, _LOCALHOST_V6)


class NetworkType(enum.Enum):
    INVALID = 0
    MAINNET = 1
    TESTNET = 2
    STAGENET = 3


@dataclass
class TxMempoolData:
    id: Hash = field(default_factory=Hash)
    blob_size: int = 0
    weight: int = 0
    fee: int = 0
    time_received: int = 0


@dataclass
class MinerData:
    major_version: int = 0
    height: int = 0
    prev_id: Hash = field(default_factory=Hash)
    seed_hash: Hash = field(default_factory=Hash)
    difficulty: Difficulty = field(default_factory=Difficulty)
    median_weight: int = 0
    already_generated_coins: int = 0
    median_timestamp: int = 0
    tx_backlog: list[TxMempoolData] = field(default_factory=list)
    time_received: float = 0.0


@dataclass
class ChainMain:
    difficulty: Difficulty = field(default_factory=Difficulty)
    height: int = 0
    timestamp: int = 0
    reward: int = 0
    id: Hash = field(default_factory=Hash)