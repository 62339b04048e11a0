"""Per-client job bookkeeping, automatic difficulty and hashrate statistics for the stratum server."""

from __future__ import annotations

import math
import re
import threading
from collections import deque
from dataclasses import dataclass, field

from .types import Difficulty
from .util import bsr, seconds_since_epoch

DEFAULT_BAN_TIME = 600
MIN_DIFF = 1000
AUTO_DIFF_TARGET_TIME = 30
JOBS_SIZE = 4
AUTO_DIFF_SIZE = 64
HASHRATE_DATA_SIZE = 131072

_U16_MASK = 0xFFFF
_U32_MASK = 0xFFFFFFFF
_U64_MASK = (1 << 64) - 1

# Targets at or above this value (difficulty up to 4 million) are sent in the short 4-byte form.
TARGET_4_BYTES_LIMIT = _U64_MASK // 4000000 + 1

_HASH_BITS = 11
_HASH_MASK = (1 << _HASH_BITS) - 1
_MAX_CUSTOM_USER = 31

_WINDOW_15M = 15 * 60
_WINDOW_1H = 60 * 60
_WINDOW_24H = 60 * 60 * 24

_STRTOULL = re.compile(r"\s*([+-]?)(\d*)")


def hash_uncompress(h: int) -> int:
    """Expand a 16-bit compressed hash count (5 bits of shift, 11 bits of data)."""
    return (h & _HASH_MASK) << (h >> _HASH_BITS)


_HASH_MAX_VALUE = hash_uncompress(_U16_MASK)


def hash_compress(h: int) -> int:
    """Compress a 64-bit hash count into 16 bits, rounding down."""
    if h <= _HASH_MASK:
        return h
    if h >= _HASH_MAX_VALUE:
        return _U16_MASK
    shift = bsr(h) - (_HASH_BITS - 1)
    return (shift << _HASH_BITS) | (h >> shift)


def get_custom_user(login: str) -> str:
    """The worker name: printable characters before the first '+' or '.', at most 31."""
    chars: list[str] = []
    for c in login:
        if len(chars) >= _MAX_CUSTOM_USER or c in "+.":
            break
        if " " <= c <= "~":
            chars.append(c)
    return "".join(chars)


def _strtoull(text: str) -> int:
    match = _STRTOULL.match(text)
    if match is None or not match.group(2):
        return 0
    value = int(match.group(2))
    if value > _U64_MASK:
        return _U64_MASK
    if match.group(1) == "-":
        value = (-value) & _U64_MASK
    return value


def get_custom_diff(login: str) -> Difficulty | None:
    """The fixed difficulty after the last '+' or '.', never below MIN_DIFF; None if absent."""
    position = max(login.rfind("+"), login.rfind("."))
    if position < 0:
        return None
    t = _strtoull(login[position + 1:])
    if not t:
        return None
    return Difficulty(max((t + 1) & _U64_MASK, MIN_DIFF), 0)


def target_hex(target: int) -> str:
    """Hex form of a target as sent to miners: 8 little-endian bytes, or the upper 4 of them."""
    data = target.to_bytes(8, "little")
    if target >= TARGET_4_BYTES_LIMIT:
        data = data[4:]
    return data.hex()


def hashes_for_target(target: int) -> int:
    """Expected number of hashes a share at this target represents."""
    return (1 << 64) // target if target > 1 else 1


@dataclass
class SavedJob:
    job_id: int = 0
    extra_nonce: int = 0
    template_id: int = 0
    target: int = 0


@dataclass
class _AutoDiffSample:
    timestamp: int = 0
    hashes: int = 0


@dataclass
class StratumClient:
    """Stratum state of one connected miner."""

    addr_string: str = ""
    rpc_id: int = 0
    per_connection_job_id: int = 0
    connected_time: int = 0
    reset_counter: int = 0
    jobs: list[SavedJob] = field(default_factory=lambda: [SavedJob() for _ in range(JOBS_SIZE)])
    auto_diff_data: list[_AutoDiffSample] = field(
        default_factory=lambda: [_AutoDiffSample() for _ in range(AUTO_DIFF_SIZE)]
    )
    auto_diff_window_hashes: int = 0
    auto_diff_index: int = 0
    custom_diff: Difficulty = field(default_factory=Difficulty)
    auto_diff: Difficulty = field(default_factory=Difficulty)
    custom_user: str = ""

    def reset(self) -> None:
        """Forget the login, jobs and difficulty state, as for a new connection."""
        self.reset_counter = (self.reset_counter + 1) & _U32_MASK
        self.rpc_id = 0
        self.per_connection_job_id = 0
        self.connected_time = 0
        for job in self.jobs:
            job.job_id = 0
        self.auto_diff_window_hashes = 0
        self.auto_diff_index = 0
        self.custom_diff = Difficulty()
        self.auto_diff = Difficulty()
        self.custom_user = ""

    def save_job(self, extra_nonce: int, template_id: int, target: int) -> int:
        """Remember a job sent to this client and return its new job id."""
        self.per_connection_job_id = (self.per_connection_job_id + 1) & _U32_MASK
        job_id = self.per_connection_job_id
        self.jobs[job_id % JOBS_SIZE] = SavedJob(job_id, extra_nonce, template_id, target)
        return job_id

    def find_job(self, job_id: int) -> SavedJob | None:
        """The saved job with this id, or None if it is unknown or too old."""
        job = self.jobs[job_id % JOBS_SIZE]
        if job_id == 0 or job.job_id != job_id:
            return None
        return job

    def update_auto_diff(self, timestamp: int, hashes: int) -> None:
        """Account a submitted share and recompute the automatic difficulty."""
        compressed = hash_compress(hashes)
        self.auto_diff_window_hashes = (
            self.auto_diff_window_hashes + hash_uncompress(compressed)
        ) & _U64_MASK

        k = self.auto_diff_index
        self.auto_diff_index = (k + 1) & _U32_MASK

        sample = self.auto_diff_data[k % AUTO_DIFF_SIZE]
        if k >= AUTO_DIFF_SIZE:
            self.auto_diff_window_hashes = (
                self.auto_diff_window_hashes - hash_uncompress(sample.hashes)
            ) & _U64_MASK

        t1 = sample.timestamp
        t2 = timestamp & _U16_MASK
        sample.timestamp = t2
        sample.hashes = compressed

        if k >= AUTO_DIFF_SIZE:
            # Full window
            dt = (t2 - t1) & _U64_MASK
            window = (self.auto_diff_window_hashes * AUTO_DIFF_TARGET_TIME) & _U64_MASK
            self.auto_diff = Difficulty(max(window // (dt or 1), MIN_DIFF), 0)
        elif k >= 10:
            # Partial window
            first = self.auto_diff_data[0]
            h0 = hash_uncompress(first.hashes)
            dt = (self.auto_diff_data[k].timestamp - first.timestamp) & _U64_MASK
            window = (((self.auto_diff_window_hashes - h0) & _U64_MASK) * AUTO_DIFF_TARGET_TIME) & _U64_MASK
            self.auto_diff = Difficulty(max(window // (dt or 1), MIN_DIFF), 0)
        elif k == 0:
            # First share: hold the current difficulty until there are at least 10 shares
            self.auto_diff = Difficulty(hashes & _U64_MASK, 0)

    def job_target(self, base_target: int, cur_time: int, auto_diff_enabled: bool) -> int:
        """Target for a new job, given the template's target and this client's difficulty settings."""
        target = base_target
        if self.custom_diff.lo:
            return max(target, self.custom_diff.target())
        if not auto_diff_enabled:
            return target

        if self.auto_diff.lo:
            last = self.auto_diff_data[((self.auto_diff_index - 1) & _U32_MASK) % AUTO_DIFF_SIZE]
            elapsed = ((cur_time & _U16_MASK) - last.timestamp) & _U16_MASK
            if elapsed > AUTO_DIFF_TARGET_TIME * 5:
                # More than 500% effort: lower the auto diff by 1/8 each time until a share is found
                lo = self.auto_diff.lo
                self.auto_diff = Difficulty(max(lo - lo // 8, MIN_DIFF), 0)
            return max(target, self.auto_diff.target())

        # Not enough shares yet: halve the difficulty every 16 seconds
        num_halvings = ((cur_time - self.connected_time) & _U64_MASK) // 16
        max_target = _U64_MASK // MIN_DIFF + 1
        halvings = 0
        while halvings < num_halvings and 0 < target < max_target:
            target *= 2
            halvings += 1
        return min(target, max_target)


@dataclass
class _HashrateSample:
    timestamp: int
    cumulative_hashes: int


class HashrateTracker:
    """Local hashrate over 15 minutes, 1 hour and 24 hours, plus share effort counters."""

    def __init__(self, timestamp: int | None = None, size: int = HASHRATE_DATA_SIZE) -> None:
        self._lock = threading.RLock()
        self._size = size
        start = seconds_since_epoch() if timestamp is None else timestamp
        self._data: deque[_HashrateSample] = deque([_HashrateSample(start, 0)])
        self._first_seq = 0
        self._tails = {_WINDOW_15M: 0, _WINDOW_1H: 0, _WINDOW_24H: 0}
        self.cumulative_hashes = 0
        self.cumulative_hashes_at_last_share = 0
        self.cumulative_found_shares_diff = 0.0
        self.total_found_shares = 0

    def _sample(self, seq: int) -> _HashrateSample:
        return self._data[seq - self._first_seq]

    def update(self, hashes: int, timestamp: int) -> None:
        """Add hashes accepted at ``timestamp`` and move the averaging windows."""
        with self._lock:
            self.cumulative_hashes = (self.cumulative_hashes + hashes) & _U64_MASK

            head = self._data[-1]
            if head.timestamp == timestamp:
                head.cumulative_hashes = self.cumulative_hashes
            else:
                self._data.append(_HashrateSample(timestamp, self.cumulative_hashes))
                if len(self._data) > self._size:
                    self._data.popleft()
                    self._first_seq += 1

            head_seq = self._first_seq + len(self._data) - 1
            for window, tail in self._tails.items():
                tail = max(tail, self._first_seq)
                while tail < head_seq and self._sample(tail).timestamp + window < timestamp:
                    tail += 1
                self._tails[window] = tail

            oldest = min(self._tails.values())
            while self._first_seq < oldest:
                self._data.popleft()
                self._first_seq += 1

    def hashrates(self) -> tuple[int, int, int]:
        """Hashes per second over the last 15 minutes, 1 hour and 24 hours."""
        with self._lock:
            head = self._data[-1]
            rates = []
            for window in (_WINDOW_15M, _WINDOW_1H, _WINDOW_24H):
                tail = self._sample(self._tails[window])
                hashes = (head.cumulative_hashes - tail.cumulative_hashes) & _U64_MASK
                dt = head.timestamp - tail.timestamp
                rates.append(hashes // dt if dt > 0 else 0)
            return rates[0], rates[1], rates[2]

    @property
    def hashes_since_last_share(self) -> int:
        with self._lock:
            return (self.cumulative_hashes - self.cumulative_hashes_at_last_share) & _U64_MASK

    def record_found_share(self, hashes: int, difficulty: Difficulty) -> float:
        """Count a share found at sidechain ``difficulty``; returns its effort in percent."""
        with self._lock:
            n = (self.cumulative_hashes + hashes) & _U64_MASK
            diff = difficulty.to_double()
            spent = float((n - self.cumulative_hashes_at_last_share) & _U64_MASK)
            effort = spent * 100.0 / diff if diff > 0.0 else math.inf
            self.cumulative_hashes_at_last_share = n
            self.cumulative_found_shares_diff += diff
            self.total_found_shares += 1
            return effort

    def reset_share_counters(self) -> None:
        with self._lock:
            self.cumulative_hashes = 0
            self.cumulative_hashes_at_last_share = 0
            self.cumulative_found_shares_diff = 0.0
            self.total_found_shares = 0

    def average_effort(self) -> float:
        """Average effort of found shares in percent, 0 if none were found."""
        with self._lock:
            diff = self.cumulative_found_shares_diff
            if diff <= 0.0:
                return 0.0
            return float(self.cumulative_hashes_at_last_share) * 100.0 / diff

    def current_effort(self, pool_difficulty: Difficulty) -> float:
        """Effort spent since the last found share, in percent of the pool difficulty."""
        diff = pool_difficulty.to_double()
        spent = float(self.hashes_since_last_share)
        if diff <= 0.0:
            return math.inf if spent else 0.0
        return spent * 100.0 / diff