"""Small helpers: hex digits, varints, bit scans, host resolution and job tracking."""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections.abc import Callable

log = logging.getLogger(__name__)

_HEX_VALUES = {c: int(c, 16) for c in "0123456789abcdefABCDEF"}


def from_hex(c: str) -> int:
    """Value of one hexadecimal digit; raises ValueError for anything else."""
    try:
        return _HEX_VALUES[c]
    except (KeyError, TypeError):
        raise ValueError(f"not a hex digit: {c!r}") from None


def write_varint(value: int) -> bytes:
    """Encode a non-negative integer as a little-endian base-128 varint."""
    if value < 0:
        raise ValueError(f"varint value must be non-negative, got {value}")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def read_varint(data: bytes, offset: int = 0, bits: int = 64) -> tuple[int, int]:
    """Decode a varint of at most ``bits`` bits starting at ``offset``.

    Returns the value and the offset just past it. Raises ValueError if the
    data ends before the varint does or the varint is too long for ``bits``.
    """
    mask = (1 << bits) - 1
    result = 0
    k = 0
    pos = offset
    end = len(data)
    while pos < end:
        if k >= bits:
            raise ValueError("varint is too long")
        cur_byte = data[pos]
        pos += 1
        result = (result | ((cur_byte & 0x7F) << k)) & 0xFFFFFFFFFFFFFFFF
        k += 7
        if not cur_byte & 0x80:
            return result & mask, pos
    raise ValueError("varint is truncated")


def bsr(x: int) -> int:
    """Index of the highest set bit of a positive integer."""
    if x <= 0:
        raise ValueError(f"bsr needs a positive integer, got {x}")
    return x.bit_length() - 1


def round_up(a: int, granularity: int) -> int:
    """Round ``a`` up to a multiple of ``granularity``."""
    if granularity <= 0:
        raise ValueError(f"granularity must be positive, got {granularity}")
    return ((a + granularity - 1) // granularity) * granularity


def seconds_since_epoch() -> int:
    """Whole seconds of a monotonic clock."""
    return int(time.monotonic())


def resolve_host(host: str) -> tuple[str, bool]:
    """Resolve a host name to an address string and whether it is IPv6.

    Raises OSError if the name cannot be resolved.
    """
    try:
        infos = socket.getaddrinfo(
            host, None, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_ADDRCONFIG
        )
    except OSError as e:
        log.warning("getaddrinfo failed for %s: %s", host, e)
        raise
    if not infos:
        raise OSError(f"getaddrinfo returned no addresses for {host}")
    family, _, _, _, sockaddr = infos[0]
    address = str(sockaddr[0])
    log.debug("%s resolved to %s", host, address)
    return address, family == socket.AF_INET6


class BackgroundJobTracker:
    """Counts running background jobs by name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, int] = {}

    def start(self, name: str) -> None:
        with self._lock:
            self._jobs[name] = self._jobs.get(name, 0) + 1

    def stop(self, name: str) -> None:
        with self._lock:
            count = self._jobs.get(name)
            if count is None:
                log.warning("background job %s is not running, but stop() was called", name)
                return
            if count <= 1:
                del self._jobs[name]
            else:
                self._jobs[name] = count - 1

    def running(self) -> dict[str, int]:
        """Snapshot of running jobs, ordered by name."""
        with self._lock:
            return dict(sorted(self._jobs.items()))

    def wait(self, poll_interval: float = 1.0) -> None:
        """Block until no jobs are running."""
        while True:
            jobs = self.running()
            if not jobs:
                return
            for name, count in jobs.items():
                log.info('waiting for %d "%s" jobs to finish', count, name)
            time.sleep(poll_interval)

    def status(self) -> str:
        jobs = self.running()
        if not jobs:
            return "no background jobs running"
        lines = "".join(f"\n{name} ({count})" for name, count in jobs.items())
        return "background jobs running:" + lines


bkg_jobs_tracker = BackgroundJobTracker()


class LoopCallbacks:
    """Thread-safe queue of callbacks to be run later on an event loop's thread."""

    def __init__(self, wakeup: Callable[[], object] | None = None) -> None:
        self._lock = threading.Lock()
        self._pending: list[Callable[[], object]] = []
        self._wakeup = wakeup

    def call(self, callback: Callable[[], object]) -> None:
        """Queue a callback and wake the loop."""
        with self._lock:
            self._pending.append(callback)
        if self._wakeup is not None:
            self._wakeup()

    def run_pending(self) -> int:
        """Run every queued callback in order; returns how many ran."""
        with self._lock:
            to_run, self._pending = self._pending, []
        for callback in to_run:
            callback()
        return len(to_run)