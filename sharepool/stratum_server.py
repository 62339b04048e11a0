"""Stratum protocol handling: request parsing, job messages, logins and share submission."""

from __future__ import annotations

import enum
import json
import logging
import os
import random
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .stratum_diff import (
    DEFAULT_BAN_TIME,
    TARGET_4_BYTES_LIMIT,
    HashrateTracker,
    SavedJob,
    StratumClient,
    get_custom_diff,
    get_custom_user,
    hashes_for_target,
    target_hex,
)
from .types import HASH_SIZE, NONCE_SIZE, Difficulty, Hash
from .util import bkg_jobs_tracker, from_hex, seconds_since_epoch

log = logging.getLogger(__name__)

_U32_MASK = 0xFFFFFFFF
_U32_MAX = _U32_MASK
_SHARE_JOB_NAME = "StratumServer::on_share_found"


class StratumError(ValueError):
    """A malformed or unacceptable request; the client sending it should be banned."""


class ShareResult(enum.Enum):
    """Outcome of a submitted share; the value is the message sent to the miner."""

    STALE = "Stale share"
    COULDNT_CHECK_POW = "Couldn't check PoW"
    LOW_DIFF = "Low diff share"
    INVALID_POW = "Invalid PoW"
    OK = "OK"

    @property
    def is_bad(self) -> bool:
        return self in (ShareResult.LOW_DIFF, ShareResult.INVALID_POW)


@dataclass
class HashingBlob:
    """A block template's hashing blob for one extra nonce, with what mining it needs."""

    blob: bytes
    height: int
    difficulty: Difficulty
    sidechain_difficulty: Difficulty
    seed_hash: Hash
    nonce_offset: int
    template_id: int


class StratumBackend(Protocol):
    """What the stratum server needs from the block template and the pool."""

    def get_hashing_blob(self, extra_nonce: int) -> HashingBlob: ...

    def get_hashing_blob_for(self, template_id: int, extra_nonce: int) -> HashingBlob | None: ...

    def get_difficulties(self, template_id: int) -> tuple[Difficulty, Difficulty] | None: ...

    def submit_block(self, template_id: int, nonce: int, extra_nonce: int) -> None: ...

    def update_tx_keys(self) -> None: ...

    def submit_sidechain_block(self, template_id: int, nonce: int, extra_nonce: int) -> None: ...

    def calculate_hash(self, blob: bytes, height: int, seed_hash: Hash) -> Hash | None: ...


def _first_key_wins(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        result.setdefault(key, value)
    return result


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON value: {name}")


def _is_uint32(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= _U32_MAX


def parse_request(line: str | bytes) -> tuple[int, str, dict[str, Any]]:
    """Decode one request line into its id, method and whole document.

    Raises StratumError if the line is not a JSON object with an unsigned
    32-bit ``id`` and a string ``method``.
    """
    if isinstance(line, (bytes, bytearray)):
        try:
            line = bytes(line).decode("utf-8")
        except UnicodeDecodeError as e:
            raise StratumError("invalid JSON request (parse error)") from e

    try:
        doc = json.loads(line, object_pairs_hook=_first_key_wins, parse_constant=_reject_constant)
    except ValueError as e:
        raise StratumError("invalid JSON request (parse error)") from e

    if not isinstance(doc, dict):
        raise StratumError("invalid JSON request (not an object)")
    if "id" not in doc:
        raise StratumError("invalid JSON request ('id' field not found)")
    if not _is_uint32(doc["id"]):
        raise StratumError("invalid JSON request ('id' field is not an integer)")
    if "method" not in doc:
        raise StratumError("invalid JSON request ('method' field not found)")
    if not isinstance(doc["method"], str):
        raise StratumError("invalid JSON request ('method' field is not a string)")

    return doc["id"], doc["method"], doc


def _hex_bytes(text: str, size: int, name: str, what: str) -> bytes:
    if len(text) != size * 2:
        raise StratumError(f"invalid params ('{name}' field has invalid length)")
    try:
        return bytes((from_hex(text[i]) << 4) | from_hex(text[i + 1]) for i in range(0, size * 2, 2))
    except ValueError as e:
        raise StratumError(f"invalid params ('{name}' is not a hex {what})") from e


def parse_submit_params(job_id: str, nonce: str, result: str) -> tuple[int, int, Hash]:
    """Decode a submit request's job id, nonce and result hash.

    The job id is a hex integer (wrapping at 32 bits) that must not be zero,
    the nonce 4 little-endian bytes in hex and the result a 32-byte hash in hex.
    """
    job_id_value = 0
    for c in job_id:
        try:
            d = from_hex(c)
        except ValueError as e:
            raise StratumError("invalid params ('job_id' is not a hex integer)") from e
        job_id_value = ((job_id_value << 4) + d) & _U32_MASK

    if not job_id_value:
        raise StratumError("invalid params ('job_id' can't be 0)")

    nonce_value = int.from_bytes(_hex_bytes(nonce, NONCE_SIZE, "nonce", "integer"), "little")
    result_hash = Hash(_hex_bytes(result, HASH_SIZE, "result", "value"))
    return job_id_value, nonce_value, result_hash


def format_login_response(
    request_id: int,
    rpc_id: int,
    blob: bytes,
    job_id: int,
    target: int,
    height: int,
    seed_hash: Hash,
) -> str:
    """The reply to a login request, carrying the first job."""
    return (
        f'{{"id":{request_id},"jsonrpc":"2.0","result":{{"id":"{rpc_id:x}","job":{{'
        f'"blob":"{bytes(blob).hex()}","job_id":"{job_id:x}","target":"{target_hex(target)}",'
        f'"algo":"rx/0","height":{height},"seed_hash":"{seed_hash.hex()}"}},'
        f'"extensions":["algo"],"status":"OK"}}}}\n'
    )


def format_job(blob: bytes, job_id: int, target: int, height: int, seed_hash: Hash) -> str:
    """A job notification for a logged-in client."""
    return (
        f'{{"jsonrpc":"2.0","method":"job","params":{{"blob":"{bytes(blob).hex()}",'
        f'"job_id":"{job_id:x}","target":"{target_hex(target)}","algo":"rx/0",'
        f'"height":{height},"seed_hash":"{seed_hash.hex()}"}}}}\n'
    )


def format_error(request_id: int, message: str) -> str:
    """An error reply to the request with this id."""
    return f'{{"id":{request_id},"jsonrpc":"2.0","error":{{"message":{json.dumps(message)}}}}}\n'


def format_share_result(request_id: int, result: ShareResult) -> str:
    """The reply to a submitted share."""
    if result is ShareResult.OK:
        return f'{{"id":{request_id},"jsonrpc":"2.0","error":null,"result":{{"status":"OK"}}}}\n'
    return format_error(request_id, result.value)


def _require(params: dict[str, Any], name: str, kind: str) -> str:
    if name not in params:
        raise StratumError(f"invalid {kind} params ('{name}' field not found)")
    value = params[name]
    if not isinstance(value, str):
        raise StratumError(f"invalid {kind} params ('{name}' field is not a string)")
    return value


def _params(doc: dict[str, Any], kind: str) -> dict[str, Any]:
    if "params" not in doc:
        raise StratumError(f"invalid JSON {kind} request ('params' field not found)")
    params = doc["params"]
    if not isinstance(params, dict):
        raise StratumError(f"invalid JSON {kind} request ('params' field is not an object)")
    return params


class StratumServer:
    """Handles stratum requests from miners against a block template backend.

    Replies are returned as text lines for the caller to send. Clients that
    send malformed requests or bad shares are reported through ``on_ban``.
    """

    def __init__(
        self,
        backend: StratumBackend,
        auto_diff: bool = True,
        on_ban: Callable[[StratumClient, int], None] | None = None,
        clock: Callable[[], int] = seconds_since_epoch,
    ) -> None:
        self._backend = backend
        self.auto_diff = auto_diff
        self._on_ban = on_ban
        self._clock = clock
        self._extra_nonce = 0
        self._extra_nonce_lock = threading.Lock()
        self._rng = random.Random(os.urandom(32))
        self._rng_lock = threading.Lock()
        self.hashrate = HashrateTracker(clock())

    def get_random64(self) -> int:
        """A random unsigned 64-bit number."""
        with self._rng_lock:
            return self._rng.getrandbits(64)

    def _next_extra_nonce(self) -> int:
        with self._extra_nonce_lock:
            value = self._extra_nonce
            self._extra_nonce = (value + 1) & _U32_MASK
            return value

    def _ban(self, client: StratumClient) -> None:
        if self._on_ban is not None:
            self._on_ban(client, DEFAULT_BAN_TIME)

    def handle_line(self, client: StratumClient, line: str | bytes) -> str | None:
        """Process one request line; returns the reply, or None if there is none.

        Raises StratumError (after banning the client) for invalid requests.
        """
        try:
            request_id, method, doc = parse_request(line)
            if method == "login":
                log.debug("incoming login from %s", client.addr_string)
                login = _require(_params(doc, "login"), "login", "login")
                return self.on_login(client, request_id, login)
            if method == "submit":
                log.debug("incoming share from %s", client.addr_string)
                params = _params(doc, "submit")
                _require(params, "id", "submit")
                job_id = _require(params, "job_id", "submit")
                nonce = _require(params, "nonce", "submit")
                if len(nonce) != NONCE_SIZE * 2:
                    raise StratumError("invalid submit params ('nonce' field has invalid length)")
                result = _require(params, "result", "submit")
                if len(result) != HASH_SIZE * 2:
                    raise StratumError("invalid submit params ('result' field has invalid length)")
                return self.on_submit(client, request_id, job_id, nonce, result)
            if method == "keepalived":
                log.debug("incoming keepalive from %s", client.addr_string)
                return None
            raise StratumError("invalid JSON request (unknown method)")
        except StratumError as e:
            log.warning("client %s %s", client.addr_string, e)
            self._ban(client)
            raise

    def on_login(self, client: StratumClient, request_id: int, login: str) -> str:
        """Log a client in and return the reply carrying its first job."""
        extra_nonce = self._next_extra_nonce()
        template = self._backend.get_hashing_blob(extra_nonce)

        target = max(template.difficulty.target(), template.sidechain_difficulty.target())

        custom_diff = get_custom_diff(login)
        if custom_diff is not None:
            client.custom_diff = custom_diff
            log.debug("client %s set custom difficulty %s", client.addr_string, custom_diff)
            target = max(target, custom_diff.target())

        client.custom_user = get_custom_user(login)
        if client.custom_user:
            log.debug("client %s set custom user %s", client.addr_string, client.custom_user)

        job_id = client.save_job(extra_nonce, template.template_id, target)

        rpc_id = 0
        while not rpc_id:
            rpc_id = self.get_random64() & _U32_MASK
        client.rpc_id = rpc_id

        return format_login_response(
            request_id, rpc_id, template.blob, job_id, target, template.height, template.seed_hash
        )

    def on_submit(
        self, client: StratumClient, request_id: int, job_id: str, nonce: str, result: str
    ) -> str:
        """Check a submitted share and return the reply to it."""
        job_id_value, nonce_value, result_hash = parse_submit_params(job_id, nonce, result)

        job = client.find_job(job_id_value)
        if job is None:
            log.warning("client %s got a share with invalid job id", client.addr_string)
            return format_error(request_id, "Invalid job id")

        difficulties = self._backend.get_difficulties(job.template_id)
        if difficulties is None:
            log.warning("client %s got a stale share", client.addr_string)
            return format_error(request_id, ShareResult.STALE.value)
        mainchain_diff, sidechain_diff = difficulties

        if mainchain_diff.check_pow(result_hash):
            user = f" user {client.custom_user}" if client.custom_user else ""
            log.info("client %s%s found a mainchain block, submitting it", client.addr_string, user)
            self._backend.submit_block(job.template_id, nonce_value, job.extra_nonce)
            self._backend.update_tx_keys()

        target = job.target
        if target >= TARGET_4_BYTES_LIMIT:
            target = (target >> 32) << 32

        timestamp = self._clock()
        hashes = hashes_for_target(target)
        high_enough = sidechain_diff.check_pow(result_hash)

        client.update_auto_diff(timestamp, hashes)

        if high_enough:
            bkg_jobs_tracker.start(_SHARE_JOB_NAME)
            try:
                share_result = self._process_share(
                    client, job, nonce_value, result_hash, target, hashes, timestamp, True
                )
            finally:
                bkg_jobs_tracker.stop(_SHARE_JOB_NAME)
        else:
            share_result = self._process_share(
                client, job, nonce_value, result_hash, target, hashes, timestamp, False
            )

        if share_result.is_bad:
            self._ban(client)
        return format_share_result(request_id, share_result)

    def _process_share(
        self,
        client: StratumClient,
        job: SavedJob,
        nonce: int,
        result_hash: Hash,
        target: int,
        hashes: int,
        timestamp: int,
        high_enough: bool,
    ) -> ShareResult:
        if high_enough:
            template = self._backend.get_hashing_blob_for(job.template_id, job.extra_nonce)
            if template is None:
                log.warning("client %s got a stale share", client.addr_string)
                return ShareResult.STALE

            blob = bytearray(template.blob)
            offset = template.nonce_offset
            blob[offset:offset + NONCE_SIZE] = nonce.to_bytes(NONCE_SIZE, "little")

            pow_hash = self._backend.calculate_hash(bytes(blob), template.height, template.seed_hash)
            if pow_hash is None:
                log.warning("client %s couldn't check share PoW", client.addr_string)
                return ShareResult.COULDNT_CHECK_POW

            if pow_hash != result_hash:
                log.warning("client %s submitted a share with invalid PoW", client.addr_string)
                return ShareResult.INVALID_POW

            effort = self.hashrate.record_found_share(hashes, template.sidechain_difficulty)
            user = f" user {client.custom_user}" if client.custom_user else ""
            log.info(
                "SHARE FOUND: mainchain height %d, diff %s, client %s%s, effort %s%%",
                template.height,
                template.sidechain_difficulty,
                client.addr_string,
                user,
                effort,
            )
            self._backend.submit_sidechain_block(job.template_id, nonce, job.extra_nonce)

        value = int.from_bytes(result_hash.h[HASH_SIZE - 8:], "little")
        if value < target:
            self.hashrate.update(hashes, timestamp)
            return ShareResult.OK

        log.warning("client %s got a low diff share", client.addr_string)
        return ShareResult.LOW_DIFF