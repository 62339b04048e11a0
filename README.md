# sharepool

Building blocks for a node of a decentralized mining pool: the value
types and arithmetic such a node needs, wallet address decoding, typed
reading of JSON fields, and the stratum protocol spoken with miners.

## Modules

- `sharepool.types`: 256-bit hashes (`Hash`), 128-bit difficulties
  (`Difficulty`) with mining-target and proof-of-work checks, raw IP
  addresses (`RawIp`), the `NetworkType` enumeration, and the records a
  node receives from its daemon (`TxMempoolData`, `MinerData`,
  `ChainMain`).
- `sharepool.util`: hex digits (`from_hex`), varint encoding and
  decoding (`write_varint`, `read_varint`), bit scan (`bsr`),
  `round_up`, a monotonic clock (`seconds_since_epoch`), host resolution
  (`resolve_host`), a counter of running background jobs
  (`BackgroundJobTracker`) and a thread-safe queue of callbacks to run
  later (`LoopCallbacks`).
- `sharepool.wallet`: base58 wallet addresses (`Wallet`) for mainnet,
  testnet and stagenet, with checksum and curve point validation
  (`is_valid_point`).
- `sharepool.json_values`: typed field extraction from decoded JSON
  objects (`parse_string`, `parse_uint8`, `parse_uint64`, `parse_bool`,
  `parse_hash`, `parse_difficulty`); each raises `ValueError` when the
  field is missing or has the wrong type.
- `sharepool.stratum_diff`: per-miner job bookkeeping and automatic
  difficulty (`StratumClient`, `SavedJob`), hash-count compression
  (`hash_compress`, `hash_uncompress`), custom user and difficulty
  parsing from login strings (`get_custom_user`, `get_custom_diff`),
  target formatting (`target_hex`, `hashes_for_target`) and hashrate
  windows over 15 minutes, 1 hour and 24 hours (`HashrateTracker`).
- `sharepool.stratum_server`: the stratum JSON-RPC protocol: request
  parsing (`parse_request`, `parse_submit_params`), reply formatting
  (`format_login_response`, `format_job`, `format_error`,
  `format_share_result`), share outcomes (`ShareResult`) and the
  `StratumServer` that ties them together.

## Difficulty and proof of work

```python
from sharepool.types import Difficulty, Hash

diff = Difficulty.from_int(334654765825)
assert diff.target() == 55121714

big = Difficulty.parse("123456789012345678901234567890")
assert big.to_int() == 123456789012345678901234567890

zero = Hash.parse("00" * 32)
assert zero.is_empty()
assert diff.check_pow(zero)
```

A target is `2**64 / difficulty` rounded up; difficulties of 0 and 1 map
to the largest 64-bit target, and anything of `2**64` or more maps to 1.
`check_pow` is exact: a hash, read as a little-endian number, passes when
`hash * difficulty < 2**256`.

## Wallet addresses

```python
from sharepool.types import NetworkType
from sharepool.wallet import Wallet

w = Wallet("49ccoSmrBTPJd5yf8VYCULh4J5rHQaXP1TeC8Cnqhd5H9Y2cMwkJ9w42euLmMghKtCiQcgZEiGYW1K6Ae4biZ7w1HLSexS6")
assert w.valid()
assert w.type() is NetworkType.MAINNET
print(w.spend_public_key().hex())
```

Only standard 95-character addresses are accepted; integrated addresses
and subaddresses are rejected. An invalid address does not raise: the
wallet's `valid()` is `False` and its `type()` is `NetworkType.INVALID`.

## Stratum

`StratumServer` is built around a backend object that provides the block
template and pool operations (`get_hashing_blob`, `get_hashing_blob_for`,
`get_difficulties`, `submit_block`, `update_tx_keys`,
`submit_sidechain_block`, `calculate_hash`). Give it a `StratumClient`
per connection and feed it lines:

```python
reply = server.handle_line(client, line)
```

`handle_line` dispatches `login`, `submit` and `keepalived` and returns
the reply text to send (or `None` for a keepalive). A login may carry a
worker name and a fixed difficulty, as in `wallet+50000` or
`name.50000`: the name is the printable text before the first `+` or
`.`, at most 31 characters, and the difficulty is the number after the
last one, plus one, and never below 1000.

Malformed requests raise `StratumError`; before raising, the server
calls its `on_ban` callback with the client and a ban time of 600
seconds. Shares with too low a difficulty or a wrong proof of work are
answered with an error reply and also reported through `on_ban`. Each
accepted share is counted in the server's `hashrate` tracker.

## What the package does not do

The package does not listen on a network socket, keep a list of
connections or push new jobs to miners when a block template changes:
`StratumServer` works line by line and leaves transport to the caller.
It does not build block templates or compute proof-of-work hashes; those
come from the backend you supply. It does not subscribe to a daemon's
notifications; the `MinerData`, `ChainMain` and `TxMempoolData` records
and the `json_values` readers are there for code that does.