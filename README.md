# fakecore

`fakecore` runs a fake Bitcoin Core JSON-RPC server inside your test process.
It keeps a small in-memory chain, a mempool, a UTXO set and a few wallet
records. Tests change that state directly and point the code under test at the
server's URL.

## Installation

```
pip install fakecore
```

The package uses only the standard library.

## Starting a server

```python
from fakecore.handle import spawn
from fakecore.primitives import hash_to_hex

with spawn() as node:
    print(node.url())                 # http://127.0.0.1:<port>
    blocks = node.mine_blocks(1)
    coinbase = blocks[0].txdata[0]
    print(hash_to_hex(coinbase.txid()))
```

`spawn()` starts a mainnet node that reports version 240000. Use the builder
to change those defaults. Each builder method returns a new `Builder`:

```python
from fakecore.handle import builder
from fakecore.primitives import Network

node = (
    builder()
    .network(Network.SIGNET)
    .version(230000)
    .fail_lock_unspent(True)
    .build()
)
try:
    ...
finally:
    node.close()
```

`build()` binds an HTTP server to `127.0.0.1` on a free port and serves it from
a background thread. A `Handle` is a context manager, and `close()` stops the
server. Calling `close()` more than once does nothing.

The server accepts JSON-RPC over HTTP `POST`. It handles single requests and
batches. A notification, meaning a request without an `id`, gets an empty
`204` reply. `GET` requests get a `405` with a JSON-RPC error.

## Driving the chain

`Handle` methods:

- `mine_blocks(n)` and `mine_blocks_with_subsidy(n, subsidy)` mine `n` blocks
  and return them as `Block` objects. Each block takes every mempool
  transaction, and its coinbase pays the subsidy plus those transactions'
  fees. The default subsidy is 50 BTC (`50 * COIN_VALUE` satoshis).
- `broadcast_tx(template)` builds a transaction from a
  `fakecore.state.TransactionTemplate`, puts it in the mempool and returns its
  txid as bytes. Inputs are `(height, tx_index, vout)` triples. The input value
  minus `fee` must split evenly across `outputs`; if it does not, a
  `ValueError` is raised. `output_values` overrides the leading outputs'
  values, and `witness` becomes the first input's witness.
- `invalidate_tip()` removes the newest block and returns its hash.
- `tx(height, tx_index)`, `mempool()` and `get_utxo_amount(outpoint)` read the
  chain state. `get_utxo_amount` returns satoshis, or `None`.
- `wallets()`, `loaded_wallets()`, `descriptors()`, `import_descriptor(desc)`,
  `sent()` and `lock(outpoint)` read or change the wallet records.
- `network()` returns `mainnet`, `testnet`, `signet` or `regtest`.

```python
from fakecore.handle import spawn
from fakecore.state import TransactionTemplate

with spawn() as node:
    node.mine_blocks(1)
    txid = node.broadcast_tx(TransactionTemplate(inputs=((1, 0, 0),), fee=1000))
    node.mine_blocks(1)
    assert node.mempool() == []
```

## Data structures

`fakecore.primitives` has the Bitcoin data types and helpers:

- the types `OutPoint`, `TxIn`, `TxOut`, `Transaction`, `BlockHeader` and
  `Block`, which serialize in consensus format (`to_bytes()`) and compute
  `txid()`, `vsize()` and `block_hash()`;
- `parse_transaction(data)`;
- `hash_to_hex` and `hex_to_hash` for byte-reversed hex hashes;
- `push_int_script(value)`;
- `genesis_block(network)` for each `Network`;
- `taproot_address(xonly_key, network)` and `random_taproot_address(network)`
  for bech32m addresses.

## Calling the RPC layer without HTTP

`fakecore.server.Api` implements the supported methods over a
`fakecore.state.State` and a lock. The methods are `getblockchaininfo`,
`getnetworkinfo`, `getbalances`, `getblockhash`, `getblockheader`, `getblock`,
`getblockcount`, `getwalletinfo`, `createrawtransaction`, `createwallet`,
`signrawtransactionwithwallet`, `sendrawtransaction`, `sendtoaddress`,
`gettransaction`, `getrawtransaction`, `listunspent`, `listlockunspent`,
`getrawchangeaddress`, `getdescriptorinfo`, `importdescriptors`,
`getnewaddress`, `listtransactions`, `lockunspent`, `listdescriptors`,
`loadwallet` and `listwallets`.

`Api.call(method, params)` raises `RpcError`, which carries `code` and
`message`. `Api.handle(payload)` takes a request object, a batch or raw JSON
text, and returns the JSON-RPC response.

```python
import threading
from fakecore.primitives import Network
from fakecore.server import Api, RpcError
from fakecore.state import State

api = Api(State(Network.BITCOIN, 240000, False), threading.Lock())
print(api.call("getblockcount", []))   # 0
try:
    api.call("getblockhash", [5])
except RpcError as error:
    print(error.code)                  # -8
```

Lookups that find nothing fail with code `-8`. Optional parameters that the
fake does not support fail with code `-32602` when they are given. Examples
are `locktime` for `createrawtransaction` and `minconf` for `listunspent`.

## What it does not do

- It does not validate scripts or signatures. `signrawtransactionwithwallet`
  puts a 64-byte zero witness on every input.
- There is no proof of work and no merkle root. Block headers have zero bits
  and a zero merkle root.
- `sendtoaddress` only records the payment, which `sent()` returns. It always
  reports the all-zero txid.
- New and change addresses are random taproot addresses that belong to no key
  the wallet keeps.
- No RPC authentication is checked.
- Nothing is saved to disk.
- The package has no command-line program.

## Running the tests

```
pip install -e ".[test]"
pytest
```