"""JSON-RPC interface of the fake node, answering a subset of Bitcoin Core's calls."""

from __future__ import annotations

import json
import threading
from typing import Any, NamedTuple

from .primitives import (
    COIN_VALUE,
    ZERO_HASH,
    Network,
    OutPoint,
    Transaction,
    TxIn,
    TxOut,
    hash_to_hex,
    hex_to_hash,
    parse_transaction,
    random_taproot_address,
)
from .state import Sent, State

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
NOT_FOUND = -8

_DEFAULT_MESSAGES = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
}

_CHAIN_NAMES = {
    Network.BITCOIN: "main",
    Network.TESTNET: "test",
    Network.SIGNET: "signet",
    Network.REGTEST: "regtest",
}


class _Method(NamedTuple):
    attr: str
    params: tuple[str, ...]
    required: int


_METHODS = {
    "getblockchaininfo": _Method("get_blockchain_info", (), 0),
    "getnetworkinfo": _Method("get_network_info", (), 0),
    "getbalances": _Method("get_balances", (), 0),
    "getblockhash": _Method("get_block_hash", ("height",), 1),
    "getblockheader": _Method("get_block_header", ("block_hash", "verbose"), 2),
    "getblock": _Method("get_block", ("block_hash", "verbosity"), 2),
    "getblockcount": _Method("get_block_count", (), 0),
    "getwalletinfo": _Method("get_wallet_info", (), 0),
    "createrawtransaction": _Method(
        "create_raw_transaction", ("utxos", "outs", "locktime", "replaceable"), 2
    ),
    "createwallet": _Method(
        "create_wallet",
        ("name", "disable_private_keys", "blank", "passphrase", "avoid_reuse"),
        1,
    ),
    "signrawtransactionwithwallet": _Method(
        "sign_raw_transaction_with_wallet", ("tx", "utxos", "sighash_type"), 1
    ),
    "sendrawtransaction": _Method("send_raw_transaction", ("tx",), 1),
    "sendtoaddress": _Method(
        "send_to_address",
        (
            "address",
            "amount",
            "comment",
            "comment_to",
            "subtract_fee",
            "replaceable",
            "confirmation_target",
            "estimate_mode",
        ),
        2,
    ),
    "gettransaction": _Method("get_transaction", ("txid", "include_watchonly"), 1),
    "getrawtransaction": _Method(
        "get_raw_transaction", ("txid", "verbose", "blockhash"), 2
    ),
    "listunspent": _Method(
        "list_unspent",
        ("minconf", "maxconf", "address", "include_unsafe", "query_options"),
        0,
    ),
    "listlockunspent": _Method("list_lock_unspent", (), 0),
    "getrawchangeaddress": _Method("get_raw_change_address", ("address_type",), 0),
    "getdescriptorinfo": _Method("get_descriptor_info", ("desc",), 1),
    "importdescriptors": _Method("import_descriptors", ("req",), 1),
    "getnewaddress": _Method("get_new_address", ("label", "address_type"), 0),
    "listtransactions": _Method(
        "list_transactions", ("label", "count", "skip", "include_watchonly"), 0
    ),
    "lockunspent": _Method("lock_unspent", ("unlock", "outputs"), 2),
    "listdescriptors": _Method("list_descriptors", (), 0),
    "loadwallet": _Method("load_wallet", ("wallet",), 1),
    "listwallets": _Method("list_wallets", (), 0),
}

_U16_MAX = 0xFFFF


class RpcError(Exception):
    """An error reported to the RPC client."""

    def __init__(self, code: int, message: str | None = None) -> None:
        if message is None:
            message = _DEFAULT_MESSAGES.get(code, "Server error")
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


def _not_found() -> RpcError:
    return RpcError(NOT_FOUND)


def _btc(sats: int) -> float:
    return sats / COIN_VALUE


def _require_absent(**params: Any) -> None:
    for name, value in params.items():
        if value is not None:
            raise RpcError(INVALID_PARAMS, f"{name} param not supported")


def _hash_param(value: Any, name: str) -> bytes:
    if not isinstance(value, str):
        raise RpcError(INVALID_PARAMS, f"{name} must be a hex string")
    try:
        return hex_to_hash(value)
    except ValueError as exc:
        raise RpcError(INVALID_PARAMS, f"invalid {name}: {exc}") from exc


def _tx_param(value: Any) -> Transaction:
    if not isinstance(value, str):
        raise RpcError(INVALID_PARAMS, "transaction must be a hex string")
    try:
        return parse_transaction(bytes.fromhex(value))
    except ValueError as exc:
        raise RpcError(INVALID_PARAMS, f"invalid transaction: {exc}") from exc


def _outpoint_param(entry: Any) -> OutPoint:
    if not isinstance(entry, dict) or "txid" not in entry or "vout" not in entry:
        raise RpcError(INVALID_PARAMS, "outpoint must have txid and vout")
    vout = entry["vout"]
    if not isinstance(vout, int) or isinstance(vout, bool) or not 0 <= vout <= 0xFFFFFFFF:
        raise RpcError(INVALID_PARAMS, "vout must be a 32-bit unsigned integer")
    return OutPoint(_hash_param(entry["txid"], "txid"), vout)


def _json_outpoint(outpoint: OutPoint) -> dict[str, Any]:
    return {"txid": hash_to_hex(outpoint.txid), "vout": outpoint.vout}


def _wallet_tx_info(txid: bytes, confirmations: int) -> dict[str, Any]:
    return {
        "confirmations": confirmations,
        "blockhash": None,
        "blockindex": None,
        "blocktime": None,
        "blockheight": None,
        "txid": hash_to_hex(txid),
        "time": 0,
        "timereceived": 0,
        "walletconflicts": [],
        "bip125-replaceable": "unknown",
    }


def _check_params(spec: _Method, args: list, kwargs: dict) -> None:
    if len(args) > len(spec.params):
        raise RpcError(
            INVALID_PARAMS,
            f"Invalid params: expected at most {len(spec.params)} params, got {len(args)}",
        )
    unknown = [key for key in kwargs if key not in spec.params]
    if unknown:
        raise RpcError(INVALID_PARAMS, f"Invalid params: unexpected param {unknown[0]!r}")
    given = set(spec.params[: len(args)]) | set(kwargs)
    missing = [name for name in spec.params[: spec.required] if name not in given]
    if missing:
        raise RpcError(INVALID_PARAMS, f"Invalid params: missing param {missing[0]!r}")


class Api:
    """Implementations of the supported RPC methods over a shared State."""

    def __init__(self, state: State, lock: threading.Lock) -> None:
        self._state = state
        self._lock = lock
        with lock:
            self.network = state.network

    def call(self, method: str, params: Any = None) -> Any:
        """Invoke an RPC method by its wire name with positional or named params."""
        spec = _METHODS.get(method)
        if spec is None:
            raise RpcError(METHOD_NOT_FOUND, f"Method not found: {method}")
        if params is None:
            args, kwargs = [], {}
        elif isinstance(params, list):
            args, kwargs = params, {}
        elif isinstance(params, dict):
            args, kwargs = [], params
        else:
            raise RpcError(INVALID_PARAMS, "params must be an array or an object")
        _check_params(spec, args, kwargs)
        return getattr(self, spec.attr)(*args, **kwargs)

    def handle(self, payload: Any) -> Any:
        """Answer a JSON-RPC request, batch or raw JSON text; None for notifications."""
        if isinstance(payload, (str, bytes, bytearray)):
            try:
                payload = json.loads(payload)
            except ValueError:
                return _error_response(None, RpcError(PARSE_ERROR))
        if isinstance(payload, list):
            if not payload:
                return _error_response(None, RpcError(INVALID_REQUEST))
            responses = [r for r in map(self._handle_one, payload) if r is not None]
            return responses or None
        return self._handle_one(payload)

    def _handle_one(self, request: Any) -> dict[str, Any] | None:
        if not isinstance(request, dict):
            return _error_response(None, RpcError(INVALID_REQUEST))
        request_id = request.get("id")
        method = request.get("method")
        if not isinstance(method, str):
            return _error_response(request_id, RpcError(INVALID_REQUEST))
        try:
            result = self.call(method, request.get("params"))
        except RpcError as exc:
            response = _error_response(request_id, exc)
        except Exception as exc:  # noqa: BLE001 - reported to the client
            response = _error_response(request_id, RpcError(INTERNAL_ERROR, str(exc)))
        else:
            response = {"jsonrpc": "2.0", "result": result, "id": request_id}
        if "id" not in request:
            return None
        return response

    def get_blockchain_info(self) -> dict[str, Any]:
        with self._lock:
            best = self._state.hashes[0]
        return {
            "chain": _CHAIN_NAMES[self.network],
            "blocks": 0,
            "headers": 0,
            "bestblockhash": hash_to_hex(best),
            "difficulty": 0.0,
            "mediantime": 0,
            "verificationprogress": 0.0,
            "initialblockdownload": False,
            "chainwork": "",
            "size_on_disk": 0,
            "pruned": False,
            "pruneheight": None,
            "automatic_pruning": None,
            "prune_target_size": None,
            "softforks": {},
            "warnings": "",
        }

    def get_network_info(self) -> dict[str, Any]:
        with self._lock:
            version = self._state.version
        return {
            "version": version,
            "subversion": "",
            "protocolversion": 0,
            "localservices": "",
            "localrelay": False,
            "timeoffset": 0,
            "connections": 0,
            "connections_in": None,
            "connections_out": None,
            "networkactive": True,
            "networks": [],
            "relayfee": 0.0,
            "incrementalfee": 0.0,
            "localaddresses": [],
            "warnings": "",
        }

    def get_balances(self) -> dict[str, Any]:
        with self._lock:
            trusted = sum(
                amount
                for outpoint, amount in self._state.utxos.items()
                if outpoint not in self._state.locked
            )
        return {
            "mine": {
                "trusted": _btc(trusted),
                "untrusted_pending": 0.0,
                "immature": 0.0,
            },
            "watchonly": None,
        }

    def get_block_hash(self, height: int) -> str:
        if not isinstance(height, int) or isinstance(height, bool):
            raise RpcError(INVALID_PARAMS, "height must be an integer")
        with self._lock:
            hashes = self._state.hashes
            if not 0 <= height < len(hashes):
                raise _not_found()
            return hash_to_hex(hashes[height])

    def get_block_header(self, block_hash: str, verbose: bool) -> Any:
        digest = _hash_param(block_hash, "block hash")
        with self._lock:
            if verbose:
                if digest not in self._state.hashes:
                    raise _not_found()
                height = self._state.hashes.index(digest)
                return {
                    "hash": hash_to_hex(digest),
                    "confirmations": 0,
                    "height": height,
                    "version": 0,
                    "versionHex": "00000000",
                    "merkleroot": hash_to_hex(ZERO_HASH),
                    "time": 0,
                    "mediantime": None,
                    "nonce": 0,
                    "bits": "",
                    "difficulty": 0.0,
                    "chainwork": "",
                    "nTx": 0,
                    "previousblockhash": None,
                    "nextblockhash": None,
                }
            block = self._state.blocks.get(digest)
            if block is None:
                raise _not_found()
            return block.header.to_bytes().hex()

    def get_block(self, block_hash: str, verbosity: int) -> str:
        if verbosity != 0:
            raise RpcError(INVALID_PARAMS, f"Verbosity level {verbosity} is unsupported")
        digest = _hash_param(block_hash, "block hash")
        with self._lock:
            block = self._state.blocks.get(digest)
            if block is None:
                raise _not_found()
            return block.to_bytes().hex()

    def get_block_count(self) -> int:
        with self._lock:
            return max(len(self._state.hashes) - 1, 0)

    def get_wallet_info(self) -> dict[str, Any]:
        with self._lock:
            loaded = sorted(self._state.loaded_wallets)
        if not loaded:
            raise _not_found()
        return {
            "walletname": loaded[0],
            "walletversion": 0,
            "balance": 0.0,
            "unconfirmed_balance": 0.0,
            "immature_balance": 0.0,
            "txcount": 0,
            "keypoololdest": None,
            "keypoolsize": 0,
            "keypoolsize_hd_internal": 0,
            "unlocked_until": None,
            "paytxfee": 0.0,
            "hdseedid": None,
            "private_keys_enabled": False,
            "avoid_reuse": None,
            "scanning": None,
        }

    def create_raw_transaction(
        self, utxos: list, outs: dict, locktime: Any = None, replaceable: Any = None
    ) -> str:
        _require_absent(locktime=locktime, replaceable=replaceable)
        if not isinstance(utxos, list) or not isinstance(outs, dict):
            raise RpcError(INVALID_PARAMS, "expected a list of inputs and a map of outputs")
        inputs = [TxIn(_outpoint_param(entry)) for entry in utxos]
        outputs = []
        for amount in outs.values():
            if not isinstance(amount, (int, float)) or isinstance(amount, bool):
                raise RpcError(INVALID_PARAMS, "output amounts must be numbers")
            outputs.append(TxOut(max(int(amount * COIN_VALUE), 0)))
        tx = Transaction(version=0, lock_time=0, inputs=inputs, outputs=outputs)
        return tx.to_bytes().hex()

    def create_wallet(
        self,
        name: str,
        disable_private_keys: Any = None,
        blank: Any = None,
        passphrase: Any = None,
        avoid_reuse: Any = None,
    ) -> dict[str, Any]:
        if not isinstance(name, str):
            raise RpcError(INVALID_PARAMS, "wallet name must be a string")
        with self._lock:
            self._state.wallets.add(name)
        return {"name": name, "warning": None}

    def sign_raw_transaction_with_wallet(
        self, tx: str, utxos: Any = None, sighash_type: Any = None
    ) -> dict[str, Any]:
        _require_absent(utxos=utxos, sighash_type=sighash_type)
        transaction = _tx_param(tx)
        for txin in transaction.inputs:
            txin.witness = [bytes(64)]
        return {"hex": transaction.to_bytes().hex(), "complete": True, "errors": None}

    def send_raw_transaction(self, tx: str) -> str:
        transaction = _tx_param(tx)
        with self._lock:
            self._state.mempool.append(transaction)
        return hash_to_hex(transaction.txid())

    def send_to_address(
        self,
        address: str,
        amount: float,
        comment: Any = None,
        comment_to: Any = None,
        subtract_fee: Any = None,
        replaceable: Any = None,
        confirmation_target: Any = None,
        estimate_mode: Any = None,
    ) -> str:
        _require_absent(
            comment=comment,
            comment_to=comment_to,
            subtract_fee=subtract_fee,
            replaceable=replaceable,
            confirmation_target=confirmation_target,
            estimate_mode=estimate_mode,
        )
        if not isinstance(address, str):
            raise RpcError(INVALID_PARAMS, "address must be a string")
        if not isinstance(amount, (int, float)) or isinstance(amount, bool):
            raise RpcError(INVALID_PARAMS, "amount must be a number")
        with self._lock:
            locked = sorted(self._state.locked)
            self._state.sent.append(Sent(amount=float(amount), address=address, locked=locked))
        return hash_to_hex(ZERO_HASH)

    def get_transaction(self, txid: str, include_watchonly: Any = None) -> dict[str, Any]:
        digest = _hash_param(txid, "txid")
        with self._lock:
            tx = self._state.transactions.get(digest)
        if tx is None:
            raise _not_found()
        return {
            **_wallet_tx_info(digest, 0),
            "amount": 0.0,
            "fee": None,
            "details": [],
            "hex": tx.to_bytes().hex(),
        }

    def get_raw_transaction(self, txid: str, verbose: bool, blockhash: Any = None) -> Any:
        if blockhash is not None:
            raise RpcError(INVALID_PARAMS, "Blockhash param is unsupported")
        digest = _hash_param(txid, "txid")
        with self._lock:
            tx = self._state.transactions.get(digest)
        if tx is None:
            raise _not_found()
        if not verbose:
            return tx.to_bytes().hex()
        zero = hash_to_hex(ZERO_HASH)
        return {
            "in_active_chain": True,
            "hex": "",
            "txid": zero,
            "hash": zero,
            "size": 0,
            "vsize": 0,
            "version": 0,
            "locktime": 0,
            "vin": [],
            "vout": [],
            "blockhash": None,
            "confirmations": 1,
            "time": None,
            "blocktime": None,
        }

    def list_unspent(
        self,
        minconf: Any = None,
        maxconf: Any = None,
        address: Any = None,
        include_unsafe: Any = None,
        query_options: Any = None,
    ) -> list[dict[str, Any]]:
        _require_absent(
            minconf=minconf,
            maxconf=maxconf,
            address=address,
            include_unsafe=include_unsafe,
            query_options=query_options,
        )
        with self._lock:
            unspent = [
                (outpoint, amount)
                for outpoint, amount in sorted(self._state.utxos.items())
                if outpoint not in self._state.locked
            ]
        return [
            {
                "txid": hash_to_hex(outpoint.txid),
                "vout": outpoint.vout,
                "address": None,
                "label": None,
                "redeemScript": None,
                "witnessScript": None,
                "scriptPubKey": "",
                "amount": _btc(amount),
                "confirmations": 0,
                "spendable": True,
                "solvable": True,
                "desc": None,
                "safe": True,
            }
            for outpoint, amount in unspent
        ]

    def list_lock_unspent(self) -> list[dict[str, Any]]:
        with self._lock:
            locked = sorted(self._state.locked)
        return [_json_outpoint(outpoint) for outpoint in locked]

    def get_raw_change_address(self, address_type: Any = None) -> str:
        return random_taproot_address(self.network)

    def get_descriptor_info(self, desc: str) -> dict[str, Any]:
        return {
            "descriptor": desc,
            "checksum": "",
            "isrange": False,
            "issolvable": False,
            "hasprivatekeys": True,
        }

    def import_descriptors(self, req: list) -> list[dict[str, Any]]:
        if not isinstance(req, list) or not all(
            isinstance(entry, dict) and isinstance(entry.get("desc"), str) for entry in req
        ):
            raise RpcError(INVALID_PARAMS, "each request must carry a desc string")
        with self._lock:
            self._state.descriptors.extend(entry["desc"] for entry in req)
        return [{"success": True, "warnings": [], "error": None}]

    def get_new_address(self, label: Any = None, address_type: Any = None) -> str:
        return random_taproot_address(self.network)

    def list_transactions(
        self,
        label: Any = None,
        count: Any = None,
        skip: Any = None,
        include_watchonly: Any = None,
    ) -> list[dict[str, Any]]:
        limit = _U16_MAX if count is None else count
        if not isinstance(limit, int) or isinstance(limit, bool) or not 0 <= limit <= _U16_MAX:
            raise RpcError(INVALID_PARAMS, "count must be a 16-bit unsigned integer")
        with self._lock:
            state = self._state
            confirmed = sorted(state.transactions.items())[:limit]
            entries = confirmed + [(tx.txid(), tx) for tx in state.mempool]
            return [
                {
                    **_wallet_tx_info(txid, state.get_confirmations(tx)),
                    "address": None,
                    "category": "immature",
                    "amount": 0.0,
                    "label": None,
                    "vout": 0,
                    "fee": 0.0,
                    "abandoned": None,
                    "trusted": None,
                    "comment": None,
                }
                for txid, tx in entries
            ]

    def lock_unspent(self, unlock: bool, outputs: list) -> bool:
        if unlock:
            raise RpcError(INVALID_PARAMS, "unlocking outputs is not supported")
        if not isinstance(outputs, list):
            raise RpcError(INVALID_PARAMS, "outputs must be a list")
        outpoints = [_outpoint_param(entry) for entry in outputs]
        with self._lock:
            if self._state.fail_lock_unspent:
                return False
            missing = [op for op in outpoints if op not in self._state.utxos]
            if missing:
                raise RpcError(INVALID_PARAMS, f"unknown output {missing[0]}")
            self._state.locked.update(outpoints)
        return True

    def list_descriptors(self) -> dict[str, Any]:
        with self._lock:
            descriptors = list(self._state.descriptors)
        return {
            "wallet_name": "ord",
            "descriptors": [
                {
                    "desc": desc,
                    "timestamp": "now",
                    "active": True,
                    "internal": None,
                    "range": None,
                    "next": None,
                }
                for desc in descriptors
            ],
        }

    def load_wallet(self, wallet: str) -> dict[str, Any]:
        with self._lock:
            if wallet not in self._state.wallets:
                raise _not_found()
            self._state.loaded_wallets.add(wallet)
        return {"name": wallet, "warning": None}

    def list_wallets(self) -> list[str]:
        with self._lock:
            return sorted(self._state.loaded_wallets)


def _error_response(request_id: Any, error: RpcError) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "error": error.to_dict(), "id": request_id}