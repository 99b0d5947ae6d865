"""Running fake node: an HTTP JSON-RPC server plus direct access to its state."""

from __future__ import annotations

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

from .primitives import COIN_VALUE, Block, Network, OutPoint, Transaction
from .server import Api
from .state import Sent, State, TransactionTemplate

_log = logging.getLogger(__name__)


def _handler_for(api: Api) -> type[BaseHTTPRequestHandler]:
    class _RpcHandler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:
            body = self.rfile.read(int(self.headers.get("Content-Length") or 0))
            response = api.handle(body)
            if response is None:
                self.send_response(204)
                self.send_header("Content-Length", "0")
                self.end_headers()
            else:
                self._send_json(200, response)

        def do_GET(self) -> None:
            error = {"code": -32600, "message": "Use POST"}
            self._send_json(405, {"jsonrpc": "2.0", "error": error, "id": None})

        def _send_json(self, status: int, payload: Any) -> None:
            data = json.dumps(payload).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format: str, *args: Any) -> None:
            _log.debug(format, *args)

    return _RpcHandler


class Builder:
    """Configures a fake node before it is started."""

    def __init__(self, fail_lock_unspent=False, network=Network.BITCOIN, version=240000) -> None:
        self._fail_lock_unspent = fail_lock_unspent
        self._network = network
        self._version = version

    def fail_lock_unspent(self, fail_lock_unspent: bool) -> Builder:
        """Make lockunspent report failure."""
        return Builder(fail_lock_unspent, self._network, self._version)

    def network(self, network: Network) -> Builder:
        return Builder(self._fail_lock_unspent, network, self._version)

    def version(self, version: int) -> Builder:
        return Builder(self._fail_lock_unspent, self._network, version)

    def build(self) -> Handle:
        """Start the node on a free local port."""
        state = State(self._network, self._version, self._fail_lock_unspent)
        lock = threading.Lock()
        server = HTTPServer(("127.0.0.1", 0), _handler_for(Api(state, lock)))
        thread = threading.Thread(
            target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True
        )
        thread.start()
        return Handle(server, thread, state, lock)


def builder() -> Builder:
    return Builder()


def spawn() -> Handle:
    """Start a node with default settings."""
    return builder().build()


class Handle:
    """A running fake node; closing it stops the server."""

    def __init__(self, server: HTTPServer, thread: threading.Thread, state: State, lock) -> None:
        self._server: HTTPServer | None = server
        self._thread = thread
        self._state = state
        self._lock = lock
        self.port: int = server.server_address[1]

    def url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def wallets(self) -> set[str]:
        with self._lock:
            return set(self._state.wallets)

    def mine_blocks(self, n: int) -> list[Block]:
        return self.mine_blocks_with_subsidy(n, 50 * COIN_VALUE)

    def mine_blocks_with_subsidy(self, n: int, subsidy: int) -> list[Block]:
        with self._lock:
            return [self._state.push_block(subsidy) for _ in range(n)]

    def broadcast_tx(self, template: TransactionTemplate) -> bytes:
        with self._lock:
            return self._state.broadcast_tx(template)

    def invalidate_tip(self) -> bytes:
        with self._lock:
            return self._state.pop_block()

    def get_utxo_amount(self, outpoint: OutPoint) -> int | None:
        with self._lock:
            return self._state.utxos.get(outpoint)

    def tx(self, bi: int, ti: int) -> Transaction:
        """Transaction ti of the block at height bi."""
        with self._lock:
            return self._state.blocks[self._state.hashes[bi]].txdata[ti]

    def mempool(self) -> list[Transaction]:
        with self._lock:
            return list(self._state.mempool)

    def descriptors(self) -> list[str]:
        with self._lock:
            return list(self._state.descriptors)

    def import_descriptor(self, desc: str) -> None:
        with self._lock:
            self._state.descriptors.append(desc)

    def sent(self) -> list[Sent]:
        with self._lock:
            return list(self._state.sent)

    def lock(self, output: OutPoint) -> None:
        with self._lock:
            self._state.locked.add(output)

    def network(self) -> str:
        network = self._state.network
        return "mainnet" if network is Network.BITCOIN else str(network)

    def loaded_wallets(self) -> set[str]:
        with self._lock:
            return set(self._state.loaded_wallets)

    def close(self) -> None:
        """Stop the server; later calls do nothing."""
        server, self._server = self._server, None
        if server is not None:
            server.shutdown()
            server.server_close()
            self._thread.join()

    def __enter__(self) -> Handle:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()