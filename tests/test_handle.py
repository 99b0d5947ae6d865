import json
import urllib.request

import pytest

from fakecore.handle import Builder, builder, spawn
from fakecore.primitives import COIN_VALUE, Network, OutPoint, hash_to_hex
from fakecore.state import TransactionTemplate


def rpc(handle, method, params=None):
    body = json.dumps({"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []})
    request = urllib.request.Request(
        handle.url(), data=body.encode(), headers={"Content-Type": "application/json"}
    )
    with urllib.request.urlopen(request, timeout=5) as response:
        return json.loads(response.read())


@pytest.fixture
def node():
    with spawn() as handle:
        yield handle


def test_url_uses_port(node):
    assert node.url() == f"http://127.0.0.1:{node.port}"


def test_block_count_follows_mining(node):
    assert rpc(node, "getblockcount")["result"] == 0
    blocks = node.mine_blocks(2)
    assert len(blocks) == 2
    assert rpc(node, "getblockcount")["result"] == 2


def test_mined_coinbase_pays_subsidy(node):
    block = node.mine_blocks(1)[0]
    assert block.txdata[0].outputs[0].value == 50 * COIN_VALUE
    block = node.mine_blocks_with_subsidy(1, 100)[0]
    assert block.txdata[0].outputs[0].value == 100


def test_tx_returns_block_transaction(node):
    block = node.mine_blocks(1)[0]
    assert node.tx(1, 0) == block.txdata[0]


def test_invalidate_tip(node):
    block = node.mine_blocks(1)[0]
    assert node.invalidate_tip() == block.block_hash()
    assert rpc(node, "getblockcount")["result"] == 0


def test_utxo_amount(node):
    coinbase = node.mine_blocks(1)[0].txdata[0]
    assert node.get_utxo_amount(OutPoint(coinbase.txid(), 0)) == 50 * COIN_VALUE
    assert node.get_utxo_amount(OutPoint(bytes(32), 0)) is None


def test_broadcast_tx_enters_mempool(node):
    coinbase = node.mine_blocks(1)[0].txdata[0]
    txid = node.broadcast_tx(TransactionTemplate(inputs=[(1, 0, 0)]))
    mempool = node.mempool()
    assert [tx.txid() for tx in mempool] == [txid]
    assert mempool[0].inputs[0].previous_output == OutPoint(coinbase.txid(), 0)
    node.mine_blocks(1)
    assert node.mempool() == []


def test_descriptors(node):
    assert node.descriptors() == []
    node.import_descriptor("wpkh([aslfjk])#a23ad2l")
    rpc(node, "importdescriptors", [[{"desc": "tr(key)"}]])
    assert node.descriptors() == ["wpkh([aslfjk])#a23ad2l", "tr(key)"]


def test_send_to_address_records_locked_outputs(node):
    coinbase = node.mine_blocks(1)[0].txdata[0]
    outpoint = OutPoint(coinbase.txid(), 0)
    node.lock(outpoint)
    address = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
    response = rpc(node, "sendtoaddress", [address, 1.0])
    assert response["result"] == "0" * 64
    sent = node.sent()
    assert len(sent) == 1
    assert sent[0].address == address
    assert sent[0].amount == 1.0
    assert sent[0].locked == [outpoint]


def test_wallets_and_loaded_wallets(node):
    assert "ord" not in node.wallets()
    rpc(node, "createwallet", ["ord"])
    assert "ord" in node.wallets()
    assert node.loaded_wallets() == set()
    rpc(node, "loadwallet", ["ord"])
    assert node.loaded_wallets() == {"ord"}


def test_unknown_height_is_not_found(node):
    assert rpc(node, "getblockhash", [99])["error"]["code"] == -8


@pytest.mark.parametrize(
    "network, expected",
    [
        (Network.BITCOIN, "mainnet"),
        (Network.TESTNET, "testnet"),
        (Network.SIGNET, "signet"),
        (Network.REGTEST, "regtest"),
    ],
)
def test_network_names(network, expected):
    with builder().network(network).build() as handle:
        assert handle.network() == expected


def test_version_reported_over_rpc():
    with builder().version(230000).build() as handle:
        assert rpc(handle, "getnetworkinfo")["result"]["version"] == 230000
    with spawn() as handle:
        assert rpc(handle, "getnetworkinfo")["result"]["version"] == 240000


def test_fail_lock_unspent():
    with builder().fail_lock_unspent(True).build() as handle:
        coinbase = handle.mine_blocks(1)[0].txdata[0]
        output = {"txid": hash_to_hex(coinbase.txid()), "vout": 0}
        assert rpc(handle, "lockunspent", [False, [output]])["result"] is False


def test_builder_methods_return_new_builders():
    base = builder()
    changed = base.network(Network.REGTEST)
    assert isinstance(changed, Builder)
    with base.build() as handle:
        assert handle.network() == "mainnet"
    with changed.build() as handle:
        assert handle.network() == "regtest"


def test_close_stops_server():
    handle = spawn()
    assert rpc(handle, "getblockcount")["result"] == 0
    handle.close()
    handle.close()
    with pytest.raises(OSError):
        rpc(handle, "getblockcount")