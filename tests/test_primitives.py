import pytest

from fakecore.primitives import (
    COIN_VALUE,
    Block,
    BlockHeader,
    Network,
    OutPoint,
    Transaction,
    TxIn,
    TxOut,
    genesis_block,
    hash_to_hex,
    hex_to_hash,
    parse_transaction,
    push_int_script,
    random_taproot_address,
    taproot_address,
)

GENESIS_TXID = "4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b"


def _sample_tx(witness=()):
    return Transaction(
        version=2,
        lock_time=7,
        inputs=[
            TxIn(OutPoint(bytes(range(32)), 3), b"\x51", 5, list(witness)),
            TxIn(OutPoint(bytes(32), 1)),
        ],
        outputs=[TxOut(1234, b"\x00\x14" + bytes(20)), TxOut(99)],
    )


@pytest.mark.parametrize("network", list(Network))
def test_genesis_coinbase_txid(network):
    block = genesis_block(network)
    assert hash_to_hex(block.txdata[0].txid()) == GENESIS_TXID


def test_mainnet_genesis_block_hash():
    assert (
        hash_to_hex(genesis_block(Network.BITCOIN).block_hash())
        == "000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f"
    )


def test_genesis_hashes_differ_per_network():
    hashes = {genesis_block(network).block_hash() for network in Network}
    assert len(hashes) == len(Network)


def test_genesis_merkle_root_is_coinbase_txid():
    block = genesis_block(Network.BITCOIN)
    assert block.header.merkle_root == block.txdata[0].txid()
    assert block.txdata[0].outputs[0].value == 50 * COIN_VALUE


def test_genesis_coinbase_round_trips():
    coinbase = genesis_block(Network.BITCOIN).txdata[0]
    assert parse_transaction(coinbase.to_bytes()) == coinbase


def test_legacy_round_trip():
    tx = _sample_tx()
    assert parse_transaction(tx.to_bytes()) == tx


def test_witness_round_trip():
    tx = _sample_tx([b"\x01" * 64, b""])
    assert parse_transaction(tx.to_bytes()) == tx


def test_transaction_without_inputs_round_trips():
    tx = Transaction(outputs=[TxOut(5)])
    assert parse_transaction(tx.to_bytes()) == tx


def test_witness_does_not_change_txid():
    plain = _sample_tx()
    signed = _sample_tx([b"\x02" * 64])
    assert plain.txid() == signed.txid()
    assert len(signed.to_bytes()) > len(plain.to_bytes())


def test_legacy_vsize_equals_length():
    tx = _sample_tx()
    assert tx.vsize() == len(tx.to_bytes())


def test_witness_vsize_is_discounted():
    plain = _sample_tx()
    signed = _sample_tx([b"\x03" * 64])
    assert len(plain.to_bytes()) < signed.vsize() < len(signed.to_bytes())


def test_parse_rejects_trailing_data():
    with pytest.raises(ValueError):
        parse_transaction(_sample_tx().to_bytes() + b"\x00")


def test_parse_rejects_truncated_data():
    with pytest.raises(ValueError):
        parse_transaction(_sample_tx().to_bytes()[:-1])


def test_hash_hex_round_trip():
    digest = bytes(range(32))
    text = hash_to_hex(digest)
    assert text.startswith("1f1e")
    assert hex_to_hash(text) == digest


def test_hex_to_hash_rejects_wrong_length():
    with pytest.raises(ValueError):
        hex_to_hash("abcd")


def test_outpoint_null():
    assert OutPoint.null().is_null()
    assert not OutPoint(bytes(32), 0).is_null()


def test_outpoint_str():
    txid = hex_to_hash(GENESIS_TXID)
    assert str(OutPoint(txid, 3)) == f"{GENESIS_TXID}:3"


def test_outpoints_sort_by_txid_then_vout():
    low = bytes(31) + b"\x01"
    high = b"\x01" + bytes(31)
    points = [OutPoint(high, 0), OutPoint(low, 2), OutPoint(low, 1)]
    assert sorted(points) == [OutPoint(low, 1), OutPoint(low, 2), OutPoint(high, 0)]


def test_push_int_small_numbers_are_consecutive_opcodes():
    first = push_int_script(1)
    for n in range(1, 17):
        script = push_int_script(n)
        assert len(script) == 1
        assert script[0] - first[0] == n - 1


def test_push_int_larger_numbers_are_data_pushes():
    script = push_int_script(17)
    assert script[0] == len(script) - 1
    assert script[1:] == bytes([17])


def test_push_int_sign_bit():
    positive = push_int_script(128)
    negative = push_int_script(-128)
    assert len(positive) == len(negative)
    assert positive[:-1] == negative[:-1]
    assert positive[-1] ^ negative[-1] == 0x80


def test_block_serialization():
    coinbase = genesis_block(Network.REGTEST).txdata[0]
    header = BlockHeader(0, bytes(32), bytes(32), 1, 0, 0)
    block = Block(header, [coinbase])
    assert block.to_bytes() == header.to_bytes() + bytes([1]) + coinbase.to_bytes()
    assert block.block_hash() == header.block_hash()


def test_bip86_address():
    key = bytes.fromhex("cc8a4bc64d897bddc5fbc2f670f7a8ba0b386779106cf1223c6fc5d7cd6fc115")
    assert (
        taproot_address(key, Network.BITCOIN)
        == "bc1p5cyxnuxmeuwuvkwfem96lqzszd02n6xdcjrs20cac6yqjjwudpxqkedrcr"
    )


@pytest.mark.parametrize("network", list(Network))
def test_random_taproot_address_prefix(network):
    assert random_taproot_address(network).startswith(network.hrp + "1p")


def test_random_addresses_are_distinct_and_well_formed():
    addresses = {random_taproot_address(Network.BITCOIN) for _ in range(5)}
    assert len(addresses) == 5
    assert all(len(address) == 62 for address in addresses)


def test_taproot_address_rejects_bad_length():
    with pytest.raises(ValueError):
        taproot_address(bytes(31), Network.BITCOIN)


def test_taproot_address_rejects_out_of_range_key():
    with pytest.raises(ValueError):
        taproot_address(b"\xff" * 32, Network.BITCOIN)