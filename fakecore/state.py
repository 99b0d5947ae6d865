"""In-memory chain, mempool and wallet bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .primitives import (
    MAX_SEQUENCE,
    ZERO_HASH,
    Block,
    BlockHeader,
    Network,
    OutPoint,
    Transaction,
    TxIn,
    TxOut,
    genesis_block,
    push_int_script,
)


@dataclass
class Sent:
    """A payment requested through the wallet interface."""

    amount: float
    address: str
    locked: list[OutPoint] = field(default_factory=list)


@dataclass(frozen=True)
class TransactionTemplate:
    """Shape of a transaction to put in the mempool.

    Each input is a (block height, transaction index, output index) triple.
    """

    fee: int = 0
    inputs: Sequence[tuple[int, int, int]] = ()
    output_values: Sequence[int] = ()
    outputs: int = 1
    witness: Sequence[bytes] = ()


class State:
    """Chain, mempool, UTXO set and wallet records of the fake node."""

    def __init__(self, network: Network, version: int, fail_lock_unspent: bool) -> None:
        genesis = genesis_block(network)
        genesis_hash = genesis.block_hash()
        self.blocks: dict[bytes, Block] = {genesis_hash: genesis}
        self.descriptors: list[str] = []
        self.fail_lock_unspent = fail_lock_unspent
        self.hashes: list[bytes] = [genesis_hash]
        self.locked: set[OutPoint] = set()
        self.mempool: list[Transaction] = []
        self.network = network
        self.nonce = 0
        self.sent: list[Sent] = []
        self.transactions: dict[bytes, Transaction] = {}
        self.utxos: dict[OutPoint, int] = {}
        self.version = version
        self.wallets: set[str] = set()
        self.loaded_wallets: set[str] = set()

    def _collect_fee(self, tx: Transaction) -> int:
        spent = sum(
            self.transactions[txin.previous_output.txid].outputs[txin.previous_output.vout].value
            for txin in tx.inputs
        )
        fee = spent - sum(txout.value for txout in tx.outputs)
        if fee < 0:
            raise ValueError("transaction spends more than its inputs")
        self.transactions[tx.txid()] = tx
        return fee

    def push_block(self, subsidy: int) -> Block:
        """Mine the mempool into a new block whose coinbase pays subsidy plus fees."""
        fees = sum(self._collect_fee(tx) for tx in self.mempool)
        coinbase = Transaction(
            version=0,
            lock_time=0,
            inputs=[TxIn(OutPoint.null(), push_int_script(len(self.blocks)), MAX_SEQUENCE)],
            outputs=[TxOut(subsidy + fees)],
        )
        self.transactions[coinbase.txid()] = coinbase

        header = BlockHeader(
            version=0,
            prev_blockhash=self.hashes[-1],
            merkle_root=ZERO_HASH,
            time=len(self.blocks),
            bits=0,
            nonce=self.nonce,
        )
        block = Block(header, [coinbase, *self.mempool])
        self.mempool.clear()

        for tx in block.txdata:
            for txin in tx.inputs:
                self.utxos.pop(txin.previous_output, None)
            txid = tx.txid()
            for vout, txout in enumerate(tx.outputs):
                self.utxos[OutPoint(txid, vout)] = txout.value

        block_hash = block.block_hash()
        self.blocks[block_hash] = block
        self.hashes.append(block_hash)
        self.nonce += 1
        return block

    def pop_block(self) -> bytes:
        """Remove the chain tip and return its hash."""
        if not self.hashes:
            raise IndexError("no blocks to remove")
        block_hash = self.hashes.pop()
        self.blocks.pop(block_hash, None)
        return block_hash

    def broadcast_tx(self, template: TransactionTemplate) -> bytes:
        """Build a transaction from a template, add it to the mempool and return its txid."""
        total_value = 0
        inputs = []
        for position, (height, tx_index, vout) in enumerate(template.inputs):
            source = self.blocks[self.hashes[height]].txdata[tx_index]
            total_value += source.outputs[vout].value
            inputs.append(
                TxIn(
                    OutPoint(source.txid(), vout),
                    b"",
                    MAX_SEQUENCE,
                    list(template.witness) if position == 0 else [],
                )
            )

        if template.outputs <= 0:
            raise ValueError("template must have at least one output")
        if template.fee > total_value:
            raise ValueError("fee exceeds input value")
        value_per_output = (total_value - template.fee) // template.outputs
        if value_per_output * template.outputs + template.fee != total_value:
            raise ValueError("input value does not split evenly between outputs")

        values = list(template.output_values)
        tx = Transaction(
            version=0,
            lock_time=0,
            inputs=inputs,
            outputs=[
                TxOut(values[i] if i < len(values) else value_per_output)
                for i in range(template.outputs)
            ],
        )
        self.mempool.append(tx)
        return tx.txid()

    def get_confirmations(self, tx: Transaction) -> int:
        """Depth of the block containing tx, counting the tip as one; 0 if unmined."""
        for depth, block_hash in enumerate(reversed(self.hashes), start=1):
            if tx in self.blocks[block_hash].txdata:
                return depth
        return 0