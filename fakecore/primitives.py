"""Bitcoin data structures with consensus serialization, hashing and addresses."""

from __future__ import annotations

import enum
import hashlib
import secrets
import struct
from dataclasses import dataclass, field

COIN_VALUE = 100_000_000
MAX_SEQUENCE = 0xFFFFFFFF
ZERO_HASH = bytes(32)


class Network(enum.Enum):
    """The Bitcoin networks a node can run on."""

    BITCOIN = "bitcoin"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"

    def __str__(self) -> str:
        return self.value

    @property
    def hrp(self) -> str:
        """Human-readable part used in segwit addresses."""
        return {"bitcoin": "bc", "regtest": "bcrt"}.get(self.value, "tb")


def _sha256d(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash_to_hex(digest: bytes) -> str:
    """Render a hash in the conventional byte-reversed hex form."""
    return bytes(digest)[::-1].hex()


def hex_to_hash(text: str) -> bytes:
    """Parse a byte-reversed hex hash into its internal byte order."""
    digest = bytes.fromhex(text)[::-1]
    if len(digest) != 32:
        raise ValueError(f"hash must be 32 bytes, got {len(digest)}")
    return digest


_VARINT_FORMATS = {0xFD: ("<H", 0xFD), 0xFE: ("<I", 0x10000), 0xFF: ("<Q", 0x100000000)}


def _varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    for prefix, (fmt, _) in _VARINT_FORMATS.items():
        if value < 1 << (8 * struct.calcsize(fmt)):
            return bytes([prefix]) + struct.pack(fmt, value)
    raise ValueError("varint too large")


def _var_bytes(data: bytes) -> bytes:
    return _varint(len(data)) + data


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.pos = 0

    def take(self, count: int) -> bytes:
        if self.pos + count > len(self.data):
            raise ValueError("unexpected end of data")
        self.pos += count
        return self.data[self.pos - count:self.pos]

    def unpack(self, fmt: str) -> int:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))[0]

    def varint(self) -> int:
        first = self.unpack("<B")
        if first < 0xFD:
            return first
        fmt, minimum = _VARINT_FORMATS[first]
        value = self.unpack(fmt)
        if value < minimum:
            raise ValueError("non-canonical varint")
        return value

    def var_bytes(self) -> bytes:
        return self.take(self.varint())


@dataclass(frozen=True, order=True)
class OutPoint:
    """A reference to one output of a transaction."""

    txid: bytes
    vout: int

    @staticmethod
    def null() -> OutPoint:
        """The outpoint spent by coinbase inputs."""
        return OutPoint(ZERO_HASH, 0xFFFFFFFF)

    def is_null(self) -> bool:
        return self == OutPoint.null()

    def __str__(self) -> str:
        return f"{hash_to_hex(self.txid)}:{self.vout}"


@dataclass
class TxIn:
    previous_output: OutPoint
    script_sig: bytes = b""
    sequence: int = MAX_SEQUENCE
    witness: list[bytes] = field(default_factory=list)


@dataclass
class TxOut:
    value: int
    script_pubkey: bytes = b""


@dataclass
class Transaction:
    """A transaction with BIP144 serialization."""

    version: int = 0
    lock_time: int = 0
    inputs: list[TxIn] = field(default_factory=list)
    outputs: list[TxOut] = field(default_factory=list)

    @property
    def has_witness(self) -> bool:
        # A transaction without inputs uses the extended form to stay unambiguous.
        return not self.inputs or any(txin.witness for txin in self.inputs)

    def _encode(self, with_witness: bool) -> bytes:
        parts = [struct.pack("<i", self.version), b"\x00\x01" if with_witness else b""]
        parts.append(_varint(len(self.inputs)))
        for txin in self.inputs:
            prev = txin.previous_output
            parts += [prev.txid, struct.pack("<I", prev.vout),
                      _var_bytes(txin.script_sig), struct.pack("<I", txin.sequence)]
        parts.append(_varint(len(self.outputs)))
        for txout in self.outputs:
            parts += [struct.pack("<Q", txout.value), _var_bytes(txout.script_pubkey)]
        if with_witness:
            for txin in self.inputs:
                parts.append(_varint(len(txin.witness)))
                parts.extend(_var_bytes(item) for item in txin.witness)
        parts.append(struct.pack("<I", self.lock_time))
        return b"".join(parts)

    def to_bytes(self) -> bytes:
        return self._encode(self.has_witness)

    def txid(self) -> bytes:
        """Double SHA-256 of the serialization without witness data."""
        return _sha256d(self._encode(False))

    def vsize(self) -> int:
        base = len(self._encode(False))
        return (base * 3 + len(self.to_bytes()) + 3) // 4


def _read_inputs(reader: _Reader) -> list[TxIn]:
    return [
        TxIn(OutPoint(reader.take(32), reader.unpack("<I")), reader.var_bytes(), reader.unpack("<I"))
        for _ in range(reader.varint())
    ]


def _read_outputs(reader: _Reader) -> list[TxOut]:
    return [TxOut(reader.unpack("<Q"), reader.var_bytes()) for _ in range(reader.varint())]


def parse_transaction(data: bytes) -> Transaction:
    """Decode a serialized transaction, rejecting truncated or trailing data."""
    reader = _Reader(data)
    version = reader.unpack("<i")
    inputs = _read_inputs(reader)
    if inputs:
        outputs = _read_outputs(reader)
    else:
        flag = reader.unpack("<B")
        if flag != 1:
            raise ValueError(f"unsupported segwit flag {flag}")
        inputs = _read_inputs(reader)
        outputs = _read_outputs(reader)
        for txin in inputs:
            txin.witness = [reader.var_bytes() for _ in range(reader.varint())]
        if inputs and not any(txin.witness for txin in inputs):
            raise ValueError("witness flag set but no witnesses present")
    tx = Transaction(version, reader.unpack("<I"), inputs, outputs)
    if reader.pos != len(reader.data):
        raise ValueError("trailing data after transaction")
    return tx


@dataclass(frozen=True)
class BlockHeader:
    version: int
    prev_blockhash: bytes
    merkle_root: bytes
    time: int
    bits: int
    nonce: int

    def to_bytes(self) -> bytes:
        return (struct.pack("<i", self.version) + self.prev_blockhash + self.merkle_root
                + struct.pack("<III", self.time, self.bits, self.nonce))

    def block_hash(self) -> bytes:
        return _sha256d(self.to_bytes())


@dataclass
class Block:
    header: BlockHeader
    txdata: list[Transaction] = field(default_factory=list)

    def to_bytes(self) -> bytes:
        return (self.header.to_bytes() + _varint(len(self.txdata))
                + b"".join(tx.to_bytes() for tx in self.txdata))

    def block_hash(self) -> bytes:
        return self.header.block_hash()


def _push_slice(data: bytes) -> bytes:
    size = len(data)
    if size < 0x4C:
        return bytes([size]) + data
    if size <= 0xFF:
        return b"\x4c" + bytes([size]) + data
    if size <= 0xFFFF:
        return b"\x4d" + struct.pack("<H", size) + data
    return b"\x4e" + struct.pack("<I", size) + data


def push_int_script(value: int) -> bytes:
    """A script that pushes one integer, using the shortest encoding."""
    if value == -1 or 1 <= value <= 16:
        return bytes([0x50 + value])
    if value == 0:
        return b"\x00"
    magnitude = abs(value)
    num = bytearray(magnitude.to_bytes((magnitude.bit_length() + 7) // 8, "little"))
    if num[-1] & 0x80:
        num.append(0x80 if value < 0 else 0x00)
    elif value < 0:
        num[-1] |= 0x80
    return _push_slice(bytes(num))


_GENESIS_SCRIPT_SIG = bytes.fromhex("04ffff001d0104") + _push_slice(
    b"The Times 03/Jan/2009 Chancellor on brink of second bailout for banks"
)
_GENESIS_PUBKEY = bytes.fromhex(
    "04678afdb0fe5548271967f1a67130b7105cd6a828e03909a67962e0ea1f61de"
    "b649f6bc3f4cef38c4f35504e51ec112de5c384df7ba0b8d578a4c702b6bf11d5f"
)
_GENESIS_HEADERS = {
    Network.BITCOIN: (1231006505, 0x1D00FFFF, 2083236893),
    Network.TESTNET: (1296688602, 0x1D00FFFF, 414098458),
    Network.SIGNET: (1598918400, 0x1E0377AE, 52613770),
    Network.REGTEST: (1296688602, 0x207FFFFF, 2),
}


def genesis_block(network: Network) -> Block:
    """The genesis block of the given network."""
    coinbase = Transaction(
        version=1,
        inputs=[TxIn(OutPoint.null(), _GENESIS_SCRIPT_SIG)],
        outputs=[TxOut(50 * COIN_VALUE, _push_slice(_GENESIS_PUBKEY) + b"\xac")],
    )
    time, bits, nonce = _GENESIS_HEADERS[network]
    return Block(BlockHeader(1, ZERO_HASH, coinbase.txid(), time, bits, nonce), [coinbase])


_P = 2**256 - 2**32 - 977
_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_G = (
    0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798,
    0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8,
)


def _point_add(a, b):
    if a is None or b is None:
        return a or b
    (x1, y1), (x2, y2) = a, b
    if x1 == x2 and (y1 + y2) % _P == 0:
        return None
    if a == b:
        slope = 3 * x1 * x1 * pow(2 * y1, -1, _P) % _P
    else:
        slope = (y2 - y1) * pow(x2 - x1, -1, _P) % _P
    x3 = (slope * slope - x1 - x2) % _P
    return (x3, (slope * (x1 - x3) - y1) % _P)


def _point_mul(point, scalar: int):
    result = None
    while scalar:
        if scalar & 1:
            result = _point_add(result, point)
        point = _point_add(point, point)
        scalar >>= 1
    return result


def _lift_x(x: int):
    if x >= _P:
        raise ValueError("x coordinate out of range")
    square = (pow(x, 3, _P) + 7) % _P
    y = pow(square, (_P + 1) // 4, _P)
    if y * y % _P != square:
        raise ValueError("x coordinate is not on the curve")
    return (x, y if y % 2 == 0 else _P - y)


_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


def _bech32_polymod(values: list[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = ((checksum & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_BECH32_GENERATORS):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _segwit_address(hrp: str, version: int, program: bytes) -> str:
    bits = int.from_bytes(program, "big") << (-len(program) * 8 % 5)
    groups = (len(program) * 8 + 4) // 5
    data = [version] + [(bits >> (5 * (groups - 1 - i))) & 31 for i in range(groups)]
    expanded = [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]
    polymod = _bech32_polymod(expanded + data + [0] * 6) ^ 0x2BC830A3
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_CHARSET[d] for d in data + checksum)


def taproot_address(xonly_key: bytes, network: Network) -> str:
    """Key-path-only taproot address for an x-only internal key."""
    key = bytes(xonly_key)
    if len(key) != 32:
        raise ValueError(f"x-only key must be 32 bytes, got {len(key)}")
    internal = _lift_x(int.from_bytes(key, "big"))
    tag = hashlib.sha256(b"TapTweak").digest()
    tweak = int.from_bytes(hashlib.sha256(tag + tag + key).digest(), "big")
    if tweak >= _N:
        raise ValueError("tweak out of range")
    output = _point_add(internal, _point_mul(_G, tweak))
    if output is None:
        raise ValueError("tweaked key is the point at infinity")
    return _segwit_address(network.hrp, 1, output[0].to_bytes(32, "big"))


def random_taproot_address(network: Network) -> str:
    """Taproot address for a freshly generated key."""
    point = _point_mul(_G, secrets.randbelow(_N - 1) + 1)
    return taproot_address(point[0].to_bytes(32, "big"), network)