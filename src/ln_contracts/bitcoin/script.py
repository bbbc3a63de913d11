"""Bitcoin script building: opcodes, canonical pushes, script numbers and parsing.

Provides construction and parsing of consensus-exact scripts:
- Minimal data pushes and minimal script-number encoding
- ``ScriptBuilder`` for assembling scripts opcode by opcode
- ``Script``, an immutable byte sequence with operation iteration
- Script type detection and classification
"""

from __future__ import annotations

import enum
import struct
from collections.abc import Iterator

from ln_contracts.errors.construction_errors import InvalidKeyError, ScriptEncodingError
from ln_contracts.utils.crypto import hash160, sha256

# Consensus limits
MAX_SCRIPT_ELEMENT_SIZE = 520
MAX_SCRIPT_SIZE = 10_000
# CHECKLOCKTIMEVERIFY / CHECKSEQUENCEVERIFY accept 5-byte operands
MAX_SCRIPT_NUM_LENGTH = 5
# CHECKMULTISIG key count limit
MAX_MULTISIG_KEYS = 20

# ---------------------------------------------------------------------------
# Opcodes
# ---------------------------------------------------------------------------


class OpCode(int, enum.Enum):
    """Opcodes used by channel and HTLC contracts."""

    OP_0 = 0x00
    OP_FALSE = 0x00
    OP_PUSHDATA1 = 0x4C
    OP_PUSHDATA2 = 0x4D
    OP_PUSHDATA4 = 0x4E
    OP_1NEGATE = 0x4F
    OP_1 = 0x51
    OP_TRUE = 0x51
    OP_2 = 0x52
    OP_3 = 0x53
    OP_4 = 0x54
    OP_5 = 0x55
    OP_6 = 0x56
    OP_7 = 0x57
    OP_8 = 0x58
    OP_9 = 0x59
    OP_10 = 0x5A
    OP_11 = 0x5B
    OP_12 = 0x5C
    OP_13 = 0x5D
    OP_14 = 0x5E
    OP_15 = 0x5F
    OP_16 = 0x60
    OP_NOP = 0x61
    OP_IF = 0x63
    OP_NOTIF = 0x64
    OP_ELSE = 0x67
    OP_ENDIF = 0x68
    OP_VERIFY = 0x69
    OP_RETURN = 0x6A
    OP_IFDUP = 0x73
    OP_DROP = 0x75
    OP_DUP = 0x76
    OP_SWAP = 0x7C
    OP_SIZE = 0x82
    OP_EQUAL = 0x87
    OP_EQUALVERIFY = 0x88
    OP_SHA256 = 0xA8
    OP_HASH160 = 0xA9
    OP_CHECKSIG = 0xAC
    OP_CHECKSIGVERIFY = 0xAD
    OP_CHECKMULTISIG = 0xAE
    OP_CHECKMULTISIGVERIFY = 0xAF
    OP_CHECKLOCKTIMEVERIFY = 0xB1
    OP_CLTV = 0xB1
    OP_CHECKSEQUENCEVERIFY = 0xB2
    OP_CSV = 0xB2


# ---------------------------------------------------------------------------
# Script Type
# ---------------------------------------------------------------------------


class ScriptType(enum.StrEnum):
    """Known locking-script shapes."""

    P2PKH = "pubkeyhash"
    P2SH = "scripthash"
    P2WPKH = "witness_v0_keyhash"
    P2WSH = "witness_v0_scripthash"
    MULTISIG = "multisig"
    NULL_DATA = "nulldata"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Data push and script-number helpers
# ---------------------------------------------------------------------------


def push_data(data: bytes, *, max_size: int | None = MAX_SCRIPT_ELEMENT_SIZE) -> bytes:
    """Encode a data push operation using minimal encoding rules.

    Args:
        data: Arbitrary data bytes.
        max_size: Largest element accepted; ``None`` disables the check.

    Returns:
        The opcode(s) + data for a minimal push of *data*.

    Raises:
        ScriptEncodingError: If *data* is longer than *max_size*.
    """
    length = len(data)
    if max_size is not None and length > max_size:
        msg = f"push of {length} bytes exceeds the {max_size}-byte element limit"
        raise ScriptEncodingError(msg, template="push_data", argument="data")
    if length == 0:
        return bytes([OpCode.OP_0])
    if length <= 0x4B:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OpCode.OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OpCode.OP_PUSHDATA2]) + struct.pack("<H", length) + data
    return bytes([OpCode.OP_PUSHDATA4]) + struct.pack("<I", length) + data


def encode_script_num(n: int) -> bytes:
    """Encode *n* as a minimal little-endian sign-magnitude script number.

    Zero encodes to the empty byte string. The top bit of the last byte is the
    sign; an extra byte is appended when the magnitude already uses it.
    """
    if n == 0:
        return b""
    negative = n < 0
    magnitude = -n if negative else n
    out = bytearray()
    while magnitude:
        out.append(magnitude & 0xFF)
        magnitude >>= 8
    if out[-1] & 0x80:
        out.append(0x80 if negative else 0x00)
    elif negative:
        out[-1] |= 0x80
    return bytes(out)


def decode_script_num(data: bytes, *, max_length: int = MAX_SCRIPT_NUM_LENGTH) -> int:
    """Decode a minimally encoded script number.

    Raises:
        ScriptEncodingError: If *data* is too long or not minimally encoded.
    """
    if len(data) > max_length:
        msg = f"script number of {len(data)} bytes exceeds {max_length} bytes"
        raise ScriptEncodingError(msg, template="decode_script_num")
    if not data:
        return 0
    # The last byte may only be 0x00/0x80 if the byte before it needs its high bit
    if data[-1] & 0x7F == 0 and (len(data) == 1 or not data[-2] & 0x80):
        msg = f"non-minimal script number encoding: {data.hex()}"
        raise ScriptEncodingError(msg, template="decode_script_num")
    value = int.from_bytes(data, "little")
    if data[-1] & 0x80:
        return -(value & ~(0x80 << (8 * (len(data) - 1))))
    return value


def push_int(n: int) -> bytes:
    """Encode an integer push: OP_0, OP_1NEGATE, OP_1..OP_16, else a minimal script number.

    Raises:
        ScriptEncodingError: If *n* needs more than five bytes.
    """
    if n == 0:
        return bytes([OpCode.OP_0])
    if n == -1:
        return bytes([OpCode.OP_1NEGATE])
    if 1 <= n <= 16:
        return bytes([OpCode.OP_1 + n - 1])
    encoded = encode_script_num(n)
    if len(encoded) > MAX_SCRIPT_NUM_LENGTH:
        msg = f"integer {n} is outside the {MAX_SCRIPT_NUM_LENGTH}-byte script-number range"
        raise ScriptEncodingError(msg, template="push_int", argument="n")
    return push_data(encoded)


def _check_compressed_key(pubkey: bytes) -> None:
    if len(pubkey) != 33 or pubkey[0] not in (0x02, 0x03):
        msg = f"expected a 33-byte compressed public key, got {len(pubkey)} bytes"
        raise InvalidKeyError(msg, template="push_key", argument="pubkey")


# ---------------------------------------------------------------------------
# Script and builder
# ---------------------------------------------------------------------------


class Script(bytes):
    """An immutable, serialized script.

    Equality and hashing are those of the underlying bytes, so a ``Script``
    compares equal to the raw bytes it wraps.
    """

    def __repr__(self) -> str:
        return f"Script({self.hex()!r})"

    def ops(self) -> list[tuple[int, bytes | None]]:
        """Return the parsed ``(opcode, pushed_data)`` operations."""
        return list(iter_script_ops(self))

    def witness_program_hash(self) -> bytes:
        """SHA-256 of the script, i.e. the P2WSH witness program."""
        return sha256(self)

    def to_p2wsh(self) -> Script:
        """The version-0 P2WSH output script paying to this script."""
        return Script(bytes([OpCode.OP_0]) + push_data(self.witness_program_hash()))

    def to_p2sh(self) -> Script:
        """The P2SH output script paying to this script."""
        return Script(
            bytes([OpCode.OP_HASH160])
            + push_data(hash160(self))
            + bytes([OpCode.OP_EQUAL])
        )


class ScriptBuilder:
    """Accumulates opcodes and pushes into a canonical script.

    Usage::

        script = (
            ScriptBuilder()
            .push_opcode(OpCode.OP_DUP)
            .push_opcode(OpCode.OP_HASH160)
            .push_pubkey_hash(pubkey)
            .push_opcode(OpCode.OP_EQUALVERIFY)
            .push_opcode(OpCode.OP_CHECKSIG)
            .build()
        )

    ``build()`` copies the accumulated bytes, so later pushes never alter a
    script that was already returned.
    """

    def __init__(self) -> None:
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def push_opcode(self, opcode: OpCode | int) -> ScriptBuilder:
        """Append a single opcode byte."""
        self._buf.append(int(opcode))
        return self

    def push_int(self, n: int) -> ScriptBuilder:
        """Append a minimally encoded integer."""
        self._buf += push_int(n)
        return self

    def push_data(self, data: bytes) -> ScriptBuilder:
        """Append a length-prefixed data push."""
        self._buf += push_data(data)
        return self

    def push_key(self, pubkey: bytes) -> ScriptBuilder:
        """Append a 33-byte compressed public key."""
        _check_compressed_key(pubkey)
        self._buf += push_data(pubkey)
        return self

    def push_hash160(self, digest: bytes) -> ScriptBuilder:
        """Append a 20-byte hash."""
        if len(digest) != 20:
            msg = f"hash160 must be 20 bytes, got {len(digest)}"
            raise ScriptEncodingError(msg, template="push_hash160", argument="digest")
        self._buf += push_data(digest)
        return self

    def push_pubkey_hash(self, pubkey: bytes) -> ScriptBuilder:
        """Append HASH160 of a compressed public key."""
        _check_compressed_key(pubkey)
        return self.push_hash160(hash160(pubkey))

    def push_script(self, script: bytes) -> ScriptBuilder:
        """Append a complete sub-script verbatim (script-in-script branch bodies)."""
        self._buf += script
        return self

    def build(self) -> Script:
        """Finalize into an immutable :class:`Script`.

        Raises:
            ScriptEncodingError: If the script exceeds the consensus size limit.
        """
        if len(self._buf) > MAX_SCRIPT_SIZE:
            msg = f"script of {len(self._buf)} bytes exceeds the {MAX_SCRIPT_SIZE}-byte limit"
            raise ScriptEncodingError(msg, template="ScriptBuilder.build")
        return Script(bytes(self._buf))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def iter_script_ops(script: bytes) -> Iterator[tuple[int, bytes | None]]:
    """Yield ``(opcode, data)`` pairs; *data* is ``None`` for non-push opcodes.

    Raises:
        ScriptEncodingError: If a push runs past the end of the script.
    """
    i = 0
    end = len(script)
    while i < end:
        opcode = script[i]
        i += 1
        if opcode == OpCode.OP_0:
            yield opcode, b""
            continue
        if opcode <= 0x4B:
            size = opcode
        elif opcode == OpCode.OP_PUSHDATA1:
            size = script[i] if i < end else -1
            i += 1
        elif opcode == OpCode.OP_PUSHDATA2:
            size = struct.unpack("<H", script[i : i + 2])[0] if i + 2 <= end else -1
            i += 2
        elif opcode == OpCode.OP_PUSHDATA4:
            size = struct.unpack("<I", script[i : i + 4])[0] if i + 4 <= end else -1
            i += 4
        else:
            yield opcode, None
            continue
        if size < 0 or i + size > end:
            msg = f"truncated push at offset {i}"
            raise ScriptEncodingError(msg, template="iter_script_ops")
        yield opcode, bytes(script[i : i + size])
        i += size


# ---------------------------------------------------------------------------
# Script type detection
# ---------------------------------------------------------------------------


def detect_script_type(script: bytes) -> ScriptType:
    """Detect the type of a locking script.

    Recognises:
    - P2PKH: ``OP_DUP OP_HASH160 <20> OP_EQUALVERIFY OP_CHECKSIG``
    - P2SH: ``OP_HASH160 <20> OP_EQUAL``
    - P2WPKH: ``OP_0 <20>``
    - P2WSH: ``OP_0 <32>``
    - MULTISIG: ``<k> <key>... <n> OP_CHECKMULTISIG``
    - NULL_DATA: ``OP_RETURN ...`` or ``OP_FALSE OP_RETURN ...``
    """
    if len(script) == 0:
        return ScriptType.UNKNOWN

    if (
        len(script) == 25
        and script[0] == OpCode.OP_DUP
        and script[1] == OpCode.OP_HASH160
        and script[2] == 0x14  # push 20 bytes
        and script[23] == OpCode.OP_EQUALVERIFY
        and script[24] == OpCode.OP_CHECKSIG
    ):
        return ScriptType.P2PKH

    if (
        len(script) == 23
        and script[0] == OpCode.OP_HASH160
        and script[1] == 0x14
        and script[22] == OpCode.OP_EQUAL
    ):
        return ScriptType.P2SH

    if len(script) == 22 and script[0] == OpCode.OP_0 and script[1] == 0x14:
        return ScriptType.P2WPKH
    if len(script) == 34 and script[0] == OpCode.OP_0 and script[1] == 0x20:
        return ScriptType.P2WSH

    if script[0] == OpCode.OP_RETURN:
        return ScriptType.NULL_DATA
    if len(script) >= 2 and script[0] == OpCode.OP_FALSE and script[1] == OpCode.OP_RETURN:
        return ScriptType.NULL_DATA

    if script[-1] == OpCode.OP_CHECKMULTISIG and _is_multisig(script):
        return ScriptType.MULTISIG

    return ScriptType.UNKNOWN


def _op_number(opcode: int, data: bytes | None) -> int | None:
    """Value of a small-number operand: OP_1..OP_16 or a minimal script-number push."""
    if OpCode.OP_1 <= opcode <= OpCode.OP_16:
        return opcode - OpCode.OP_1 + 1
    if not data:
        return None
    try:
        return decode_script_num(data)
    except ScriptEncodingError:
        return None


def _multisig_span(
    ops: list[tuple[int, bytes | None]], end: int
) -> tuple[int, int, list[bytes]] | None:
    """``(start, k, keys)`` of a ``<k> <keys...> <n> CHECKMULTISIG`` whose CHECKMULTISIG is ``ops[end]``."""
    if end < 3 or ops[end][0] != OpCode.OP_CHECKMULTISIG:
        return None
    n = _op_number(*ops[end - 1])
    if n is None or not 1 <= n <= MAX_MULTISIG_KEYS:
        return None
    start = end - 2 - n
    if start < 0:
        return None
    k = _op_number(*ops[start])
    keys = [data for _, data in ops[start + 1 : end - 1]]
    if k is None or not 1 <= k <= n or any(d is None or len(d) != 33 for d in keys):
        return None
    return start, k, [d for d in keys if d is not None]


def find_multisig(script: bytes) -> tuple[int, list[bytes]] | None:
    """Threshold and keys of the first well-formed multisig fragment in *script*.

    The fragment may be embedded in a larger script, e.g. one branch of an
    ``OP_IF``.  Counts above 16 are read from script-number pushes.
    Returns None if there is no such fragment.

    Raises:
        ScriptEncodingError: If *script* contains a truncated push.
    """
    ops = list(iter_script_ops(script))
    for end in range(len(ops)):
        span = _multisig_span(ops, end)
        if span is not None:
            _, k, keys = span
            return k, keys
    return None


def _is_multisig(script: bytes) -> bool:
    try:
        ops = list(iter_script_ops(script))
    except ScriptEncodingError:
        return False
    span = _multisig_span(ops, len(ops) - 1)
    return span is not None and span[0] == 0


def extract_pubkey_hash(script: bytes) -> bytes | None:
    """Extract the 20-byte pubkey hash from a P2PKH or P2WPKH locking script.

    Returns None if the script is neither.
    """
    script_type = detect_script_type(script)
    if script_type == ScriptType.P2PKH:
        return script[3:23]
    if script_type == ScriptType.P2WPKH:
        return script[2:22]
    return None


def extract_multisig_keys(script: bytes) -> list[bytes]:
    """Return the public keys of a bare multisig script, in pushed order.

    Raises:
        ScriptEncodingError: If *script* is not a multisig script.
    """
    found = find_multisig(script) if detect_script_type(script) == ScriptType.MULTISIG else None
    if found is None:
        msg = "not a multisig script"
        raise ScriptEncodingError(msg, template="extract_multisig_keys", argument="script")
    return found[1]
