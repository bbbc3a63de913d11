"""Address encoding: Base58Check and bech32 segwit addresses.

Address operations for the output scripts a channel produces:
- Base58Check encoding/decoding (P2PKH and P2SH addresses)
- BIP173 bech32 encoding of version-0 witness programs (P2WPKH, P2WSH)
- Conversion between locking scripts and addresses for a given network
"""

from __future__ import annotations

from ln_contracts.bitcoin.script import OpCode, ScriptType, detect_script_type, push_data
from ln_contracts.config.settings import Network
from ln_contracts.utils.crypto import hash160, sha256d

# ---------------------------------------------------------------------------
# Base58Check encoding / decoding
# ---------------------------------------------------------------------------

_B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58_encode(payload: bytes) -> str:
    """Encode raw bytes to Base58 (no checksum)."""
    n = int.from_bytes(payload, "big")
    result: list[int] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_B58_ALPHABET[remainder])
    # Leading zero bytes map to leading '1' characters
    for byte in payload:
        if byte != 0:
            break
        result.append(_B58_ALPHABET[0])
    return bytes(reversed(result)).decode("ascii")


def base58_decode(s: str) -> bytes:
    """Decode a Base58 string to raw bytes (no checksum).

    Raises:
        ValueError: If *s* contains a character outside the Base58 alphabet.
    """
    n = 0
    for char in s:
        index = _B58_ALPHABET.find(char.encode("ascii", errors="replace"))
        if index < 0:
            msg = f"Invalid Base58 character: {char!r}"
            raise ValueError(msg)
        n = n * 58 + index
    result = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad_count = len(s) - len(s.lstrip("1"))
    return b"\x00" * pad_count + result


def base58check_encode(payload: bytes) -> str:
    """Encode bytes with a 4-byte SHA256d checksum (Base58Check)."""
    return base58_encode(payload + sha256d(payload)[:4])


def base58check_decode(s: str) -> bytes:
    """Decode a Base58Check string, verifying the checksum.

    Raises:
        ValueError: If the string is too short or the checksum is invalid.
    """
    raw = base58_decode(s)
    if len(raw) < 4:
        msg = "Base58Check string too short"
        raise ValueError(msg)
    payload, checksum = raw[:-4], raw[-4:]
    if checksum != sha256d(payload)[:4]:
        msg = "Base58Check checksum mismatch"
        raise ValueError(msg)
    return payload


# ---------------------------------------------------------------------------
# Bech32 (BIP173)
# ---------------------------------------------------------------------------

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


def _bech32_polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i, gen in enumerate(_BECH32_GENERATOR):
            if (top >> i) & 1:
                chk ^= gen
    return chk


def _bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def _bech32_checksum(hrp: str, data: list[int]) -> list[int]:
    polymod = _bech32_polymod(_bech32_hrp_expand(hrp) + data + [0] * 6) ^ 1
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def bech32_encode(hrp: str, data: list[int]) -> str:
    """Compute a bech32 string from an HRP and 5-bit data values."""
    combined = data + _bech32_checksum(hrp, data)
    return hrp + "1" + "".join(_BECH32_CHARSET[d] for d in combined)


def bech32_decode(bech: str) -> tuple[str, list[int]]:
    """Validate a bech32 string and split it into HRP and 5-bit data values.

    Raises:
        ValueError: On mixed case, bad characters, or a checksum mismatch.
    """
    if any(ord(x) < 33 or ord(x) > 126 for x in bech) or (
        bech.lower() != bech and bech.upper() != bech
    ):
        msg = f"Not a bech32-encoded string: {bech}"
        raise ValueError(msg)
    bech = bech.lower()
    pos = bech.rfind("1")
    if pos < 1 or pos + 7 > len(bech) or len(bech) > 90:
        msg = f"Could not locate hrp separator '1' in {bech}"
        raise ValueError(msg)
    if not all(x in _BECH32_CHARSET for x in bech[pos + 1 :]):
        msg = f"Non-bech32 character found in {bech}"
        raise ValueError(msg)
    hrp = bech[:pos]
    data = [_BECH32_CHARSET.find(x) for x in bech[pos + 1 :]]
    if _bech32_polymod(_bech32_hrp_expand(hrp) + data) != 1:
        msg = f"Checksum verification failed for {bech}"
        raise ValueError(msg)
    return hrp, data[:-6]


def convert_bits(data: bytes | list[int], from_bits: int, to_bits: int, *, pad: bool = True) -> list[int]:
    """General power-of-2 base conversion.

    Raises:
        ValueError: If a value is out of range or the padding is invalid.
    """
    acc = 0
    bits = 0
    ret: list[int] = []
    maxv = (1 << to_bits) - 1
    max_acc = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            msg = f"value {value} does not fit in {from_bits} bits"
            raise ValueError(msg)
        acc = ((acc << from_bits) | value) & max_acc
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            ret.append((acc >> bits) & maxv)
    if pad:
        if bits:
            ret.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or (acc << (to_bits - bits)) & maxv:
        msg = "invalid padding in bit conversion"
        raise ValueError(msg)
    return ret


def encode_segwit_address(hrp: str, version: int, program: bytes) -> str:
    """Encode a version-0 witness program as a bech32 address.

    Raises:
        ValueError: For a non-zero version or a program of the wrong length.
    """
    _check_witness_program(version, program)
    return bech32_encode(hrp, [version, *convert_bits(program, 8, 5)])


def decode_segwit_address(hrp: str, address: str) -> tuple[int, bytes]:
    """Decode a bech32 segwit address into ``(version, program)``.

    Raises:
        ValueError: If the HRP does not match or the program is malformed.
    """
    got_hrp, data = bech32_decode(address)
    if got_hrp != hrp:
        msg = f"address HRP {got_hrp!r} does not match {hrp!r}"
        raise ValueError(msg)
    if not data:
        msg = "empty witness data"
        raise ValueError(msg)
    program = bytes(convert_bits(data[1:], 5, 8, pad=False))
    _check_witness_program(data[0], program)
    return data[0], program


def _check_witness_program(version: int, program: bytes) -> None:
    # Only version 0 is bech32; later versions use bech32m
    if version != 0:
        msg = f"unsupported witness version {version}"
        raise ValueError(msg)
    if len(program) not in (20, 32):
        msg = f"invalid version-0 witness program length {len(program)}"
        raise ValueError(msg)


# ---------------------------------------------------------------------------
# Script <-> address
# ---------------------------------------------------------------------------


def pubkey_to_address(pubkey: bytes, *, network: Network = Network.MAINNET) -> str:
    """Base58Check P2PKH address for a public key."""
    return base58check_encode(bytes([network.p2pkh_version]) + hash160(pubkey))


def pubkey_to_segwit_address(pubkey: bytes, *, network: Network = Network.MAINNET) -> str:
    """Bech32 P2WPKH address for a compressed public key."""
    return encode_segwit_address(network.bech32_hrp, 0, hash160(pubkey))


def script_to_address(script_pubkey: bytes, *, network: Network = Network.MAINNET) -> str:
    """Render a standard locking script as an address.

    Raises:
        ValueError: If the script has no address form (multisig, OP_RETURN, ...).
    """
    script_type = detect_script_type(script_pubkey)
    if script_type == ScriptType.P2PKH:
        return base58check_encode(bytes([network.p2pkh_version]) + script_pubkey[3:23])
    if script_type == ScriptType.P2SH:
        return base58check_encode(bytes([network.p2sh_version]) + script_pubkey[2:22])
    if script_type in (ScriptType.P2WPKH, ScriptType.P2WSH):
        return encode_segwit_address(network.bech32_hrp, 0, script_pubkey[2:])
    msg = f"no address form for {script_type} script"
    raise ValueError(msg)


def address_to_script(address: str, *, network: Network = Network.MAINNET) -> bytes:
    """Parse an address for *network* back into its locking script.

    Raises:
        ValueError: If the address is malformed or belongs to another network.
    """
    if address.lower().startswith(network.bech32_hrp + "1"):
        version, program = decode_segwit_address(network.bech32_hrp, address)
        return bytes([OpCode.OP_0 + version]) + push_data(program)
    payload = base58check_decode(address)
    if len(payload) != 21:
        msg = f"Invalid address payload length: {len(payload)}"
        raise ValueError(msg)
    version, digest = payload[0], payload[1:]
    if version == network.p2pkh_version:
        return (
            bytes([OpCode.OP_DUP, OpCode.OP_HASH160])
            + push_data(digest)
            + bytes([OpCode.OP_EQUALVERIFY, OpCode.OP_CHECKSIG])
        )
    if version == network.p2sh_version:
        return bytes([OpCode.OP_HASH160]) + push_data(digest) + bytes([OpCode.OP_EQUAL])
    msg = f"address version {version:#x} is not valid on {network}"
    raise ValueError(msg)


def validate_address(address: str, *, network: Network = Network.MAINNET) -> bool:
    """Check whether *address* parses as a standard address on *network*."""
    try:
        address_to_script(address, network=network)
    except ValueError:
        return False
    return True
