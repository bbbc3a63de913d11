"""Tests for Base58Check and bech32 addresses: bitcoin/address.py."""

from __future__ import annotations

import pytest

from ln_contracts.bitcoin.address import (
    address_to_script,
    base58_decode,
    base58_encode,
    base58check_decode,
    base58check_encode,
    bech32_decode,
    convert_bits,
    decode_segwit_address,
    encode_segwit_address,
    pubkey_to_address,
    pubkey_to_segwit_address,
    script_to_address,
    validate_address,
)
from ln_contracts.bitcoin.script import Script
from ln_contracts.config.settings import Network

_G = bytes.fromhex("0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
_G_HASH160 = bytes.fromhex("751e76e8199196d454941c45d1b3a323f1433bd6")
_P2WPKH_ADDRESS = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
_P2WSH_TESTNET = "tb1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3q0sl5k7"
_P2WSH_PROGRAM = bytes.fromhex("1863143c14c5166804bd19203356da136c985678cd4d27a1b8c6329604903262")


class TestBase58:
    """Base58 and Base58Check."""

    def test_leading_zeros(self) -> None:
        assert base58_encode(b"\x00\x00\x01") == "112"
        assert base58_decode("112") == b"\x00\x00\x01"

    def test_empty(self) -> None:
        assert base58_encode(b"") == ""
        assert base58_decode("") == b""

    def test_invalid_character(self) -> None:
        with pytest.raises(ValueError, match="Invalid Base58 character"):
            base58_decode("0OIl")

    def test_check_round_trip(self) -> None:
        payload = b"\x00" + _G_HASH160
        assert base58check_decode(base58check_encode(payload)) == payload

    def test_check_detects_corruption(self) -> None:
        encoded = base58check_encode(b"\x00" + _G_HASH160)
        corrupted = encoded[:-1] + ("2" if encoded[-1] != "2" else "3")
        with pytest.raises(ValueError, match="checksum"):
            base58check_decode(corrupted)

    def test_check_too_short(self) -> None:
        with pytest.raises(ValueError, match="too short"):
            base58check_decode("1")


class TestBech32:
    """BIP173 bech32 for version-0 witness programs."""

    def test_p2wpkh_vector(self) -> None:
        assert encode_segwit_address("bc", 0, _G_HASH160) == _P2WPKH_ADDRESS
        assert decode_segwit_address("bc", _P2WPKH_ADDRESS) == (0, _G_HASH160)

    def test_uppercase_accepted(self) -> None:
        assert decode_segwit_address("bc", _P2WPKH_ADDRESS.upper()) == (0, _G_HASH160)

    def test_p2wsh_vector(self) -> None:
        assert decode_segwit_address("tb", _P2WSH_TESTNET) == (0, _P2WSH_PROGRAM)
        assert encode_segwit_address("tb", 0, _P2WSH_PROGRAM) == _P2WSH_TESTNET

    @pytest.mark.parametrize(
        ("hrp", "address"),
        [
            ("tb", "tc1qw508d6qejxtdg4y5r3zarvary0c5xw7kg3g4ty"),
            ("bc", "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t5"),
            ("bc", "BC13W508D6QEJXTDG4Y5R3ZARVARY0C5XW7KN40WF2"),
            ("bc", "bc1rw5uspcuh"),
            ("tb", "tb1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3q0sL5k7"),
            ("tb", "tb1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3pjxtptv"),
            ("bc", "bc1gmk9yu"),
            ("bc", "BC1QR508D6QEJXTDG4Y5R3ZARVARYV98GJ9P"),
            ("bc", "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kemeawh"),
        ],
    )
    def test_invalid_addresses(self, hrp: str, address: str) -> None:
        with pytest.raises(ValueError):
            decode_segwit_address(hrp, address)

    def test_non_zero_version_not_encoded(self) -> None:
        with pytest.raises(ValueError, match="unsupported witness version"):
            encode_segwit_address("bc", 1, b"\x00" * 32)

    def test_bech32_decode_splits_hrp(self) -> None:
        hrp, data = bech32_decode(_P2WPKH_ADDRESS)
        assert hrp == "bc"
        assert data[0] == 0

    def test_convert_bits_round_trip(self) -> None:
        five = convert_bits(_G_HASH160, 8, 5)
        assert bytes(convert_bits(five, 5, 8, pad=False)) == _G_HASH160

    def test_convert_bits_range(self) -> None:
        with pytest.raises(ValueError, match="does not fit"):
            convert_bits([32], 5, 8)


class TestScriptAddresses:
    """Locking script <-> address per network."""

    def test_pubkey_to_address(self) -> None:
        assert pubkey_to_address(_G) == "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"

    def test_pubkey_to_segwit_address(self) -> None:
        assert pubkey_to_segwit_address(_G) == _P2WPKH_ADDRESS
        assert pubkey_to_segwit_address(_G, network=Network.REGTEST).startswith("bcrt1q")

    def test_p2pkh_script(self) -> None:
        script = b"\x76\xa9\x14" + _G_HASH160 + b"\x88\xac"
        assert script_to_address(script) == "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"
        assert address_to_script("1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH") == script

    def test_p2wsh_script(self) -> None:
        script = b"\x00\x20" + _P2WSH_PROGRAM
        assert script_to_address(script, network=Network.TESTNET) == _P2WSH_TESTNET
        assert address_to_script(_P2WSH_TESTNET, network=Network.TESTNET) == script

    def test_p2sh_round_trip(self) -> None:
        script = Script(b"\x51").to_p2sh()
        for network in Network:
            address = script_to_address(script, network=network)
            assert address_to_script(address, network=network) == script
        assert script_to_address(script).startswith("3")
        assert script_to_address(script, network=Network.TESTNET).startswith("2")

    def test_no_address_form(self) -> None:
        with pytest.raises(ValueError, match="no address form"):
            script_to_address(b"\x6a\x00")

    def test_validate_address(self) -> None:
        assert validate_address(_P2WPKH_ADDRESS)
        assert validate_address("1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH")
        assert not validate_address("1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH", network=Network.TESTNET)
        assert not validate_address(_P2WPKH_ADDRESS, network=Network.TESTNET)
        assert not validate_address("not-an-address")
