#!/usr/bin/env python3
"""Channel Tool: derive channel keys and scripts from the command line.

    # Revocation public key from a revocation basepoint and per-commitment point
    python -m ln_contracts.tools.channel_tool revocation-key <basepoint_hex> <per_commitment_point_hex>

    # 2-of-2 funding script, P2WSH output script and address
    python -m ln_contracts.tools.channel_tool funding <pubkey_a_hex> <pubkey_b_hex>

    # To-local witness script and its P2WSH address (delay defaults to the configured to_self_delay)
    python -m ln_contracts.tools.channel_tool to-local <revocation_pubkey_hex> <delayed_pubkey_hex> [delay]

    # Per-commitment secret and point of a commitment number
    python -m ln_contracts.tools.channel_tool secret <seed_hex> <commitment_number>

Network and log level come from ``LNCONTRACTS_NETWORK`` / ``LNCONTRACTS_LOG_LEVEL``
(or a YAML file named by ``LNCONTRACTS_CONFIG_PATH``).
"""

from __future__ import annotations

import logging
import sys

from ln_contracts.config.settings import AppConfig
from ln_contracts.errors.contract_errors import ContractError


def _parse_hex(value: str, name: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError:
        print(f"Invalid hex for {name}: {value}")
        sys.exit(1)


def _cmd_revocation_key(basepoint_hex: str, point_hex: str) -> None:
    """Print the revocation public key for one commitment state."""
    from ln_contracts.channel.revocation import derive_revocation_pubkey

    basepoint = _parse_hex(basepoint_hex, "basepoint")
    point = _parse_hex(point_hex, "per_commitment_point")
    print(f"Revocation pubkey: {derive_revocation_pubkey(basepoint, point).hex()}")


def _cmd_funding(config: AppConfig, pubkey_a_hex: str, pubkey_b_hex: str) -> None:
    """Print the funding witness script, output script and address."""
    from ln_contracts.bitcoin.address import script_to_address
    from ln_contracts.channel.templates import funding_script, p2wsh_script

    script = funding_script(
        _parse_hex(pubkey_a_hex, "pubkey_a"),
        _parse_hex(pubkey_b_hex, "pubkey_b"),
        sort_keys=config.channel.sort_funding_keys,
    )
    output = p2wsh_script(script)
    print(f"Witness script: {script.hex()}")
    print(f"Output script:  {output.hex()}")
    print(f"Address ({config.network}): {script_to_address(output, network=config.network)}")


def _cmd_to_local(config: AppConfig, revocation_hex: str, delayed_hex: str, delay: int | None) -> None:
    """Print the to-local witness script, output script and address."""
    from ln_contracts.bitcoin.address import script_to_address
    from ln_contracts.channel.templates import p2wsh_script, to_local_script

    to_self_delay = config.channel.to_self_delay if delay is None else delay
    script = to_local_script(
        _parse_hex(revocation_hex, "revocation_pubkey"),
        _parse_hex(delayed_hex, "delayed_pubkey"),
        to_self_delay,
    )
    output = p2wsh_script(script)
    print(f"Delay:          {to_self_delay} blocks")
    print(f"Witness script: {script.hex()}")
    print(f"Output script:  {output.hex()}")
    print(f"Address ({config.network}): {script_to_address(output, network=config.network)}")


def _cmd_secret(seed_hex: str, commitment_number: int) -> None:
    """Print the per-commitment secret and point of a commitment number."""
    from ln_contracts.channel.revocation import per_commitment_secret

    secret = per_commitment_secret(_parse_hex(seed_hex, "seed"), commitment_number)
    print(f"Commitment number:     {commitment_number}")
    print(f"Per-commitment secret: {secret.secret.hex()}")
    print(f"Per-commitment point:  {secret.point.hex()}")


def _parse_int(value: str, name: str) -> int:
    try:
        return int(value, 0)
    except ValueError:
        print(f"Invalid integer for {name}: {value}")
        sys.exit(1)


def main() -> None:
    """CLI entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    config = AppConfig()
    logging.basicConfig(
        level=logging.DEBUG if config.debug else config.log_level.value,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cmd = sys.argv[1].lower()

    try:
        if cmd == "revocation-key":
            if len(sys.argv) < 4:
                print("Usage: channel_tool revocation-key <basepoint> <per_commitment_point>")
                sys.exit(1)
            _cmd_revocation_key(sys.argv[2], sys.argv[3])
        elif cmd == "funding":
            if len(sys.argv) < 4:
                print("Usage: channel_tool funding <pubkey_a> <pubkey_b>")
                sys.exit(1)
            _cmd_funding(config, sys.argv[2], sys.argv[3])
        elif cmd == "to-local":
            if len(sys.argv) < 4:
                print("Usage: channel_tool to-local <revocation_pubkey> <delayed_pubkey> [delay]")
                sys.exit(1)
            delay = _parse_int(sys.argv[4], "delay") if len(sys.argv) > 4 else None
            _cmd_to_local(config, sys.argv[2], sys.argv[3], delay)
        elif cmd == "secret":
            if len(sys.argv) < 4:
                print("Usage: channel_tool secret <seed_hex> <commitment_number>")
                sys.exit(1)
            _cmd_secret(sys.argv[2], _parse_int(sys.argv[3], "commitment_number"))
        else:
            print(f"Unknown command: {cmd}")
            print(__doc__)
            sys.exit(1)
    except ContractError as exc:
        print(f"Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
