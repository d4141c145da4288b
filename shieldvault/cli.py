"""
Command-line helpers for inspecting private state offline.

All output is JSON on stdout; field elements are 0x-prefixed 32-byte hex.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import load_config
from .core.ctr_cipher import BALANCE_SLOT, NULLIFIER_SLOT, decrypt
from .core.commitment import reconstruct_leaf
from .core.field import field_to_hex, parse_field
from .core.keys import AccountKeys
from .errors import ShieldVaultError
from .integration.beacon import current_round, round_for_timestamp, timestamp_for_round


logger = logging.getLogger(__name__)

_SLOTS = {"balance": BALANCE_SLOT, "nullifier": NULLIFIER_SLOT}


def _keys(args: argparse.Namespace, chain_id: int) -> AccountKeys:
    return AccountKeys.from_signature(args.signature, args.chain_id or chain_id, args.token)


def _cmd_keys(args: argparse.Namespace, cfg) -> Dict[str, Any]:
    keys = _keys(args, cfg.protocol.chain_id)
    return {
        "chainId": keys.chain_id,
        "token": keys.token,
        "userKey": field_to_hex(keys.user_key),
        "spendingKey": field_to_hex(keys.spending_key),
        "viewingKey": field_to_hex(keys.viewing_key),
        "nonce": args.nonce,
        "nonceCommitment": field_to_hex(keys.nonce_commitment(args.nonce)),
    }


def _cmd_decrypt(args: argparse.Namespace, cfg) -> Dict[str, Any]:
    keys = _keys(args, cfg.protocol.chain_id)
    value = decrypt(parse_field(args.value, name="value"), keys.viewing_key, _SLOTS[args.slot])
    return {"slot": args.slot, "plaintext": str(value)}


def _cmd_round(args: argparse.Namespace, cfg) -> Dict[str, Any]:
    beacon = cfg.beacon
    if args.round is not None:
        return {"round": args.round, "timestamp": timestamp_for_round(args.round, beacon)}
    ts = int(time.time()) if args.timestamp is None else args.timestamp
    return {
        "timestamp": ts,
        "round": round_for_timestamp(ts, beacon),
        "currentRound": current_round(beacon),
    }


def _cmd_leaf(args: argparse.Namespace, cfg) -> Dict[str, Any]:
    keys = _keys(args, cfg.protocol.chain_id)
    nc = keys.nonce_commitment(args.nonce)
    leaf = reconstruct_leaf(
        parse_field(args.shares, name="shares"),
        parse_field(args.nullifier, name="nullifier"),
        keys.spending_key,
        args.unlocks_at,
        nc,
    )
    return {"nonce": args.nonce, "nonceCommitment": field_to_hex(nc), "leaf": field_to_hex(leaf)}


def _add_account_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--signature", required=True, help="65-byte wallet signature (hex)")
    p.add_argument("--token", required=True, help="Token address")
    p.add_argument("--chain-id", type=int, default=None, help="Defaults to protocol.chain_id from config")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shieldvault", description="shieldvault private-state tools")
    parser.add_argument("--config", type=Path, default=None, help="YAML config file")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("keys", help="Derive the key bundle for (signature, chain, token)")
    _add_account_args(p)
    p.add_argument("--nonce", type=int, default=0)
    p.set_defaults(handler=_cmd_keys)

    p = sub.add_parser("decrypt", help="Decrypt an encrypted balance or nullifier")
    _add_account_args(p)
    p.add_argument("--value", required=True, help="Encrypted field element (decimal or 0x-hex)")
    p.add_argument("--slot", choices=sorted(_SLOTS), default="balance")
    p.set_defaults(handler=_cmd_decrypt)

    p = sub.add_parser("round", help="Convert between beacon rounds and unix timestamps")
    g = p.add_mutually_exclusive_group()
    g.add_argument("--timestamp", type=int, default=None)
    g.add_argument("--round", type=int, default=None)
    p.set_defaults(handler=_cmd_round)

    p = sub.add_parser("leaf", help="Reconstruct the commitment leaf of a nonce")
    _add_account_args(p)
    p.add_argument("--nonce", type=int, required=True)
    p.add_argument("--shares", required=True)
    p.add_argument("--nullifier", required=True)
    p.add_argument("--unlocks-at", type=int, default=0)
    p.set_defaults(handler=_cmd_leaf)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    try:
        cfg = load_config(args.config)
        out = args.handler(args, cfg)
    except (ShieldVaultError, TypeError, ValueError, OSError) as exc:
        logger.debug("command %s failed", args.command, exc_info=True)
        print(json.dumps({"ok": False, "error": str(exc)}), file=sys.stderr)
        return 2
    print(json.dumps(out, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
