#!/usr/bin/env python3
"""
Proof Registry Management CLI

Commands:
- keygen: Generate an Ed25519 keypair (the public key is the account id)
- sign-call: Produce a signed JSON body for the HTTP API
- verify-journal: Verify an exported journal (JSON from GET /api/v1/events)

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage keygen
    python -m tools.manage sign-call create_claim --private-key KEY --claim 0x646f6331 --nonce 0
    python -m tools.manage verify-journal --input events.json
"""

import argparse
import json
import sys
from pathlib import Path

from poe.core import EventJournal, JournalIntegrityError, Signer
from poe.schemas import RegistryEvent, claim_from_hex, claim_to_hex


CALLS = ("create_claim", "revoke_claim", "transfer_claim")


def cmd_keygen(args) -> int:
    """Print a new keypair as JSON."""
    private_key, public_key = Signer.generate_keypair()
    print(json.dumps({"private_key": private_key, "public_key": public_key}, indent=2))
    return 0


def cmd_sign_call(args) -> int:
    """Print a ready-to-POST request body."""
    if args.call == "transfer_claim" and not args.receiver:
        print("ERROR: transfer_claim requires --receiver", file=sys.stderr)
        return 2

    try:
        claim = claim_from_hex(args.claim)
    except ValueError:
        print("ERROR: --claim must be hex encoded", file=sys.stderr)
        return 2

    if args.nonce < 0:
        print("ERROR: --nonce must be non-negative", file=sys.stderr)
        return 2

    receiver = args.receiver if args.call == "transfer_claim" else None
    caller, signature = Signer.sign_call(args.call, args.private_key, claim, args.nonce, receiver)

    body = {
        "caller": caller,
        "claim": claim_to_hex(claim),
        "nonce": args.nonce,
        "signature": signature,
    }
    if receiver is not None:
        body["receiver"] = receiver
    print(json.dumps(body, indent=2))
    return 0


def cmd_verify_journal(args) -> int:
    """Verify the hash chain of an exported journal."""
    path = Path(args.input)
    if not path.exists():
        print(f"ERROR: File not found: {path}", file=sys.stderr)
        return 1

    with open(path) as f:
        data = json.load(f)

    events = [RegistryEvent.model_validate(item) for item in data]
    print(f"Verifying {len(events)} events...")

    try:
        EventJournal.verify_events(events)
    except JournalIntegrityError as e:
        print(f"[FAIL] {e}")
        return 1

    head = events[-1].event_hash if events else None
    print("[OK] Journal chain verified")
    if head:
        print(f"   Head: {head}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Proof registry management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    keygen_parser = subparsers.add_parser("keygen", help="Generate a keypair")
    keygen_parser.set_defaults(func=cmd_keygen)

    sign_parser = subparsers.add_parser("sign-call", help="Sign an API call")
    sign_parser.add_argument("call", choices=CALLS)
    sign_parser.add_argument("--private-key", required=True, help="Base64 private key")
    sign_parser.add_argument("--claim", required=True, help="Claim bytes as hex")
    sign_parser.add_argument("--receiver", help="Receiver public key (transfer only)")
    sign_parser.add_argument(
        "--nonce", type=int, default=0,
        help="Caller account nonce (GET /api/v1/accounts/nonce)",
    )
    sign_parser.set_defaults(func=cmd_sign_call)

    verify_parser = subparsers.add_parser("verify-journal", help="Verify an exported journal")
    verify_parser.add_argument("--input", "-i", required=True, help="Journal JSON file")
    verify_parser.set_defaults(func=cmd_verify_journal)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
