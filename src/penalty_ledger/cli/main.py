#!/usr/bin/env python3
"""
Penalty ledger CLI - stake, challenge, respond and withdraw from a shell.

Commands:
  penalty-ledger init                 Fund a new ledger's stake pool
  penalty-ledger keygen               Generate a secp256k1 key pair
  penalty-ledger create-log           Build a signed log creation statement
  penalty-ledger sign-challenge       Build a signed challenge payload
  penalty-ledger challenge            Submit a challenge
  penalty-ledger respond-wrong-key    Dismiss a challenge signed by the wrong key
  penalty-ledger respond-proof        Answer a challenge with a proof
  penalty-ledger status <id>          Show one challenge
  penalty-ledger list                 List challenges
  penalty-ledger balance              Show the stake pool
  penalty-ledger withdraw <id>        Slash the stake for an expired challenge

Ledger state lives in a JSON file (PENALTY_STATE_PATH or --state).
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from ..core.config import LedgerSettings, load_settings
from ..core.exceptions import PenaltyException
from ..core.logging import configure_logging, correlation_context
from ..protocol.challenges import AppendStatementPayload, ChallengeKind, LackOfProofPayload
from ..protocol.ledger import open_ledger
from ..protocol.registry import ChallengeRegistry
from ..protocol.signatures import SigningKey
from ..protocol.wire import CreateLogStatement, LogStatement, SignedCreateLogStatement, SignedLogStatement
from .output import output_error, output_exception, output_result

logger = logging.getLogger(__name__)


def hex_bytes(value: str) -> bytes:
    """argparse type for hex-encoded byte strings (an optional 0x prefix is allowed)."""
    if value.startswith(("0x", "0X")):
        value = value[2:]
    try:
        return bytes.fromhex(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not valid hex: {value!r}") from e


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError("must not be negative")
    return number


def load_cli_settings(args: argparse.Namespace) -> LedgerSettings:
    """Settings for CLI use. The CLI always persists to the JSON file store."""
    overrides: dict[str, Any] = {"store_backend": "file"}
    if args.state:
        overrides["state_path"] = args.state
    if args.log_level:
        overrides["log_level"] = args.log_level
    return load_settings(**overrides)


def get_registry(args: argparse.Namespace) -> ChallengeRegistry:
    return open_ledger(args.settings)


# ============================================================================
# Offline tooling (no ledger state)
# ============================================================================


def cmd_keygen(args: argparse.Namespace) -> int:
    """Generate a new key pair."""
    key = SigningKey.generate()
    output_result(
        {
            "private_key": key.secret.hex(),
            "public_key": key.public_key.hex(),
            "compressed_public_key": key.compressed_public_key.hex(),
        }
    )
    return 0


def cmd_create_log(args: argparse.Namespace) -> int:
    """Build and sign a log creation statement; its hash is the log id."""
    key = SigningKey.from_hex(args.key)
    create = CreateLogStatement(
        controlling_key=key.compressed_public_key,
        initial_statement=args.statement.encode(),
    )
    signed = SignedCreateLogStatement(signature=key.sign(create.to_bytes()), create_statement=create)
    output_result(
        {
            "log_id": create.log_id.hex(),
            "create_statement": create.to_bytes().hex(),
            "signed_create_statement": signed.to_bytes().hex(),
        }
    )
    return 0


def cmd_sign_challenge(args: argparse.Namespace) -> int:
    """Sign a log statement and wrap it into a challenge payload.

    Without --commitment the payload is a lack_of_proof challenge; with it,
    an append_statement challenge for that commitment.
    """
    key = SigningKey.from_hex(args.key)
    statement = LogStatement(log_id=args.log_id, index=args.index, statement=args.statement.encode())
    signed = SignedLogStatement(signature=key.sign(statement.to_bytes()), statement=statement)
    sig = key.sign_recoverable(statement.signing_digest())

    fields = {
        "signed_statement": signed.to_bytes(),
        "public_key": key.public_key,
        "v": sig.v,
        "r": sig.r,
        "s": sig.s,
    }
    if args.commitment is not None:
        payload: LackOfProofPayload = AppendStatementPayload(**fields, commitment=args.commitment)
        kind = ChallengeKind.APPEND_STATEMENT
    else:
        payload = LackOfProofPayload(**fields)
        kind = ChallengeKind.LACK_OF_PROOF

    output_result({"kind": kind.value, "payload": payload.to_bytes().hex()})
    return 0


# ============================================================================
# Ledger commands
# ============================================================================


def cmd_init(args: argparse.Namespace) -> int:
    """Fund the stake pool of a new ledger."""
    registry = get_registry(args)
    pool = registry.fund(args.amount, args.depositor)
    output_result({"state_path": str(args.settings.state_path), "pool": pool.to_dict()})
    return 0


def cmd_challenge(args: argparse.Namespace) -> int:
    registry = get_registry(args)
    challenge_id = registry.submit_challenge(args.kind, args.payload, args.caller)
    challenge = registry.get_challenge(challenge_id)
    output_result({"challenge_id": challenge_id, "expires_at": challenge.expires_at.isoformat()})
    return 0


def cmd_respond_wrong_key(args: argparse.Namespace) -> int:
    registry = get_registry(args)
    challenge = registry.respond_with_wrong_key(args.challenge_id, args.proof, args.caller)
    output_result(challenge.to_dict())
    return 0


def cmd_respond_proof(args: argparse.Namespace) -> int:
    registry = get_registry(args)
    challenge = registry.respond_with_proof(args.challenge_id, args.proof_a, args.proof_b, args.caller)
    output_result(challenge.to_dict())
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show one challenge, including whether its window has closed."""
    registry = get_registry(args)
    challenge = registry.get_challenge(args.challenge_id)
    output_result({**challenge.to_dict(), "expired": registry.challenge_expired(args.challenge_id)})
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    registry = get_registry(args)
    snapshot = registry.snapshot()
    challenges = snapshot["challenges"]
    if args.open:
        challenges = [c for c in challenges if not c["resolved"]]
    output_result({"version": snapshot["version"], "as_of": snapshot["as_of"], "challenges": challenges})
    return 0


def cmd_balance(args: argparse.Namespace) -> int:
    registry = get_registry(args)
    output_result(registry.pool.to_dict())
    return 0


def cmd_withdraw(args: argparse.Namespace) -> int:
    registry = get_registry(args)
    payout = registry.withdraw(args.challenge_id, args.caller)
    output_result(payout.to_dict())
    return 0


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="penalty-ledger",
        description="Collateral-backed challenges against a log maintainer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  penalty-ledger init --amount 10 --depositor maintainer
  penalty-ledger keygen
  penalty-ledger create-log --key <hex> --statement "hello"
  penalty-ledger sign-challenge --key <hex> --log-id <hex> --index 1 --statement "x"
  penalty-ledger challenge --kind lack_of_proof --payload <hex> --caller alice
  penalty-ledger list --open
  penalty-ledger withdraw <id> --caller alice
        """,
    )
    parser.add_argument("--state", help="Ledger state file (default: PENALTY_STATE_PATH)")
    parser.add_argument("--log-level", help="Log level (default: PENALTY_LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # init
    init_parser = subparsers.add_parser("init", help="Fund the stake pool")
    init_parser.add_argument("--amount", type=int, required=True, help="Stake amount")
    init_parser.add_argument("--depositor", required=True, help="Maintainer identity")

    # keygen
    subparsers.add_parser("keygen", help="Generate a secp256k1 key pair")

    # create-log
    create_parser = subparsers.add_parser("create-log", help="Build a signed log creation statement")
    create_parser.add_argument("--key", required=True, help="Controlling private key (hex)")
    create_parser.add_argument("--statement", default="", help="Initial statement text")

    # sign-challenge
    sign_parser = subparsers.add_parser("sign-challenge", help="Build a signed challenge payload")
    sign_parser.add_argument("--key", required=True, help="Signing private key (hex)")
    sign_parser.add_argument("--log-id", type=hex_bytes, required=True, help="Log id (hex)")
    sign_parser.add_argument("--index", type=non_negative_int, required=True, help="Statement index")
    sign_parser.add_argument("--statement", required=True, help="Statement text")
    sign_parser.add_argument(
        "--commitment", type=hex_bytes, help="Anchor commitment (hex); makes an append_statement payload"
    )

    # challenge
    challenge_parser = subparsers.add_parser("challenge", help="Submit a challenge")
    challenge_parser.add_argument("--kind", choices=[k.value for k in ChallengeKind], required=True)
    challenge_parser.add_argument("--payload", type=hex_bytes, required=True, help="Payload bytes (hex)")
    challenge_parser.add_argument("--caller", required=True, help="Challenger identity")

    # respond-wrong-key
    wrong_key_parser = subparsers.add_parser("respond-wrong-key", help="Dismiss a challenge signed by the wrong key")
    wrong_key_parser.add_argument("challenge_id")
    wrong_key_parser.add_argument("--proof", type=hex_bytes, required=True, help="Log creation statement (hex)")
    wrong_key_parser.add_argument("--caller", required=True, help="Responder identity")

    # respond-proof
    proof_parser = subparsers.add_parser("respond-proof", help="Answer a challenge with a proof")
    proof_parser.add_argument("challenge_id")
    proof_parser.add_argument("--proof-a", type=hex_bytes, required=True, help="First proof (hex)")
    proof_parser.add_argument("--proof-b", type=hex_bytes, default=b"", help="Second proof (hex)")
    proof_parser.add_argument("--caller", required=True, help="Responder identity")

    # status
    status_parser = subparsers.add_parser("status", help="Show one challenge")
    status_parser.add_argument("challenge_id")

    # list
    list_parser = subparsers.add_parser("list", help="List challenges")
    list_parser.add_argument("--open", action="store_true", help="Only unresolved challenges")

    # balance
    subparsers.add_parser("balance", help="Show the stake pool")

    # withdraw
    withdraw_parser = subparsers.add_parser("withdraw", help="Slash the stake for an expired challenge")
    withdraw_parser.add_argument("challenge_id")
    withdraw_parser.add_argument("--caller", required=True, help="Withdrawer identity")

    return parser


COMMANDS = {
    "init": cmd_init,
    "keygen": cmd_keygen,
    "create-log": cmd_create_log,
    "sign-challenge": cmd_sign_challenge,
    "challenge": cmd_challenge,
    "respond-wrong-key": cmd_respond_wrong_key,
    "respond-proof": cmd_respond_proof,
    "status": cmd_status,
    "list": cmd_list,
    "balance": cmd_balance,
    "withdraw": cmd_withdraw,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)

    try:
        args.settings = load_cli_settings(args)
    except PenaltyException as e:
        output_exception(e)
        return 1
    configure_logging(settings=args.settings)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    with correlation_context() as cid:
        logger.debug("Running %s", args.command, extra={"extra_data": {"command": args.command, "cid": cid}})
        try:
            return handler(args)
        except PenaltyException as e:
            output_exception(e)
            return 1
        except OSError as e:
            output_error(str(e))
            return 1


if __name__ == "__main__":
    sys.exit(main())
