"""Developer command line for the deep-link protocol.

Usage:
    python -m webpay keypair
    python -m webpay explorer <signature> [--network devnet]
    python -m webpay classify "https://shop.example/pay?errorCode=4001&errorMessage=..."
    python -m webpay settings
"""

import argparse
import json
import logging
import sys
from typing import Optional
from urllib.parse import parse_qsl, urlsplit

from webpay.config import get_settings
from webpay.crypto import EphemeralKeyPair
from webpay.deeplink.response import (
    EncryptedResult,
    SignatureResult,
    WalletErrorResult,
    classify_return,
    is_valid_signature,
    wallet_error_message,
)
from webpay.encoding import b58encode
from webpay.transactions.chain import explorer_url

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def cmd_keypair(args: argparse.Namespace) -> int:
    keypair = EphemeralKeyPair.generate()
    out = {"public_key": keypair.public_key_b58}
    if args.show_secret:
        out["secret_key"] = b58encode(bytes(keypair.private_key))
    print(json.dumps(out, indent=2))
    return 0


def cmd_explorer(args: argparse.Namespace) -> int:
    if not is_valid_signature(args.signature):
        print(f"Error: not a valid transaction signature: {args.signature}", file=sys.stderr)
        return 1
    print(explorer_url(args.signature, network=args.network))
    return 0


def describe_return(url: str) -> dict:
    """Classify a redirect URL the same way the response handler does."""
    query = dict(parse_qsl(urlsplit(url).query))
    response = classify_return(query)

    if isinstance(response, SignatureResult):
        return {
            "kind": "signature",
            "signature": response.signature,
            "valid": is_valid_signature(response.signature),
        }
    if isinstance(response, EncryptedResult):
        return {"kind": "encrypted", "data_length": len(response.data), "nonce": response.nonce}
    if isinstance(response, WalletErrorResult):
        return {
            "kind": "wallet_error",
            "code": response.code,
            "message": wallet_error_message(response.code, response.message),
        }
    return {"kind": "unrecognized"}


def cmd_classify(args: argparse.Namespace) -> int:
    print(json.dumps(describe_return(args.url), indent=2))
    return 0


def cmd_settings(args: argparse.Namespace) -> int:
    print(json.dumps(get_settings().get_safe_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="webpay", description="Phantom deep-link payment tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("keypair", help="Generate an ephemeral dapp encryption keypair")
    p.add_argument("--show-secret", action="store_true", help="Also print the secret key")
    p.set_defaults(func=cmd_keypair)

    p = sub.add_parser("explorer", help="Print the explorer link for a signature")
    p.add_argument("signature")
    p.add_argument("--network", default=None, help="Cluster (defaults to SOLANA_NETWORK)")
    p.set_defaults(func=cmd_explorer)

    p = sub.add_parser("classify", help="Classify a wallet redirect URL")
    p.add_argument("url")
    p.set_defaults(func=cmd_classify)

    p = sub.add_parser("settings", help="Show effective settings")
    p.set_defaults(func=cmd_settings)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    return args.func(args)
