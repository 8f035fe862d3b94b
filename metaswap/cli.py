"""
Command line tools.

  pair-address    compute a pair address offline
  code-hash       print the code digests of the released contracts
  release         write a release manifest pinning those digests
  verify-release  check the current code against a release manifest
"""
import argparse
import json
import logging
import sys

from metaswap.amm_state import compute_pair_address
from metaswap.crypto import format_address, parse_address
from metaswap.deployer import code_digests, load_release_manifest, verify_release, write_release_manifest
from metaswap.errors import DeploymentError, RegistryError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="metaswap", description="MetaSwap exchange tools")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_pair = subparsers.add_parser("pair-address", help="Compute the deterministic address of a pair")
    parser_pair.add_argument("--factory", type=str, required=True, help="Pair registry address (hex)")
    parser_pair.add_argument("token_a", type=str, help="First token address (hex)")
    parser_pair.add_argument("token_b", type=str, help="Second token address (hex)")

    subparsers.add_parser("code-hash", help="Print the code digests of the released contracts")

    parser_release = subparsers.add_parser("release", help="Write a release manifest")
    parser_release.add_argument("--output", type=str, default="release.json", help="Output file path")

    parser_verify = subparsers.add_parser("verify-release", help="Verify code digests against a manifest")
    parser_verify.add_argument("--manifest", type=str, default="release.json", help="Path to release manifest")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.command == "pair-address":
        try:
            address = compute_pair_address(
                parse_address(args.factory),
                parse_address(args.token_a),
                parse_address(args.token_b),
            )
        except (ValueError, RegistryError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(format_address(address))
    elif args.command == "code-hash":
        print(json.dumps(code_digests(), indent=2, sort_keys=True))
    elif args.command == "release":
        write_release_manifest(args.output)
        print(f"Release manifest written to {args.output}")
    elif args.command == "verify-release":
        try:
            verify_release(load_release_manifest(args.manifest))
        except DeploymentError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print("Release verified")
    return 0


if __name__ == '__main__':
    sys.exit(main())
