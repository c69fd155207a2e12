"""
offersign CLI - Command-line interface for viewing and signing offers.

Commands:
    offersign get SLUG       Show an offer
    offersign sign SLUG      Sign an offer
    offersign list           List all offers
    offersign ping           Check that the server is up
"""

import argparse
import os
import sys
from typing import Optional

import httpx

from . import __version__
from .client import OfferSignClient
from .exceptions import AlreadySignedError, NotFoundError, OfferSignError
from .models import Offer

DEFAULT_SERVER = "http://localhost:8000"


def _client(args: argparse.Namespace) -> OfferSignClient:
    return OfferSignClient(base_url=args.server, api_key=args.api_key)


def _print_offer(offer: Offer) -> None:
    print(f"  Slug:     {offer.slug}")
    print(f"  Customer: {offer.customer_name}")
    if offer.customer_email:
        print(f"  Email:    {offer.customer_email}")
    print(f"  Amount:   {offer.offer_amount:,.2f}")
    if offer.project_address:
        print(f"  Address:  {offer.project_address}")
    if offer.document_url:
        print(f"  Document: {offer.document_url}")
    if offer.is_signed:
        print(f"  Signed:   yes ({offer.signed_at or 'date unknown'})")
    else:
        print("  Signed:   no")


def cmd_get(args: argparse.Namespace) -> None:
    """Show a single offer."""
    with _client(args) as client:
        offer = client.get_offer(args.slug)
    _print_offer(offer)


def cmd_sign(args: argparse.Namespace) -> None:
    """Sign an offer."""
    with _client(args) as client:
        try:
            offer = client.sign_offer(args.slug, signature=args.signature)
        except AlreadySignedError as e:
            print(f"Offer {args.slug} was already signed ({e.signed_at or 'date unknown'}).")
            return
    print(f"Offer {offer.slug} signed.")
    _print_offer(offer)


def cmd_list(args: argparse.Namespace) -> None:
    """List all offers."""
    with _client(args) as client:
        offers = client.list_offers()

    if not offers:
        print("No offers found.")
        return

    print(f"{'SLUG':<30} {'CUSTOMER':<25} {'AMOUNT':>14}  SIGNED")
    for offer in offers:
        signed = (offer.signed_at or "yes") if offer.is_signed else "no"
        print(
            f"{offer.slug[:30]:<30} {offer.customer_name[:25]:<25} "
            f"{offer.offer_amount:>14,.2f}  {signed}"
        )


def cmd_ping(args: argparse.Namespace) -> None:
    """Check that the server is up."""
    with _client(args) as client:
        data = client.ping()
    print(f"{data.get('message', 'pong')} (server {data.get('version', 'unknown')})")


def main(argv: Optional[list] = None) -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="offersign",
        description="offersign CLI - View and sign customer offers",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("OFFERSIGN_SERVER", DEFAULT_SERVER),
        help=f"offersign server URL (default: {DEFAULT_SERVER})",
    )
    parser.add_argument(
        "--api-key",
        "-k",
        default=os.environ.get("OFFERSIGN_API_KEY"),
        help="API key for authentication (default: $OFFERSIGN_API_KEY)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    get_parser = subparsers.add_parser("get", help="Show an offer")
    get_parser.add_argument("slug", help="Offer slug")
    get_parser.set_defaults(func=cmd_get)

    sign_parser = subparsers.add_parser("sign", help="Sign an offer")
    sign_parser.add_argument("slug", help="Offer slug")
    sign_parser.add_argument("--signature", default=None, help="Optional signature text")
    sign_parser.set_defaults(func=cmd_sign)

    list_parser = subparsers.add_parser("list", help="List all offers")
    list_parser.set_defaults(func=cmd_list)

    ping_parser = subparsers.add_parser("ping", help="Check that the server is up")
    ping_parser.set_defaults(func=cmd_ping)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        args.func(args)
    except NotFoundError:
        print(f"Error: offer {getattr(args, 'slug', '')} not found", file=sys.stderr)
        sys.exit(1)
    except OfferSignError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"Error: Cannot reach server at {args.server}", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
