"""
Command line for the film registry.

Usage:
    film-registry deploy
    film-registry add "Inception" 5 --review "Amazing visuals and story"
    film-registry list

Credentials come from --email/--password or FILM_REGISTRY_EMAIL and
FILM_REGISTRY_PASSWORD.
"""
import argparse
import asyncio
import logging
import os
import sys

from binding.client import (
    REGISTRY_ADDRESS,
    REGISTRY_URL,
    SIGNER_URL,
    RATING_LABELS,
    FilmRegistryClient,
    RegistryCallError,
    format_address,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="film-registry", description="Rate films on a film registry")
    parser.add_argument("--registry-url", default=REGISTRY_URL)
    parser.add_argument("--signer-url", default=SIGNER_URL)
    parser.add_argument("--address", default=REGISTRY_ADDRESS, help="registry address")
    parser.add_argument("--email", default=os.getenv("FILM_REGISTRY_EMAIL"))
    parser.add_argument("--password", default=os.getenv("FILM_REGISTRY_PASSWORD"))

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("deploy", help="deploy a new, empty registry")

    add = sub.add_parser("add", help="add a rated film")
    add.add_argument("name")
    add.add_argument("rating", type=int, choices=sorted(RATING_LABELS))
    add.add_argument("--review", default="")

    sub.add_parser("list", help="list every film")
    return parser


def stars(rating: int) -> str:
    return "*" * rating + "." * (5 - rating)


async def run(args, client: FilmRegistryClient) -> int:
    if args.command in ("deploy", "add"):
        if not args.email or not args.password:
            print("--email and --password are required", file=sys.stderr)
            return 2
        await client.connect(args.email, args.password)

    if args.command == "deploy":
        address = await client.deploy()
        print(f"FilmRegistry deployed to: {address}")
        print("Configure clients with:")
        print(f"  REGISTRY_ADDRESS={address}")
    elif args.command == "add":
        event = await client.add_film(args.name, args.rating, args.review)
        print(f"Film added at position {event['position']} by {format_address(client.account)}")
    elif args.command == "list":
        films = await client.get_all_films()
        if not films:
            print("No films yet")
            return 0
        for film in films:
            line = f"{film['position']:>3}  {stars(film['rating'])}  {film['name']} ({RATING_LABELS[film['rating']]})"
            print(line)
            if film["review"]:
                print(f"     {film['review']}")
        print(f"{len(films)} films, average rating {await client.average_rating():.1f}")
    return 0


async def _main(args) -> int:
    async with FilmRegistryClient(args.registry_url, args.signer_url, address=args.address) as client:
        try:
            return await run(args, client)
        except RegistryCallError as e:
            print(f"Failed: {e.reason}", file=sys.stderr)
            return 1


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
