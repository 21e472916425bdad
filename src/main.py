from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Sequence

from pydantic import BaseModel

from config import config
from domain.errors import TradingError
from domain.ledger import EntryKind
from domain.money import to_decimal
from services.bootstrap import TradingServices, build_services


def run(args: argparse.Namespace, services: TradingServices) -> BaseModel:
    if args.command == "provision":
        return services.store.provision_account(args.user, initial_fiat_balance=args.initial_balance)
    if args.command == "buy":
        return services.engine.buy(args.user, args.asset, args.amount)
    if args.command == "sell":
        return services.engine.sell(args.user, args.asset, args.amount)
    if args.command == "portfolio":
        return services.portfolio.get_portfolio(args.user)
    if args.command == "ledger":
        kind = EntryKind(args.type) if args.type else None
        return services.store.list_entries(
            args.user, kind=kind, asset=args.asset, page=args.page, per_page=args.per_page
        )
    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trade NGN against crypto assets and inspect the ledger.")
    parser.add_argument("--verbose", action="store_true")
    commands = parser.add_subparsers(dest="command", required=True)

    provision = commands.add_parser("provision", help="Create balances for a new user")
    provision.add_argument("user")
    provision.add_argument("--initial-balance", type=to_decimal, default=None)

    for name, unit in (("buy", "fiat amount to spend"), ("sell", "asset quantity to sell")):
        trade = commands.add_parser(name, help=f"{name.capitalize()} an asset")
        trade.add_argument("user")
        trade.add_argument("asset")
        trade.add_argument("amount", help=unit)

    portfolio = commands.add_parser("portfolio", help="Show balances and their fiat value")
    portfolio.add_argument("user")

    ledger = commands.add_parser("ledger", help="List ledger entries, newest first")
    ledger.add_argument("user")
    ledger.add_argument("--type", choices=[kind.value for kind in EntryKind])
    ledger.add_argument("--asset")
    ledger.add_argument("--page", type=int, default=1)
    ledger.add_argument("--per-page", type=int, default=15)
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    services = build_services(config())
    try:
        result = run(args, services)
    except TradingError as exc:
        print(json.dumps({"code": exc.code, "message": exc.message}), file=sys.stderr)
        raise SystemExit(1) from exc
    finally:
        services.close()
    print(result.model_dump_json(by_alias=True, indent=2))


if __name__ == "__main__":
    main()
