from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal
from typing import Sequence

from config import AppSettings, config
from domain.entries import AuditLogEntry
from domain.errors import ConverterError
from domain.rates import Conversion
from services.context import AppContext, build_context
from services.converter import Converter
from utils.formatting import format_amount, format_decimal, format_rate, format_timestamp

logger = logging.getLogger(__name__)


def format_money(context: AppContext, value: Decimal, code: str) -> str:
    currency = context.registry.get(code)
    formatted = currency.format_value(value) if currency else format_amount(value, 8)
    return f"{formatted} {code}"


def format_conversion(context: AppContext, conversion: Conversion) -> str:
    return (
        f"{format_money(context, conversion.amount, conversion.from_currency)}"
        f" = {format_money(context, conversion.converted_amount, conversion.to_currency)}"
        f" (rate {format_rate(conversion.rate)})"
    )


def cmd_convert(context: AppContext, args: argparse.Namespace) -> None:
    conversion = context.rates.convert(args.amount, args.from_code, args.to_code, record=not args.no_history)
    print(format_conversion(context, conversion))
    if args.favorite:
        favorite_id = context.favorites.save(conversion.from_currency, conversion.to_currency, conversion.amount)
        print(f"Saved favorite {favorite_id}")


def cmd_rates(context: AppContext, args: argparse.Namespace) -> None:
    snapshot = context.rates.refresh(force=args.refresh)
    print(f"Rates from {snapshot.source} at {format_timestamp(snapshot.updated_at)} ({snapshot.pair_count()} pairs)")
    for base in sorted(snapshot.rates):
        for quote, rate in sorted(snapshot.rates[base].items()):
            print(f"  {base}/{quote}: {format_decimal(rate)}")


def cmd_history(context: AppContext, args: argparse.Namespace) -> None:
    if args.clear:
        context.history.clear()
        print("History cleared")
        return
    entries = context.history.get_all(limit=args.limit)
    if not entries:
        print("No conversions recorded")
        return
    for entry in entries:
        print(
            f"{format_timestamp(entry.timestamp)}  {format_money(context, entry.amount, entry.from_currency)}"
            f" -> {format_money(context, entry.converted_amount, entry.to_currency)}"
        )


def cmd_favorites(context: AppContext, args: argparse.Namespace) -> None:
    if args.action == "add":
        from_code = context.registry.require(args.from_code)
        to_code = context.registry.require(args.to_code)
        amount = Converter.validate_amount(args.amount)
        favorite_id = context.favorites.save(from_code, to_code, amount)
        print(f"Saved favorite {favorite_id}")
    elif args.action == "remove":
        if context.favorites.remove(args.id):
            print(f"Removed favorite {args.id}")
        else:
            print(f"Favorite {args.id} not found")
    else:
        favorites = context.favorites.get_all()
        if not favorites:
            print("No favorites saved")
        for favorite in favorites:
            amount = format_money(context, favorite.amount, favorite.from_currency)
            print(f"{favorite.id}  {amount} -> {favorite.to_currency}")


def describe_audit_entry(entry: AuditLogEntry) -> str:
    parts = [format_timestamp(entry.timestamp), entry.id or "-", str(entry.action)]
    if entry.type:
        parts.append(f"type={entry.type}")
    if entry.opportunity_id:
        parts.append(f"opportunity={entry.opportunity_id}")
    if entry.decision:
        parts.append(f"decision={entry.decision}")
    if entry.success is not None:
        parts.append(f"success={entry.success}")
    if entry.status:
        parts.append(f"status={entry.status}")
    return "  ".join(parts)


def cmd_audit(context: AppContext, args: argparse.Namespace) -> None:
    entries = context.audit_log.get_by_type(args.type) if args.type else context.audit_log.get_all()
    if args.status:
        entries = [entry for entry in entries if entry.status == args.status]
    if not entries:
        print("No audit entries")
    for entry in entries:
        print(describe_audit_entry(entry))


def cmd_serve(settings: AppSettings, args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run(
        "api.api:app",
        host=args.host or settings.server_host,
        port=args.port or settings.server_port,
        log_level=settings.log_level.lower(),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fastcripto", description="Convert between cryptocurrencies and fiat.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert = subparsers.add_parser("convert", help="Convert an amount between two currencies.")
    convert.add_argument("amount")
    convert.add_argument("from_code", metavar="FROM")
    convert.add_argument("to_code", metavar="TO")
    convert.add_argument("--no-history", action="store_true", help="Do not record the conversion.")
    convert.add_argument("--favorite", action="store_true", help="Save the pair and amount as a favorite.")

    rates = subparsers.add_parser("rates", help="Show current rates.")
    rates.add_argument("--refresh", action="store_true", help="Bypass the cache and fetch fresh rates.")

    history = subparsers.add_parser("history", help="Show recent conversions.")
    history.add_argument("--limit", type=int, default=None)
    history.add_argument("--clear", action="store_true")

    favorites = subparsers.add_parser("favorites", help="Manage favorite conversions.")
    favorite_actions = favorites.add_subparsers(dest="action")
    favorite_actions.add_parser("list")
    add = favorite_actions.add_parser("add")
    add.add_argument("from_code", metavar="FROM")
    add.add_argument("to_code", metavar="TO")
    add.add_argument("amount")
    remove = favorite_actions.add_parser("remove")
    remove.add_argument("id")

    audit = subparsers.add_parser("audit", help="Show the arbitrage audit log.")
    audit.add_argument("--type", default=None, help="Only opportunities of this arbitrage type.")
    audit.add_argument("--status", default=None, help="Only opportunities with this status.")

    serve = subparsers.add_parser("serve", help="Run the HTTP backend.")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser


COMMANDS = {
    "convert": cmd_convert,
    "rates": cmd_rates,
    "history": cmd_history,
    "favorites": cmd_favorites,
    "audit": cmd_audit,
}


def main(argv: Sequence[str] | None = None, *, context: AppContext | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = context.settings if context is not None else config()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    if args.command == "serve":
        cmd_serve(settings, args)
        return 0

    try:
        COMMANDS[args.command](context or build_context(settings), args)
    except ConverterError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
