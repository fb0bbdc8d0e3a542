#!/usr/bin/env python3
"""Quick quote entry CLI for DeliveryMaster.

Collects stops and routing options, asks the pricing service for a quote,
and on confirmation records a pending delivery and opens the WhatsApp
hand-off link. Also lists and cancels deliveries in the local history.
"""
from __future__ import annotations

import argparse
import logging
import sys
import webbrowser
from typing import Optional, Sequence

from deliverymaster.addresses import MIN_STOPS
from deliverymaster.app_state import DeliveryApp
from deliverymaster.pricing import SCHEDULE_MODES, format_brl
from deliverymaster.quote_service import PAYMENT_METHODS, DeliveryHistory
from deliverymaster.repo import DEFAULT_DB_PATH, HistoryStore, connection_scope


def prompt_input(prompt: str, default: Optional[str] = None, *, required: bool = True) -> str:
    while True:
        suffix = f" [{default}]" if default else ""
        value = input(f"{prompt}{suffix}: ").strip()
        if not value and default is not None:
            return default
        if value or not required:
            return value
        print("This field is required. Please enter a value.")


def prompt_yes_no(prompt: str, default: bool = False) -> bool:
    suffix = "Y/n" if default else "y/N"
    raw = input(f"{prompt} [{suffix}]: ").strip().lower()
    if not raw:
        return default
    return raw in ("y", "yes", "s", "sim")


def gather_stops(app: DeliveryApp, stops: Sequence[str]) -> None:
    """Fill the app's address list from ``stops`` or interactively."""

    ids = app.addresses.ids()
    if stops:
        while len(app.addresses) < len(stops):
            app.addresses.add()
        ids = app.addresses.ids()
        for address_id, text in zip(ids, stops):
            app.update_address(address_id, "value", text)
        return

    print("\n--- Quick Quote Entry ---")
    index = 0
    while True:
        if index >= len(ids):
            if index >= MIN_STOPS and not prompt_yes_no("Add another stop?"):
                break
            ids.append(app.addresses.add().id)
        label = "Pickup address" if index == 0 else f"Stop {index + 1} address"
        app.update_address(ids[index], "value", prompt_input(label))
        app.update_address(ids[index], "complement", prompt_input("  Complement", required=False))
        app.update_address(
            ids[index], "instructions", prompt_input("  Instructions", required=False)
        )
        index += 1


def print_history(history: DeliveryHistory) -> None:
    if not len(history):
        print("No deliveries recorded yet.")
        return
    for delivery in history:
        print(
            f"{delivery.id}  {delivery.created_at:%Y-%m-%d %H:%M}  "
            f"{delivery.status.value:<9}  {len(delivery.addresses)} stops  "
            f"{delivery.result.distancia_km:g} km  {format_brl(delivery.result.preco_estimado)}"
        )


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Quick delivery quote CLI")
    parser.add_argument("--stop", action="append", dest="stops", default=[])
    parser.add_argument("--return", action="store_true", dest="include_return")
    parser.add_argument("--optimize", action="store_true")
    parser.add_argument("--schedule", choices=SCHEDULE_MODES, default="now")
    parser.add_argument("--reference", default="")
    parser.add_argument("--payment", choices=sorted(PAYMENT_METHODS), default="pix")
    parser.add_argument("--db", default=DEFAULT_DB_PATH)
    parser.add_argument("--yes", action="store_true", help="Confirm without prompting")
    parser.add_argument(
        "--no-save", action="store_true", help="Show the quote without recording a delivery"
    )
    parser.add_argument(
        "--no-browser", action="store_true", help="Print the WhatsApp link instead of opening it"
    )
    parser.add_argument("--history", action="store_true", help="List recorded deliveries")
    parser.add_argument("--cancel", metavar="DELIVERY_ID", help="Cancel a pending delivery")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    with connection_scope(args.db) as conn:
        opener = None if args.no_browser else webbrowser.open
        app = DeliveryApp(HistoryStore(conn), opener=opener)

        if args.history:
            print_history(app.history)
            return 0

        if args.cancel:
            if app.cancel_delivery(args.cancel):
                print(f"Cancelled {args.cancel}.")
                return 0
            print(f"{args.cancel} is not a pending delivery.")
            return 1

        if args.stops and len(args.stops) < MIN_STOPS:
            print(f"At least {MIN_STOPS} stops are required.")
            return 1

        try:
            gather_stops(app, args.stops)
            app.set_options(
                include_return=args.include_return,
                optimize_route=args.optimize,
                schedule=args.schedule,
                reference=args.reference,
            )
        except EOFError:
            print("\nInput closed; no quote requested.")
            return 1

        result = app.calculate()
        if result is None:
            print(app.error)
            return 1

        print("\n--- Quote Summary ---")
        print(f"Distance: {result.distancia_km:g} km")
        print(f"Duration: {result.tempo_minutos:.0f} min")
        print(f"Price:    {format_brl(result.preco_estimado)}")
        print(f"Route:    {result.rota_mapa_url}")

        if args.no_save:
            return 0
        if not args.yes and not prompt_yes_no("Confirm this delivery request?"):
            print("Quote discarded.")
            return 0

        delivery = app.confirm(args.payment)
        print(f"\nSaved delivery {delivery.id} to {args.db}.")
        if args.no_browser:
            print(app.last_whatsapp_url)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
