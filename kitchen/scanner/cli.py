"""CLI entry point for the scanner module."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict

from dotenv import load_dotenv

from ..client import KitchenClient
from .camera import rank_devices
from .capture import create_backend
from .config import ScannerConfig, load_config
from .lookup import LookupPipeline, NotFound, RecipeMatch, SupplyMatch
from .recorder import Recorded
from .session import Notification, ScanSession, ScanState

_SETTLED = frozenset({
    ScanState.RECORDED,
    ScanState.FOUND_SUPPLY,
    ScanState.FOUND_RECIPE,
    ScanState.NOT_FOUND,
})


def main(argv: list[str] | None = None) -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="kitchen-scan",
        description="Kitchen barcode scanner: scan, look up and record consumption",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the configuration file (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    # cameras
    sub.add_parser("cameras", help="List capture devices")

    # scan
    scan_parser = sub.add_parser("scan", help="Scan with the camera until a code is resolved")
    scan_parser.add_argument("--kitchen", "-k", required=True, help="Kitchen ID")
    scan_parser.add_argument(
        "--replay", type=str, default=None, metavar="FILE",
        help="Replay decodes from a file (one code per line) instead of a camera",
    )
    scan_parser.add_argument(
        "--timeout", type=float, default=60.0,
        help="Give up after this many seconds without a result",
    )
    scan_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # lookup
    lookup_parser = sub.add_parser("lookup", help="Look up a typed code")
    lookup_parser.add_argument("code", help="Barcode or recipe ID")
    lookup_parser.add_argument("--kitchen", "-k", required=True, help="Kitchen ID")
    lookup_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # search
    search_parser = sub.add_parser("search", help="Search supplies by name")
    search_parser.add_argument("query", help="Name to search for")
    search_parser.add_argument("--kitchen", "-k", required=True, help="Kitchen ID")
    search_parser.add_argument("--json", action="store_true", help="Output as JSON")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    config = load_config(args.config)

    match args.command:
        case "cameras":
            asyncio.run(_cmd_cameras(config))
        case "scan":
            code = asyncio.run(_cmd_scan(config, args))
            sys.exit(code)
        case "lookup":
            asyncio.run(_cmd_lookup(config, args))
        case "search":
            asyncio.run(_cmd_search(config, args))


def _client(config: ScannerConfig) -> KitchenClient:
    return KitchenClient(
        config.api.base_url, token=config.api.token, timeout=config.api.timeout
    )


async def _cmd_cameras(config: ScannerConfig) -> None:
    backend = create_backend(config)
    if not backend.is_supported():
        print("Camera capture is not available on this system.")
        return
    devices = await backend.list_devices()
    if not devices:
        print("No cameras found.")
        return
    ranked = rank_devices(devices, config.camera.preferred_labels)
    print(f"Cameras: {len(ranked)}")
    for i, device in enumerate(ranked):
        mark = " (preferred)" if i == 0 else ""
        print(f"  [{device.id}] {device.label}{mark}")


async def _cmd_scan(config: ScannerConfig, args) -> int:
    if args.replay:
        config.camera.backend = "replay"
        config.camera.replay_file = args.replay
    backend = create_backend(config)

    settled = asyncio.Event()

    def on_change(session: ScanSession) -> None:
        if session.state in _SETTLED or session.camera_error is not None:
            settled.set()
        elif session.state is ScanState.CAMERA and session.confidence and not args.json:
            bar = "█" * (session.confidence // 10)
            print(f"\r   {session.confidence:3d}% {bar:<10}", end="", flush=True)

    def on_notify(note: Notification) -> None:
        if args.json:
            return
        stream = sys.stderr if note.level == "error" else sys.stdout
        print(f"\n{note.title}: {note.message}", file=stream)

    async with _client(config) as client:
        session = ScanSession.from_config(
            config, args.kitchen, client, backend,
            on_change=on_change, on_notify=on_notify,
        )
        async with session:
            if not args.json:
                print("📷 Scanning... hold the barcode inside the frame")
            try:
                await asyncio.wait_for(settled.wait(), timeout=args.timeout)
            except asyncio.TimeoutError:
                print("\nNo barcode was confirmed in time.", file=sys.stderr)
                return 1

            if session.camera_error is not None:
                err = session.camera_error
                print(f"\n{err.message}\n{err.retry_hint}", file=sys.stderr)
                return 1

            if args.json:
                print(json.dumps(_session_to_dict(session), ensure_ascii=False, indent=2))
                return 0 if session.state is not ScanState.NOT_FOUND else 2

            return await _finish_interactive(session)


async def _finish_interactive(session: ScanSession) -> int:
    print()
    match session.state:
        case ScanState.RECORDED:
            return 0
        case ScanState.NOT_FOUND:
            return 2
        case ScanState.FOUND_RECIPE:
            recipe = session.recipe
            print(f"🍳 {recipe.name} ({recipe.servings} servings, "
                  f"{len(recipe.ingredients)} ingredients)")
            answer = input("Servings to use [0 = skip]: ").strip() or "0"
            try:
                servings = int(answer)
            except ValueError:
                print(f"Not a number of servings: {answer}", file=sys.stderr)
                return 1
            if servings > 0:
                await session.use_recipe(servings)
            return 0
        case ScanState.FOUND_SUPPLY:
            supply = session.supply
            print(f"📦 {supply.name}: {supply.quantity:g} {supply.unit} "
                  f"({supply.kitchen_name or supply.kitchen_id})")
            answer = input(f"Quantity to record [{session.form_quantity:g}]: ").strip()
            try:
                quantity = float(answer) if answer else session.form_quantity
            except ValueError:
                print(f"Not a quantity: {answer}", file=sys.stderr)
                return 1
            notes = input("Notes: ").strip()
            result = await session.record_consumption(quantity, notes)
            return 0 if isinstance(result, Recorded) else 1
    return 0


def _session_to_dict(session: ScanSession) -> dict:
    return {
        "state": session.state.value,
        "source": session.source.value if session.source else None,
        "code": session.last_code,
        "supply": asdict(session.supply) if session.supply else None,
        "recipe": asdict(session.recipe) if session.recipe else None,
        "remaining": session.remaining,
    }


async def _cmd_lookup(config: ScannerConfig, args) -> None:
    async with _client(config) as client:
        result = await LookupPipeline(client).resolve(args.code, args.kitchen)

    if args.json:
        data = {"result": type(result).__name__, **asdict(result)}
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    match result:
        case SupplyMatch(supply=supply, cross_kitchen=cross):
            where = " (other kitchen)" if cross else ""
            print(f"📦 {supply.name}: {supply.quantity:g} {supply.unit}{where}")
            status = supply.expiry_status()
            if status is not None:
                print(f"   {status.label}")
        case RecipeMatch(recipe=recipe):
            print(f"🍳 {recipe.name} ({recipe.servings} servings)")
        case NotFound(error=error):
            print(f"Not found: {args.code}", file=sys.stderr)
            if error:
                print(f"   {error}", file=sys.stderr)
            sys.exit(2)


async def _cmd_search(config: ScannerConfig, args) -> None:
    query = args.query.strip()
    if len(query) < config.search.min_length:
        print(f"Enter at least {config.search.min_length} characters.", file=sys.stderr)
        sys.exit(1)

    async with _client(config) as client:
        results = await LookupPipeline(client).search(query, args.kitchen)

    if args.json:
        print(json.dumps([asdict(s) for s in results], ensure_ascii=False, indent=2))
        return
    if not results:
        print("No supplies matched.")
        return
    print(f"🔍 {len(results)} supplies:")
    for s in results:
        print(f"  {s.name:<20} {s.quantity:g} {s.unit}  [{s.id}]")
