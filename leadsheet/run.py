from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date, datetime, timezone
from typing import Any, Optional

from leadsheet.leads import LeadSheet
from leadsheet.logging_config import configure_logging
from leadsheet.refresh import LeadRefresher
from leadsheet.sheets.client import SheetsConfig, load_sheets_config
from leadsheet.sheets.errors import (
    ConfigurationMissingError,
    LeadNotFoundError,
    LeadSheetError,
    ProtectedRangeError,
)
from leadsheet.sheets.schema import (
    HOTEL_CATEGORIES,
    LEAD_FIELDS,
    LEAD_STATUSES,
    NEW_LEAD_DEFAULTS,
    Lead,
    canonical_field,
)
from leadsheet.sheets.writers import record_to_row

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_PROTECTED = 3
EXIT_NOT_FOUND = 4


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _protected_help(cfg: Optional[SheetsConfig]) -> str:
    who = "the service account"
    where = "the lead worksheet"
    if cfg is not None:
        where = f"worksheet '{cfg.worksheet}'"
        if cfg.has_signing_material:
            who = cfg.service_account.get("client_email") or who
    return (
        f"The sheet rejected the write because {where} is protected.\n"
        f"Ask the sheet owner to either remove the protection or add {who} "
        "as an editor of the protected range, then try again."
    )


def _lead_line(lead: Lead) -> str:
    cols = [lead.trip_id, lead.date, lead.status, lead.traveller_name, lead.phone, lead.travel_state, lead.consultant]
    return " | ".join(str(c) for c in cols)


def _parse_assignments(parser: argparse.ArgumentParser, pairs: list[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for pair in pairs or []:
        if "=" not in pair:
            parser.error(f"--set expects field=value, got {pair!r}")
        key, value = pair.split("=", 1)
        name = canonical_field(key)
        if name not in LEAD_FIELDS:
            parser.error(f"unknown lead field {key!r}")
        out[name] = value
    return out


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leadsheet", description="Manage leads stored in a Google Sheet.")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LEADSHEET_LOG_LEVEL or INFO).")
    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="Fetch and print leads.")
    p_list.add_argument("--consultant", default="", help="Only leads assigned to this consultant.")
    p_list.add_argument("--status", default="", help="Only leads with this exact status.")
    p_list.add_argument("--json", action="store_true", help="Print JSON instead of a table.")

    p_add = sub.add_parser("add", help="Append a new lead.")
    p_add.add_argument("--trip-id", default="", help="Leave empty to generate one.")
    p_add.add_argument("--traveller-name", required=True)
    p_add.add_argument("--phone", required=True)
    p_add.add_argument("--email", default="")
    p_add.add_argument("--travel-date", default="", help="YYYY-MM-DD")
    p_add.add_argument("--travel-state", default="")
    p_add.add_argument("--nights", default="")
    p_add.add_argument("--pax", default="")
    p_add.add_argument("--hotel-category", choices=HOTEL_CATEGORIES, default=NEW_LEAD_DEFAULTS["hotel_category"])
    p_add.add_argument("--meal-plan", default=NEW_LEAD_DEFAULTS["meal_plan"])
    p_add.add_argument("--status", choices=LEAD_STATUSES, default=NEW_LEAD_DEFAULTS["status"])
    p_add.add_argument("--remarks", default="")
    p_add.add_argument("--consultant", default="")
    p_add.add_argument("--date", default="", help="Creation date, defaults to today.")
    p_add.add_argument("--priority", default=None)
    p_add.add_argument("--notes", default=None)
    p_add.add_argument("--dry-run", action="store_true", help="Print the row instead of appending it.")

    p_upd = sub.add_parser("update", help="Update fields of an existing lead.")
    p_upd.add_argument("trip_id")
    p_upd.add_argument("--set", dest="assignments", action="append", default=[], metavar="FIELD=VALUE")
    p_upd.add_argument("--status", choices=LEAD_STATUSES, default=None)

    p_watch = sub.add_parser("watch", help="Refresh the lead list in the background.")
    p_watch.add_argument("--interval", type=float, default=30.0, help="Seconds between refreshes.")
    p_watch.add_argument("--count", type=int, default=0, help="Stop after N refreshes (0 = run until interrupted).")

    return parser


def _new_lead(args: argparse.Namespace) -> Lead:
    return Lead(
        trip_id=args.trip_id.strip(),
        date=args.date or date.today().isoformat(),
        consultant=args.consultant,
        status=args.status,
        traveller_name=args.traveller_name,
        phone=args.phone,
        email=args.email,
        travel_date=args.travel_date,
        travel_state=args.travel_state,
        remarks=args.remarks,
        nights=args.nights,
        pax=args.pax,
        hotel_category=args.hotel_category,
        meal_plan=args.meal_plan,
        priority=args.priority,
        notes=args.notes,
    )


async def _list(cfg: SheetsConfig, args: argparse.Namespace) -> int:
    async with LeadSheet(cfg) as sheet:
        leads = await sheet.fetch_leads()

    consultant = args.consultant.strip().lower()
    if consultant:
        leads = [lead for lead in leads if str(lead.consultant).strip().lower() == consultant]
    if args.status:
        leads = [lead for lead in leads if lead.status == args.status]

    if args.json:
        print(json.dumps([lead.to_fields() for lead in leads], indent=2, ensure_ascii=False))
    else:
        for lead in leads:
            print(_lead_line(lead))
        print(f"leads={len(leads)}")
    return EXIT_OK


async def _add(cfg: SheetsConfig, args: argparse.Namespace) -> int:
    lead = _new_lead(args)
    if args.dry_run:
        row = record_to_row(lead, cfg.column_mapping)
        print(f"[DRY-RUN] would append to {cfg.worksheet}: {json.dumps(row, ensure_ascii=False)}")
        return EXIT_OK

    async with LeadSheet(cfg) as sheet:
        result = await sheet.append_lead(lead)
    print(f"added trip_id={result.trip_id} range={result.updated_range or ''}")
    return EXIT_OK


async def _update(cfg: SheetsConfig, args: argparse.Namespace, updates: dict[str, Any]) -> int:
    async with LeadSheet(cfg) as sheet:
        result = await sheet.update_lead(args.trip_id, updates)
    if result.no_op:
        print(f"nothing to update for trip_id={result.trip_id}")
    else:
        print(f"updated trip_id={result.trip_id} row={result.row_number} ranges={','.join(result.ranges)}")
    return EXIT_OK


async def _watch(cfg: SheetsConfig, args: argparse.Namespace) -> int:
    done = asyncio.Event()
    seen = 0

    def on_leads(leads: list[Lead]) -> None:
        nonlocal seen
        seen += 1
        print(f"{utc_now_iso()} leads={len(leads)}", flush=True)
        if args.count and seen >= args.count:
            done.set()

    async with LeadSheet(cfg) as sheet:
        refresher = LeadRefresher(sheet, interval=args.interval, on_leads=on_leads)
        refresher.start()
        try:
            await done.wait()
        finally:
            await refresher.stop()
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    updates: dict[str, Any] = {}
    if args.command == "update":
        updates = _parse_assignments(parser, args.assignments)
        if args.status:
            updates["status"] = args.status

    cfg: Optional[SheetsConfig] = None
    try:
        cfg = load_sheets_config()
        if args.command == "list":
            return asyncio.run(_list(cfg, args))
        if args.command == "add":
            return asyncio.run(_add(cfg, args))
        if args.command == "update":
            return asyncio.run(_update(cfg, args, updates))
        return asyncio.run(_watch(cfg, args))

    except ProtectedRangeError as e:
        print(f"ERROR {e}", file=sys.stderr)
        print(_protected_help(cfg), file=sys.stderr)
        return EXIT_PROTECTED
    except ConfigurationMissingError as e:
        print(f"ERROR configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except LeadNotFoundError as e:
        print(f"ERROR {e}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except LeadSheetError as e:
        print(f"ERROR {e}", file=sys.stderr)
        return EXIT_FAILED
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
