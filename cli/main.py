#!/usr/bin/env python3
"""
Delivery Pulse CLI - due digests and delivery reports from the terminal.
"""

import asyncio
import json
import sys

from pulse import config, paths
from pulse.access import OperatorAccess, OrganisationAccess
from pulse.errors import DigestError, StoreError
from pulse.observability import configure_logging
from pulse.service import DigestService
from pulse.store import RecordStore, init_db


def print_header(text: str):
    """Print a section header."""
    print(f"\n{'═' * 50}")
    print(f"  {text}")
    print(f"{'═' * 50}")


def print_table(headers: list, rows: list, widths: list = None):
    """Print a simple table."""
    if not widths:
        widths = [max(len(str(row[i])) for row in [headers] + rows) for i in range(len(headers))]

    header_str = " │ ".join(str(h).ljust(w) for h, w in zip(headers, widths, strict=False))
    print(header_str)
    print("─" * len(header_str))
    for row in rows:
        print(" │ ".join(str(c)[:w].ljust(w) for c, w in zip(row, widths, strict=False)))


def _split_options(args: list) -> tuple[list, dict]:
    """Separate ``--name value`` options (and bare ``--json``) from positionals."""
    positional, options = [], {}
    it = iter(args)
    for arg in it:
        if arg == "--json":
            options["json"] = True
        elif arg.startswith("--"):
            options[arg[2:]] = next(it, None)
        else:
            positional.append(arg)
    return positional, options


def _service(options: dict) -> DigestService:
    store = RecordStore(paths.db_path())
    user = options.get("user")
    access = OrganisationAccess(store, user) if user else OperatorAccess(store)
    return DigestService(store, access)


def _run(coro):
    try:
        return asyncio.run(coro)
    except DigestError as e:
        print(f"Error ({e.code}): {e.message}")
        sys.exit(2)
    except StoreError as e:
        print(f"Store error: {e}")
        sys.exit(3)


def cmd_init(args):
    """Create the database schema."""
    path = init_db()
    print(f"Database ready at {path}")
    settings = paths.settings_path()
    print(f"Settings file: {settings} ({'present' if settings.exists() else 'defaults in use'})")


def cmd_digest(args):
    """Show the due digest for a project, or the whole portfolio."""
    positional, options = _split_options(args)
    ref = positional[0] if positional else None
    data = _run(_service(options).due_digest(ref, options.get("days")))

    if options.get("json"):
        print(json.dumps(data, indent=2, default=str))
        return

    title = data["project"]["name"] if data.get("project") else "PORTFOLIO"
    print_header(f"DUE DIGEST: {title}")
    print(data["summary"])
    if data["due_items"]:
        rows = [
            [
                (item["due_at"] or "-")[:10],
                item["item_kind"],
                item["attributes"].get("project_name") or "",
                item["title"],
                item["owner_name"] or item["owner_email"] or "-",
            ]
            for item in data["due_items"]
        ]
        print()
        print_table(["DUE", "KIND", "PROJECT", "TITLE", "OWNER"], rows, [10, 9, 20, 40, 18])
    print(f"\n{data['recommended_message']}")
    for failure in data["degraded"]:
        print(f"  ! {failure['domain']} unavailable: {failure['error']}")
    if data.get("stats"):
        print()
        print_table(["STAT", "VALUE"], sorted(data["stats"].items()))


def cmd_report(args):
    """Build a delivery report: report <project_ref> [from] [to] [--days N]."""
    positional, options = _split_options(args)
    if not positional:
        print("Usage: report <project_ref> [from YYYY-MM-DD] [to YYYY-MM-DD] [--days N]")
        return
    ref = positional[0]
    start = positional[1] if len(positional) > 1 else None
    end = positional[2] if len(positional) > 2 else None
    data = _run(
        _service(options).delivery_report(
            ref, start, end, options.get("days"), artifact_id=options.get("artifact")
        )
    )

    if options.get("json"):
        print(json.dumps(data, indent=2, default=str))
        return

    summary = data["executive_summary"]
    print_header(f"DELIVERY REPORT: {data['project']['name']} [{summary['rag'].upper()}]")
    print(f"Period: {data['period']['from']} to {data['period']['to']}")
    print(f"\n{summary['headline']}\n")
    print(summary["narrative"])
    for title, key in (
        ("COMPLETED THIS PERIOD", "completed_this_period"),
        ("NEXT PERIOD FOCUS", "next_period_focus"),
        ("KEY DECISIONS", "key_decisions"),
        ("OPERATIONAL BLOCKERS", "operational_blockers"),
        ("RESOURCES", "resource_summary"),
    ):
        print(f"\n{title}")
        for line in data[key]:
            print(f"  • {line['text']}")


def cmd_help(args):
    """Show help."""
    print_header("DELIVERY PULSE CLI")
    print(f"""
COMMANDS:

  init                         Create the database schema
  digest [ref] [--days N]      Due digest for a project, or the portfolio
  report <ref> [from] [to]     Delivery report (default period: last 7 days)
         [--days N] [--artifact ID]
  help                         Show this help

OPTIONS:
  --user ID                    Act as this user (organisation access rules)
  --json                       Print the raw JSON document

Windows are clamped to {config.MIN_WINDOW_DAYS}..{config.MAX_WINDOW_DAYS} days.
Database: {paths.db_path()}
""")


COMMANDS = {
    "init": cmd_init,
    "digest": cmd_digest,
    "d": cmd_digest,
    "report": cmd_report,
    "r": cmd_report,
    "help": cmd_help,
    "h": cmd_help,
}


def main():
    """Main entry point."""
    configure_logging(config.LOG_LEVEL)
    if len(sys.argv) < 2:
        cmd_help([])
        return

    cmd = sys.argv[1]
    args = sys.argv[2:]

    if cmd in COMMANDS:
        COMMANDS[cmd](args)
    else:
        print(f"Unknown command: {cmd}")
        print("Run 'help' for available commands.")


if __name__ == "__main__":
    main()
