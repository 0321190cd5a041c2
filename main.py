from __future__ import annotations

import argparse
import json

from trade_journal.journal import JournalAnalytics, JournalEntryService, JournalStore
from trade_journal.utils.config import get_settings
from trade_journal.utils.logger import setup_logging


def build_service(db_path: str) -> JournalEntryService:
    settings = get_settings()
    analytics = JournalAnalytics(
        morning_cutoff=settings.morning_cutoff,
        evening_cutoff=settings.evening_cutoff,
    )
    return JournalEntryService(JournalStore(db_path), analytics)


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Trader journal (command-line mode)")
    parser.add_argument("--db", default=settings.db_path, help="journal database path")
    parser.add_argument("--json", action="store_true", help="print the summary as JSON")
    parser.add_argument("--log-level", default=settings.log_level, help="logging level")
    args = parser.parse_args()

    setup_logging(log_level=args.log_level)
    service = build_service(args.db)

    latest = service.find_latest_entry()
    if latest is None:
        print("Journal is empty. Add entries through the journal API.")
        return

    summary = service.summarize_entry(latest.id)
    if args.json:
        print(json.dumps(summary, default=str, indent=2))
        return

    print(f"=== Journal {summary['date']} ===")
    for key, value in summary.items():
        if key not in ("date", "net_gain_by_trade"):
            print(f"  {key:<20} {value}")
    for row in summary["net_gain_by_trade"]:
        print(f"  trade {row['trade_id']} {row['ticker'] or '-'}: "
              f"{row['net_gain']} ({row['net_gain_pct']} %)")


if __name__ == "__main__":
    main()
