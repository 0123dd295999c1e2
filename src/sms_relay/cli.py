from __future__ import annotations

import argparse
from collections.abc import Sequence

from .bootstrap import make_store
from .config import get_settings
from .conversation import ConversationView, build_view
from .models import MessageQuery
from .phone import normalize
from .store import RecordStore


def _format_ts(value: object) -> str:
    if value is None:
        return "-"
    isoformat = getattr(value, "isoformat", None)
    if callable(isoformat):
        return str(isoformat(timespec="seconds"))
    return str(value)


def print_thread(view: ConversationView) -> None:
    """Print a thread in a human-readable form, ours on the right."""
    if not view.entries:
        print("No messages yet.")
        return
    for entry in view:
        record = entry.record
        arrow = ">>" if entry.outbound else "<<"
        print("-" * 80)
        print(
            f"{arrow} {_format_ts(record.timestamp)} | "
            f"from={record.from_number} to={record.to_number}"
        )
        print(record.body.strip())
    print("-" * 80)


def main(argv: Sequence[str] | None = None, store: RecordStore | None = None) -> int:
    parser = argparse.ArgumentParser(description="Print the SMS thread with one phone number.")
    parser.add_argument("phone", type=str)
    parser.add_argument("--limit", type=int, default=None, help="only the last N stored rows")
    args = parser.parse_args(argv)

    target = normalize(args.phone)
    if target.is_empty:
        parser.error("phone must contain digits")

    settings = get_settings()
    if store is None:
        store = make_store(settings)
    records = store.query(MessageQuery(counterparts=target.variants(), limit=args.limit))
    print_thread(build_view(args.phone, records, settings.owned_numbers))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
