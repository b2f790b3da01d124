#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from pathlib import Path

from afterhandler.core.config.loader import load_settings, resolve_state_dir
from afterhandler.core.history.store import HistoryStore
from afterhandler.core.queue.schemas import AFTERHANDLER_TYPES
from afterhandler.core.queue.store import JsonlQueueStore


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show afterhandler queue status per key")
    parser.add_argument("key_ids", nargs="*", help="Only report these key ids")
    parser.add_argument("--state-dir", default=None, help="State directory (defaults to AFTERHANDLER_STATE_DIR)")
    parser.add_argument("--type", choices=AFTERHANDLER_TYPES, default=None, help="Only report one afterhandler type")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON report")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    state_dir = Path(args.state_dir).expanduser() if args.state_dir else resolve_state_dir(load_settings())
    queue_store = JsonlQueueStore(state_dir, HistoryStore(state_dir))
    types = [args.type] if args.type else list(AFTERHANDLER_TYPES)
    key_ids = args.key_ids or None

    report = {afterhandler_type: queue_store.sync_status(afterhandler_type, key_ids) for afterhandler_type in types}

    if args.json:
        payload = {name: [status.model_dump() for status in statuses] for name, statuses in report.items()}
        print(json.dumps(payload, indent=2), flush=True)
        return 0

    print(f"State dir: {state_dir}")
    for afterhandler_type, statuses in report.items():
        print()
        print(f"{afterhandler_type}:")
        if not statuses:
            print("  (no entries)")
        for status in statuses:
            print(f"- key {status.key_id}: queue={status.queue_length} total={status.total}")
            if status.status_message:
                print(f"  last_error={status.status_message} record={status.errored_record_id}")
    pending = sum(status.queue_length for statuses in report.values() for status in statuses)
    return 1 if pending else 0


if __name__ == "__main__":
    raise SystemExit(main())
