"""Offline queue admin script — inspect, sync, retry or clear from the command line."""

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pipetrak.config import configure_logging
from pipetrak.sync.factory import build_queue, build_sync_manager
from pipetrak.utils.formatters import format_relative_time

USAGE = "Usage: python queue_admin.py <status|sync|retry|clear>"


def show_status(queue):
    state = queue.init_queue()
    print(f"Status:       {state.sync_status.value}")
    print(f"Last attempt: {format_relative_time(state.last_sync_attempt)}")
    print(f"Pending:      {len(state.updates)}")
    for u in state.updates:
        print(f"  {u.component_id}  {u.milestone_name} = {u.value!r}"
              f"  (retries: {u.retry_count})")
    print(f"Failed:       {len(state.failed_updates)}")
    for f in state.failed_updates:
        print(f"  {f.update.component_id}  {f.update.milestone_name}"
              f" - {f.error_message}")


def run_sync(retry_failed: bool):
    manager = build_sync_manager(build_queue(),
                                 os.getenv("SUPABASE_ACCESS_TOKEN"))
    result = manager.retry_sync() if retry_failed else manager.sync_queue()
    print(f"Synced {result.synced_count}, server wins "
          f"{result.server_wins_count}, failed {result.failed_count}")
    for err in result.errors:
        status = f" [{err.status}]" if err.status else ""
        print(f"  {err.component_id or '-'}  {err.milestone_name or '-'}: "
              f"{err.message}{status}")
    return 0 if result.success else 2


def main():
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)

    configure_logging()
    command = sys.argv[1].lower()

    if command == "status":
        show_status(build_queue())
    elif command in ("sync", "retry"):
        sys.exit(run_sync(retry_failed=(command == "retry")))
    elif command == "clear":
        queue = build_queue()
        count = queue.get_queue_size()
        queue.clear_queue()
        print(f"Cleared {count} pending updates")
    else:
        print(f"Unknown command: {command}. {USAGE}")
        sys.exit(1)


if __name__ == "__main__":
    main()
