"""Formatting utilities for sync status display."""

import time


def format_relative_time(epoch_ms: int | None, now_ms: int | None = None) -> str:
    """Format an epoch-ms instant as '5 min ago' style text."""
    if epoch_ms is None:
        return "never"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    seconds = max(0, (now_ms - epoch_ms) // 1000)
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} min ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hr ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


def format_sync_status(status: dict, now_ms: int | None = None) -> str:
    """One-line summary of a SyncManager.get_sync_status() dict."""
    pending = status.get("pending_count", 0)
    failed = status.get("failed_count", 0)
    state = status.get("status", "idle")

    if state == "syncing":
        head = f"Syncing {pending} update{'s' if pending != 1 else ''}"
    elif pending:
        head = f"{pending} pending update{'s' if pending != 1 else ''}"
    else:
        head = "All changes synced"

    parts = [head]
    if failed:
        parts.append(f"{failed} failed")
    if state == "error":
        parts.append("last sync had errors")
    last = format_relative_time(status.get("last_sync_attempt"), now_ms)
    parts.append(f"last attempt {last}")
    return " · ".join(parts)
