from app.core.config import _get_env

# --------------------------------------------------
# PROXIMITY
# --------------------------------------------------

# Messages fan out to everyone within this radius of the sender
CHAT_RADIUS_METERS = float(_get_env("CHAT_RADIUS_METERS", "3000"))

# History is read back from senders within this (smaller) radius
HISTORY_RADIUS_METERS = float(_get_env("HISTORY_RADIUS_METERS", "500"))

# --------------------------------------------------
# RETENTION
# --------------------------------------------------

# Daily open windows, local clock, [start, end) hours
CHAT_OPEN_WINDOWS_RAW = _get_env("CHAT_OPEN_WINDOWS", "6-9,11-15,17-23")

# How often messages are wiped while the chat is closed
PURGE_INTERVAL_SECONDS = float(_get_env("PURGE_INTERVAL_SECONDS", "60"))

# IANA zone the open windows refer to ("Europe/Zurich"); empty = host local time
CHAT_TIMEZONE = _get_env("CHAT_TIMEZONE", "")


def parse_open_windows(raw: str) -> list[tuple[int, int]]:
    """
    Parse "6-9,11-15,17-23" into [(6, 9), (11, 15), (17, 23)].

    Hours are 0..24. A window whose start is after its end wraps midnight
    ("22-2"). Windows must not overlap.
    """
    windows: list[tuple[int, int]] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = chunk.split("-")
        if len(parts) != 2:
            raise ValueError(f"Invalid open window: {chunk!r}")
        try:
            start, end = int(parts[0]), int(parts[1])
        except ValueError:
            raise ValueError(f"Invalid open window: {chunk!r}")
        if not (0 <= start <= 24 and 0 <= end <= 24) or start == end:
            raise ValueError(f"Invalid open window: {chunk!r}")
        windows.append((start, end))

    covered: set[int] = set()
    for start, end in windows:
        hours = set(range(start, end)) if start < end else set(range(start, 24)) | set(range(0, end))
        if covered & hours:
            raise ValueError(f"Overlapping open windows: {raw!r}")
        covered |= hours

    return windows


CHAT_OPEN_WINDOWS = parse_open_windows(CHAT_OPEN_WINDOWS_RAW)
