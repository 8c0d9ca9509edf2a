def format_size(size_bytes: int) -> str:
    """Human readable size with binary units, e.g. ``1.50 GiB``. Keeps the sign."""
    sign = "-" if size_bytes < 0 else ""
    value = float(abs(size_bytes))
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if value < 1024.0 or unit == "TiB":
            if unit == "B":
                return f"{sign}{int(value)} B"
            return f"{sign}{value:.2f} {unit}"
        value /= 1024.0


def format_duration(seconds: float) -> str:
    """``H:MM:SS`` for an hour or more, ``M:SS`` otherwise."""
    total = int(round(max(seconds, 0.0)))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_bitrate(kbps: int) -> str:
    return f"{kbps / 1000:.2f} Mbps"
