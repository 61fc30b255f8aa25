# utilities/display.py
"""Formatting of object sizes and S3 locations for run reports."""

from typing import Tuple

__all__ = ["format_bytes", "shorten_uri", "format_banner"]

_IEC_UNITS = ("KiB", "MiB", "GiB", "TiB", "PiB")


def format_bytes(num_bytes: int) -> str:
    """Object size in binary units; sizes under 1 KiB stay exact.

    Examples:
        >>> format_bytes(57)
        '57 B'
        >>> format_bytes(52428800)
        '50.00 MiB'
        >>> format_bytes(106428389)
        '101.50 MiB'
    """
    if abs(num_bytes) < 1024:
        return f"{num_bytes} B"
    value = num_bytes / 1024.0
    for unit in _IEC_UNITS[:-1]:
        if abs(value) < 1024.0:
            return f"{value:.2f} {unit}"
        value /= 1024.0
    return f"{value:.2f} {_IEC_UNITS[-1]}"


def _split_uri(uri: str) -> Tuple[str, str]:
    """Split 's3://bucket/key' into ('s3://bucket/', 'key')."""
    scheme, sep, rest = uri.partition("://")
    if not sep:
        return "", uri
    bucket, slash, key = rest.partition("/")
    return f"{scheme}://{bucket}{slash}", key


def shorten_uri(uri: str, prefix: str, total_width: int = 100) -> str:
    """Shorten an object URI so that prefix + uri fits total_width.

    The scheme and bucket are kept and the middle of the key is elided, so
    the line still says which bucket and which file.

    Examples:
        >>> shorten_uri("s3://files/a.txt", "Object: ", 50)
        's3://files/a.txt'
        >>> shorten_uri("s3://files/2025/11/01/raw/transactions.txt", "", 30)
        's3://files/...transactions.txt'
    """
    max_len = total_width - len(prefix)
    if len(uri) <= max_len:
        return uri

    head, key = _split_uri(uri)
    room = max_len - len(head) - 3
    if room < 1:
        # Bucket alone does not fit; keep the end of the URI.
        return "..." + uri[-max(max_len - 3, 1):]
    return f"{head}...{key[-room:]}"


def format_banner(title: str, width: int = 100, style: str = "═") -> str:
    return f"{title}\n{style * width}"
