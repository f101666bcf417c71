"""Windows file attribute flags (FILE_ATTRIBUTE_*)."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping


FILE_ATTRIBUTE_FLAGS: Mapping[int, str] = MappingProxyType({
    0x1: "ReadOnly",
    0x2: "Hidden",
    0x4: "System",
    0x10: "Directory",
    0x20: "Archive",
    0x40: "Device",
    0x80: "Normal",
    0x100: "Temporary",
    0x200: "SparseFile",
    0x400: "ReparsePoint",
    0x800: "Compressed",
    0x1000: "Offline",
    0x2000: "NotContentIndexed",
    0x4000: "Encrypted",
    0x8000: "IntegrityStream",
    0x10000: "Virtual",
    0x20000: "NoScrubData",
    0x40000: "RecallOnOpen",
    0x80000: "Pinned",
    0x100000: "Unpinned",
    0x400000: "RecallOnDataAccess",
})


def describe_file_attributes(
    value: int,
    flags: Mapping[int, str] = FILE_ATTRIBUTE_FLAGS,
) -> str:
    """Render an attribute bit mask as its flag names followed by the raw value.

    Example:
        >>> describe_file_attributes(33, {1: "ReadOnly", 32: "Archive"})
        'ReadOnly, Archive (33)'
    """
    names = [name for bit, name in sorted(flags.items()) if value & bit == bit]
    if not names:
        return f"({value})"
    return f"{', '.join(names)} ({value})"
