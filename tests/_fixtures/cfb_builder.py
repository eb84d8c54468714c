"""Byte-level builder for small version 3 compound container files."""

from __future__ import annotations

import struct
from typing import List, Mapping, Optional

from ufto_discovery.container import (
    ENDOFCHAIN,
    ENTRY_EMPTY,
    ENTRY_ROOT,
    ENTRY_STREAM,
    FATSECT,
    FREESECT,
    NOSTREAM,
    SIGNATURE,
)

SECTOR_SIZE = 512
MINI_SECTOR_SIZE = 64
MINI_STREAM_CUTOFF = 4096
_IDS_PER_SECTOR = SECTOR_SIZE // 4
_ENTRIES_PER_SECTOR = SECTOR_SIZE // 128


def _pad(data: bytes, size: int) -> bytes:
    remainder = len(data) % size
    return data if remainder == 0 else data + b"\0" * (size - remainder)


def _sectors_for(length: int, size: int = SECTOR_SIZE) -> int:
    return (length + size - 1) // size


def _entry(
    name: str,
    entry_type: int,
    *,
    child: int = NOSTREAM,
    right: int = NOSTREAM,
    start: int = ENDOFCHAIN,
    size: int = 0,
) -> bytes:
    encoded = name.encode("utf-16-le") + b"\0\0" if name else b""
    return struct.pack(
        "<64sHBB3I16sI8s8sIQ",
        encoded.ljust(64, b"\0"),
        len(encoded),
        entry_type,
        1,
        NOSTREAM,
        right,
        child,
        b"\0" * 16,
        0,
        b"\0" * 8,
        b"\0" * 8,
        start,
        size,
    )


def build_compound_file(
    streams: Mapping[str, bytes],
    *,
    size_overrides: Optional[Mapping[str, int]] = None,
) -> bytes:
    """Return container bytes holding ``streams`` directly under the root storage.

    Streams below the mini stream cutoff go into 64-byte mini sectors, larger ones
    into regular sectors. ``size_overrides`` rewrites the size recorded in the
    directory entry, which lets tests fake truncated streams.
    """
    overrides = dict(size_overrides or {})
    names = list(streams)

    regular_chains: dict[str, tuple[int, int]] = {}
    mini_chains: dict[str, tuple[int, int]] = {}
    regular_blob = b""
    mini_blob = b""
    for name in names:
        data = streams[name]
        if not data:
            continue
        if len(data) < MINI_STREAM_CUTOFF:
            mini_chains[name] = (len(mini_blob) // MINI_SECTOR_SIZE, _sectors_for(len(data), MINI_SECTOR_SIZE))
            mini_blob += _pad(data, MINI_SECTOR_SIZE)
        else:
            regular_chains[name] = (len(regular_blob) // SECTOR_SIZE, _sectors_for(len(data)))
            regular_blob += _pad(data, SECTOR_SIZE)

    mini_fat: List[int] = []
    for first, count in mini_chains.values():
        for offset in range(count):
            mini_fat.append(first + offset + 1 if offset < count - 1 else ENDOFCHAIN)
    mini_fat_bytes = b""
    if mini_fat:
        mini_fat += [FREESECT] * (-len(mini_fat) % _IDS_PER_SECTOR)
        mini_fat_bytes = struct.pack(f"<{len(mini_fat)}I", *mini_fat)

    regular_sectors = len(regular_blob) // SECTOR_SIZE
    mini_stream_start = regular_sectors
    mini_stream_sectors = _sectors_for(len(mini_blob))
    mini_fat_start = mini_stream_start + mini_stream_sectors
    mini_fat_sectors = len(mini_fat_bytes) // SECTOR_SIZE
    directory_start = mini_fat_start + mini_fat_sectors
    directory_sectors = _sectors_for(len(names) + 1, _ENTRIES_PER_SECTOR)
    fat_start = directory_start + directory_sectors

    fat_sectors = 1
    while fat_sectors * _IDS_PER_SECTOR < fat_start + fat_sectors:
        fat_sectors += 1
    total_sectors = fat_start + fat_sectors

    entries = [
        _entry(
            "Root Entry",
            ENTRY_ROOT,
            child=1 if names else NOSTREAM,
            start=mini_stream_start if mini_blob else ENDOFCHAIN,
            size=len(mini_blob),
        )
    ]
    for index, name in enumerate(names, start=1):
        right = index + 1 if index < len(names) else NOSTREAM
        size = overrides.get(name, len(streams[name]))
        if name in regular_chains:
            start = regular_chains[name][0]
        elif name in mini_chains:
            start = mini_chains[name][0]
        else:
            start = ENDOFCHAIN
        entries.append(_entry(name, ENTRY_STREAM, right=right, start=start, size=size))
    while len(entries) % _ENTRIES_PER_SECTOR:
        entries.append(_entry("", ENTRY_EMPTY))
    directory_bytes = b"".join(entries)

    fat = [FREESECT] * (fat_sectors * _IDS_PER_SECTOR)

    def link(first: int, count: int) -> None:
        for offset in range(count):
            fat[first + offset] = first + offset + 1 if offset < count - 1 else ENDOFCHAIN

    for first, count in regular_chains.values():
        link(first, count)
    if mini_stream_sectors:
        link(mini_stream_start, mini_stream_sectors)
    if mini_fat_sectors:
        link(mini_fat_start, mini_fat_sectors)
    link(directory_start, directory_sectors)
    for offset in range(fat_sectors):
        fat[fat_start + offset] = FATSECT
    fat_bytes = struct.pack(f"<{len(fat)}I", *fat)

    difat = [fat_start + offset for offset in range(fat_sectors)]
    difat += [FREESECT] * (109 - len(difat))
    header = struct.pack(
        "<8s16s5H6s9I",
        SIGNATURE,
        b"\0" * 16,
        0x003E,
        3,
        0xFFFE,
        9,
        6,
        b"\0" * 6,
        0,
        fat_sectors,
        directory_start,
        0,
        MINI_STREAM_CUTOFF,
        mini_fat_start if mini_fat_sectors else ENDOFCHAIN,
        mini_fat_sectors,
        ENDOFCHAIN,
        0,
    ) + struct.pack("<109I", *difat)

    body = regular_blob + _pad(mini_blob, SECTOR_SIZE) + mini_fat_bytes + directory_bytes + fat_bytes
    assert len(body) == total_sectors * SECTOR_SIZE
    return header + body


def encode_component_info(xml: str) -> bytes:
    """Encode XML the way UFT writes ComponentInfo streams."""
    return xml.encode("utf-16-le")


__all__ = ["build_compound_file", "encode_component_info"]
