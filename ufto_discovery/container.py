"""Read-only decoder for compound (structured storage) container files.

UFT stores test metadata in ``Test.tsp`` and per-action ``resource.mtr`` files,
both of which are compound documents: a small FAT-style filesystem packed into a
single file. The layout is::

    header (512 bytes) | sector 0 | sector 1 | ...

The header names the sectors holding the file allocation table (FAT), the
directory chain and the mini FAT. Streams smaller than the mini stream cutoff live
in 64-byte mini sectors carved out of the root entry's stream.

Parsing works on an in-memory ``bytes`` object so the sector arithmetic can be
exercised against crafted fixtures without touching the filesystem.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Sequence

from .errors import ContainerDecodeError
from .logging import get_logger

logger = get_logger("container")

COMPONENT_INFO_STREAM = "ComponentInfo"

SIGNATURE = bytes.fromhex("D0CF11E0A1B11AE1")
HEADER_SIZE = 512
DIR_ENTRY_SIZE = 128
HEADER_DIFAT_ENTRIES = 109

MAXREGSECT = 0xFFFFFFFA
DIFSECT = 0xFFFFFFFC
FATSECT = 0xFFFFFFFD
ENDOFCHAIN = 0xFFFFFFFE
FREESECT = 0xFFFFFFFF
NOSTREAM = 0xFFFFFFFF

ENTRY_EMPTY = 0
ENTRY_STORAGE = 1
ENTRY_STREAM = 2
ENTRY_ROOT = 5

_HEADER_FORMAT = "<8s16s5H6s9I"
_ENTRY_FORMAT = "<64sHBB3I16sI8s8sIQ"


@dataclass(frozen=True)
class Header:
    """Fields of the fixed-size container header that drive sector resolution."""

    major_version: int
    sector_shift: int
    mini_sector_shift: int
    fat_sector_count: int
    first_directory_sector: int
    mini_stream_cutoff: int
    first_mini_fat_sector: int
    mini_fat_sector_count: int
    first_difat_sector: int
    difat_sector_count: int
    difat: Sequence[int]

    @property
    def sector_size(self) -> int:
        return 1 << self.sector_shift

    @property
    def mini_sector_size(self) -> int:
        return 1 << self.mini_sector_shift


@dataclass(frozen=True)
class DirectoryEntry:
    """A storage or stream record from the directory chain."""

    sid: int
    name: str
    entry_type: int
    left: int
    right: int
    child: int
    start: int
    size: int

    @property
    def is_stream(self) -> bool:
        return self.entry_type == ENTRY_STREAM

    @property
    def is_storage(self) -> bool:
        return self.entry_type in (ENTRY_STORAGE, ENTRY_ROOT)


def parse_header(data: bytes) -> Header:
    """Validate and decode the container header."""
    if len(data) < HEADER_SIZE:
        raise ContainerDecodeError(f"File too short for a compound header ({len(data)} bytes)")
    (
        signature,
        _clsid,
        _minor,
        major,
        byte_order,
        sector_shift,
        mini_shift,
        _reserved,
        _dir_sector_count,
        fat_sector_count,
        first_dir,
        _transaction,
        mini_cutoff,
        first_mini_fat,
        mini_fat_count,
        first_difat,
        difat_count,
    ) = struct.unpack_from(_HEADER_FORMAT, data, 0)

    if signature != SIGNATURE:
        raise ContainerDecodeError("Not a compound document (bad signature)")
    if byte_order != 0xFFFE:
        raise ContainerDecodeError(f"Unsupported byte order marker 0x{byte_order:04X}")
    if sector_shift not in (9, 12):
        raise ContainerDecodeError(f"Unsupported sector shift {sector_shift}")
    if not 0 < mini_shift < sector_shift:
        raise ContainerDecodeError(f"Unsupported mini sector shift {mini_shift}")

    difat = struct.unpack_from(f"<{HEADER_DIFAT_ENTRIES}I", data, 76)
    return Header(
        major_version=major,
        sector_shift=sector_shift,
        mini_sector_shift=mini_shift,
        fat_sector_count=fat_sector_count,
        first_directory_sector=first_dir,
        mini_stream_cutoff=mini_cutoff,
        first_mini_fat_sector=first_mini_fat,
        mini_fat_sector_count=mini_fat_count,
        first_difat_sector=first_difat,
        difat_sector_count=difat_count,
        difat=difat,
    )


def resolve_chain(table: Sequence[int], start: int) -> List[int]:
    """Follow an allocation table from ``start`` until ENDOFCHAIN."""
    chain: List[int] = []
    seen = set()
    sid = start
    while sid != ENDOFCHAIN:
        if sid > MAXREGSECT or sid >= len(table):
            raise ContainerDecodeError(f"Sector id {sid:#x} outside the allocation table")
        if sid in seen:
            raise ContainerDecodeError(f"Cycle detected in sector chain at {sid}")
        seen.add(sid)
        chain.append(sid)
        sid = table[sid]
    return chain


def _unpack_ids(raw: bytes) -> List[int]:
    count = len(raw) // 4
    return list(struct.unpack_from(f"<{count}I", raw, 0))


class CompoundFile:
    """Parsed view over the bytes of a compound container."""

    def __init__(self, data: bytes, *, source: str = "<bytes>") -> None:
        self.source = source
        self._data = data
        self.header = parse_header(data)
        self._fat = self._load_fat()
        self.entries = self._load_directory()
        if not self.entries or self.entries[0].entry_type != ENTRY_ROOT:
            raise ContainerDecodeError(f"{source}: root storage entry is missing")
        self.root = self.entries[0]
        self._mini_fat = self._load_mini_fat()
        self._mini_stream = self._load_mini_stream()

    @classmethod
    def from_bytes(cls, data: bytes, *, source: str = "<bytes>") -> "CompoundFile":
        return cls(data, source=source)

    # ------------------------------------------------------------------
    # Public API

    def stream(self, name: str) -> bytes:
        """Return the content of the stream at ``name`` (``/`` separates storages)."""
        entry = self.find(name)
        if not entry.is_stream:
            raise ContainerDecodeError(f"{self.source}: '{name}' is not a stream")
        return self._read_entry(entry)

    def find(self, name: str) -> DirectoryEntry:
        current = self.root
        for part in [segment for segment in name.split("/") if segment]:
            match = self._children(current).get(part.lower())
            if match is None:
                raise ContainerDecodeError(f"{self.source}: stream '{name}' not found")
            current = match
        return current

    def list_streams(self) -> List[str]:
        return sorted(entry.name for entry in self._children(self.root).values() if entry.is_stream)

    # ------------------------------------------------------------------
    # Sector access

    def _sector(self, sid: int) -> bytes:
        size = self.header.sector_size
        offset = (sid + 1) * size
        if sid > MAXREGSECT or offset >= len(self._data):
            raise ContainerDecodeError(f"{self.source}: sector {sid} lies beyond end of file")
        return self._data[offset : offset + size]

    def _read_chain(self, chain: Sequence[int]) -> bytes:
        return b"".join(self._sector(sid) for sid in chain)

    def _load_fat(self) -> List[int]:
        header = self.header
        fat_sids = [sid for sid in header.difat if sid <= MAXREGSECT]
        sid = header.first_difat_sector
        seen = set()
        per_sector = header.sector_size // 4 - 1
        for _ in range(header.difat_sector_count):
            if sid in (ENDOFCHAIN, FREESECT):
                break
            if sid in seen:
                raise ContainerDecodeError(f"{self.source}: cycle in DIFAT chain")
            seen.add(sid)
            ids = _unpack_ids(self._sector(sid))
            fat_sids.extend(value for value in ids[:per_sector] if value <= MAXREGSECT)
            sid = ids[per_sector]
        if len(fat_sids) < header.fat_sector_count:
            raise ContainerDecodeError(
                f"{self.source}: expected {header.fat_sector_count} FAT sectors, found {len(fat_sids)}"
            )
        return _unpack_ids(self._read_chain(fat_sids[: header.fat_sector_count]))

    def _load_directory(self) -> List[DirectoryEntry]:
        chain = resolve_chain(self._fat, self.header.first_directory_sector)
        raw = self._read_chain(chain)
        entries: List[DirectoryEntry] = []
        for sid in range(len(raw) // DIR_ENTRY_SIZE):
            entries.append(self._parse_entry(sid, raw[sid * DIR_ENTRY_SIZE : (sid + 1) * DIR_ENTRY_SIZE]))
        return entries

    def _parse_entry(self, sid: int, raw: bytes) -> DirectoryEntry:
        (
            name_raw,
            name_length,
            entry_type,
            _color,
            left,
            right,
            child,
            _clsid,
            _state,
            _created,
            _modified,
            start,
            size,
        ) = struct.unpack(_ENTRY_FORMAT, raw)
        name_bytes = name_raw[: max(min(name_length, 64) - 2, 0)]
        name = name_bytes.decode("utf-16-le", errors="replace")
        if self.header.major_version == 3:
            # Version 3 writers may leave garbage in the high dword.
            size &= 0xFFFFFFFF
        return DirectoryEntry(
            sid=sid,
            name=name,
            entry_type=entry_type,
            left=left,
            right=right,
            child=child,
            start=start,
            size=size,
        )

    def _load_mini_fat(self) -> List[int]:
        if self.header.mini_fat_sector_count == 0:
            return []
        chain = resolve_chain(self._fat, self.header.first_mini_fat_sector)
        return _unpack_ids(self._read_chain(chain))

    def _load_mini_stream(self) -> bytes:
        if self.root.size == 0:
            return b""
        return self._read_regular(self.root)

    # ------------------------------------------------------------------
    # Stream assembly

    def _read_entry(self, entry: DirectoryEntry) -> bytes:
        if entry.size == 0:
            return b""
        if entry.size < self.header.mini_stream_cutoff:
            return self._read_mini(entry)
        return self._read_regular(entry)

    def _read_regular(self, entry: DirectoryEntry) -> bytes:
        chain = resolve_chain(self._fat, entry.start)
        self._check_chain_length(entry, len(chain), self.header.sector_size)
        data = self._read_chain(chain)
        if len(data) < entry.size:
            raise ContainerDecodeError(
                f"{self.source}: stream '{entry.name}' truncated ({len(data)} of {entry.size} bytes)"
            )
        return data[: entry.size]

    def _read_mini(self, entry: DirectoryEntry) -> bytes:
        chain = resolve_chain(self._mini_fat, entry.start)
        size = self.header.mini_sector_size
        self._check_chain_length(entry, len(chain), size)
        parts = []
        for sid in chain:
            offset = sid * size
            if offset >= len(self._mini_stream):
                raise ContainerDecodeError(
                    f"{self.source}: mini sector {sid} lies beyond the mini stream"
                )
            parts.append(self._mini_stream[offset : offset + size])
        data = b"".join(parts)
        if len(data) < entry.size:
            raise ContainerDecodeError(
                f"{self.source}: stream '{entry.name}' truncated ({len(data)} of {entry.size} bytes)"
            )
        return data[: entry.size]

    def _check_chain_length(self, entry: DirectoryEntry, sectors: int, sector_size: int) -> None:
        if sectors * sector_size < entry.size:
            raise ContainerDecodeError(
                f"{self.source}: stream '{entry.name}' declares {entry.size} bytes "
                f"but its chain holds only {sectors * sector_size}"
            )

    # ------------------------------------------------------------------
    # Directory tree

    def _children(self, storage: DirectoryEntry) -> Dict[str, DirectoryEntry]:
        if not storage.is_storage:
            return {}
        return {entry.name.lower(): entry for entry in self._walk_siblings(storage.child)}

    def _walk_siblings(self, start: int) -> Iterator[DirectoryEntry]:
        pending = [start]
        seen = set()
        while pending:
            sid = pending.pop()
            if sid == NOSTREAM:
                continue
            if sid >= len(self.entries):
                raise ContainerDecodeError(f"{self.source}: directory id {sid} out of range")
            if sid in seen:
                raise ContainerDecodeError(f"{self.source}: cycle in directory tree at {sid}")
            seen.add(sid)
            entry = self.entries[sid]
            if entry.entry_type != ENTRY_EMPTY:
                yield entry
            pending.append(entry.right)
            pending.append(entry.left)


def open_container(path: Path | str) -> CompoundFile:
    """Read ``path`` from disk and parse it as a compound container."""
    file_path = Path(path)
    try:
        data = file_path.read_bytes()
    except OSError as exc:
        raise ContainerDecodeError(f"Cannot open container {file_path}: {exc}") from exc
    return CompoundFile.from_bytes(data, source=str(file_path))


def read_stream(container: CompoundFile, name: str) -> bytes:
    return container.stream(name)


def decode_component_text(raw: bytes) -> str:
    """Turn a UTF-16LE stream into text starting at the embedded XML."""
    usable = raw[: len(raw) - (len(raw) % 2)]
    text = usable.decode("utf-16-le", errors="replace").replace("\x00", "")
    start = text.find("<")
    if start < 0:
        return ""
    return text[start:]


def extract_xml(path: Path | str, stream_name: str = COMPONENT_INFO_STREAM) -> str:
    """Return the XML embedded in ``stream_name`` of the container at ``path``."""
    container = open_container(path)
    raw = read_stream(container, stream_name)
    logger.debug("Read %d bytes from %s:%s", len(raw), path, stream_name)
    return decode_component_text(raw)


__all__ = [
    "COMPONENT_INFO_STREAM",
    "CompoundFile",
    "DirectoryEntry",
    "Header",
    "decode_component_text",
    "extract_xml",
    "open_container",
    "parse_header",
    "read_stream",
    "resolve_chain",
]
