"""IPS record codec, record stream and the two-pass applier.

An IPS file starts with the magic "PATCH", followed by a series of records
and the end-of-file marker "EOF". All numbers are unsigned big-endian.

Record layouts:
    offset(3) length(2) data(length)          literal, length != 0
    offset(3) 0x0000 run_length(2) fill(1)    run-length encoded

IPS never declares the size of the patched file, so applying is done in two
passes over the same records: a dry run that only computes the final size,
then the apply pass into a buffer allocated at that size.
"""
import logging
from dataclasses import dataclass
from typing import Iterator

from .errors import BufferOverflowError, InvalidPatchError, TruncatedPatchError

log = logging.getLogger(__name__)

MAGIC = b"PATCH"
EOF_MARKER = b"EOF"
EOF_OFFSET = int.from_bytes(EOF_MARKER, "big")  # 0x454F46

OFFSET_SIZE = 3
LENGTH_SIZE = 2
RLE_BODY_SIZE = 3

MAX_OFFSET = 0xFFFFFF
MAX_RECORD_LENGTH = 0xFFFF


@dataclass(frozen=True)
class PatchRecord:
    """One IPS record. `data` is None for run-length records."""

    offset: int
    length: int
    data: bytes | None = None
    fill: int = 0

    @classmethod
    def literal(cls, offset: int, data: bytes) -> "PatchRecord":
        return cls(offset, len(data), bytes(data))

    @classmethod
    def run(cls, offset: int, length: int, fill: int) -> "PatchRecord":
        return cls(offset, length, None, fill)

    @property
    def rle(self) -> bool:
        return self.data is None

    @property
    def end(self) -> int:
        return self.offset + self.length

    def payload(self) -> bytes:
        """Bytes this record writes at `offset`."""
        if self.data is None:
            return bytes([self.fill]) * self.length
        return self.data

    def encode(self) -> bytes:
        if not 0 <= self.offset <= MAX_OFFSET:
            raise ValueError(f"Record offset 0x{self.offset:X} does not fit in 24 bits")
        if self.offset == EOF_OFFSET:
            raise ValueError("Record offset 0x454F46 would be read back as the EOF marker")
        if not 0 <= self.length <= MAX_RECORD_LENGTH:
            raise ValueError(f"Record length {self.length} does not fit in 16 bits")
        out = bytearray(self.offset.to_bytes(OFFSET_SIZE, "big"))
        if self.data is None:
            out += bytes(LENGTH_SIZE)
            out += self.length.to_bytes(2, "big")
            out.append(self.fill & 0xFF)
        else:
            if self.length == 0:
                raise ValueError("Literal records must carry at least one byte")
            out += self.length.to_bytes(LENGTH_SIZE, "big")
            out += self.data
        return bytes(out)


@dataclass
class PatchSummary:
    """Counters collected while walking a patch."""

    records: int = 0
    rle_records: int = 0
    bytes_replaced: int = 0
    patched_size: int = 0


def validate_patch(patch: bytes) -> bool:
    """True if the buffer starts with the IPS magic."""
    return patch[: len(MAGIC)] == MAGIC


def _take(patch: bytes, pos: int, size: int, what: str) -> bytes:
    chunk = patch[pos : pos + size]
    if len(chunk) != size:
        raise TruncatedPatchError(f"Patch ends inside {what}: need {size} bytes, {len(chunk)} left", pos)
    return chunk


def decode_record(patch: bytes, pos: int) -> tuple[PatchRecord | None, int]:
    """Decode the record at `pos`.

    Returns (record, next_pos); record is None when the EOF marker was read.
    """
    offset_field = _take(patch, pos, OFFSET_SIZE, "a record offset or the EOF marker")
    if offset_field == EOF_MARKER:
        return None, pos + OFFSET_SIZE
    offset = int.from_bytes(offset_field, "big")
    pos += OFFSET_SIZE

    length = int.from_bytes(_take(patch, pos, LENGTH_SIZE, f"the length of record @0x{offset:06X}"), "big")
    pos += LENGTH_SIZE

    if length == 0:
        body = _take(patch, pos, RLE_BODY_SIZE, f"the RLE body of record @0x{offset:06X}")
        run_length = int.from_bytes(body[:2], "big")
        return PatchRecord.run(offset, run_length, body[2]), pos + RLE_BODY_SIZE

    data = _take(patch, pos, length, f"the {length}-byte payload of record @0x{offset:06X}")
    return PatchRecord.literal(offset, data), pos + length


def iter_records(patch: bytes) -> Iterator[PatchRecord]:
    """Yield the records of a patch in application order.

    Raises InvalidPatchError before reading anything if the magic is missing,
    and TruncatedPatchError if a record or the EOF marker is cut off.
    """
    if not validate_patch(patch):
        raise InvalidPatchError("Not an IPS patch: missing 'PATCH' header")
    pos = len(MAGIC)
    while True:
        record, pos = decode_record(patch, pos)
        if record is None:
            break
        yield record

    trailing = len(patch) - pos
    if trailing:
        # A record at 0x454F46 from another tool would stop the walk here.
        log.warning(
            "EOF marker at patch offset 0x%X is followed by %d more bytes; "
            "a record at offset 0x%06X may have been cut short",
            pos - OFFSET_SIZE,
            trailing,
            EOF_OFFSET,
        )


def _walk(patch: bytes, original_size: int, target: bytearray | None = None) -> PatchSummary:
    """Walk every record once. Writes into `target` only when it is given."""
    summary = PatchSummary(patched_size=original_size)
    for record in iter_records(patch):
        summary.records += 1
        summary.bytes_replaced += record.length
        if record.rle:
            summary.rle_records += 1
        if record.end > summary.patched_size:
            summary.patched_size = record.end

        log.debug(
            "%s record @0x%06X len=%d",
            "RLE" if record.rle else "literal",
            record.offset,
            record.length,
        )
        if target is not None:
            if record.end > len(target):
                raise BufferOverflowError(
                    f"Record @0x{record.offset:06X}+{record.length} ends past the "
                    f"{len(target)}-byte target; size it with a dry run first"
                )
            target[record.offset : record.end] = record.payload()
    return summary


def scan_patch(patch: bytes, original_size: int = 0) -> PatchSummary:
    """Dry run: compute counters and the patched size without touching any buffer."""
    return _walk(patch, original_size)


def size_patched_target(patch: bytes, original_size: int) -> int:
    """Size of the ROM after patching: never smaller than `original_size`."""
    return scan_patch(patch, original_size).patched_size


def apply_patch(patch: bytes, target: bytearray) -> PatchSummary:
    """Apply every record to `target` in place.

    `target` must already be large enough (see size_patched_target). On
    TruncatedPatchError the target is left partially patched and must be
    discarded.
    """
    return _walk(patch, len(target), target)


def patch_rom(patch: bytes, original: bytes) -> tuple[bytes, PatchSummary]:
    """Return (patched_rom, summary) without modifying `original`."""
    size = size_patched_target(patch, len(original))
    target = bytearray(size)
    target[: len(original)] = original
    summary = apply_patch(patch, target)
    log.info(
        "Applied %d records (%d RLE), %d bytes replaced, %d -> %d bytes",
        summary.records,
        summary.rle_records,
        summary.bytes_replaced,
        len(original),
        len(target),
    )
    return bytes(target), summary
