import logging
from typing import Iterable

from .ips import EOF_MARKER, EOF_OFFSET, MAGIC, MAX_RECORD_LENGTH, PatchRecord

log = logging.getLogger(__name__)


def diff_records(original: bytes, modified: bytes) -> list[PatchRecord]:
    """Literal records that turn `original` into `modified`.

    A position differs when `modified` has a byte there and `original` either
    has none or a different one. Bytes past the end of `modified` are never
    emitted; patches can grow a ROM but not shrink it.
    """
    size = max(len(original), len(modified))
    orig_len = len(original)
    mod_len = len(modified)

    def differs(pos: int) -> bool:
        return pos < mod_len and (pos >= orig_len or original[pos] != modified[pos])

    records = []
    i = 0
    while i < size:
        if not differs(i):
            i += 1
            continue
        start = i
        if start == EOF_OFFSET:
            # Start one byte early so the offset field never spells "EOF".
            start -= 1
            log.debug("Shifted record at 0x%06X back one byte to avoid the EOF marker", EOF_OFFSET)
        end = i
        while end < size and end - start < MAX_RECORD_LENGTH and differs(end):
            end += 1
        records.append(PatchRecord.literal(start, modified[start:end]))
        i = end
    return records


def serialize_patch(records: Iterable[PatchRecord]) -> bytes:
    out = bytearray(MAGIC)
    for r in records:
        out.extend(r.encode())
    out.extend(EOF_MARKER)
    return bytes(out)


def build_ips_patch(original: bytes, modified: bytes) -> bytes:
    records = diff_records(original, modified)
    patch = serialize_patch(records)
    log.info(
        "Built IPS patch: %d records, %d bytes changed, %d-byte patch",
        len(records),
        sum(r.length for r in records),
        len(patch),
    )
    return patch
