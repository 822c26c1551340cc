"""Reading and writing patch files and patched ROMs."""
import logging
from pathlib import Path

from .errors import PatchIOError, ShortReadError
from .ips import PatchSummary, patch_rom

log = logging.getLogger(__name__)


def load_patch(path: str | Path) -> bytes:
    """Read a whole patch file into memory."""
    path = Path(path)
    try:
        expected = path.stat().st_size
        with path.open("rb") as f:
            data = f.read()
    except OSError as e:
        raise PatchIOError(f"Cannot read patch {path}: {e.strerror or e}") from e
    if len(data) != expected:
        raise ShortReadError(path, expected, len(data))
    log.debug("Loaded %d-byte patch from %s", len(data), path)
    return data


def _write_bytes(path: Path, data: bytes, what: str) -> None:
    """Write `data` to `path`, creating parent directories.

    A failed write removes whatever part of the file made it to disk.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PatchIOError(f"Cannot write {what} {path}: {e.strerror or e}") from e
    try:
        with path.open("wb") as f:
            f.write(data)
    except OSError as e:
        path.unlink(missing_ok=True)
        raise PatchIOError(f"Cannot write {what} {path}: {e.strerror or e}") from e


def write_patch(patch: bytes, path: str | Path) -> None:
    path = Path(path)
    _write_bytes(path, patch, "patch")
    log.info("Wrote %d-byte patch to %s", len(patch), path)


def write_patched_rom(patch: bytes, original: bytes, path: str | Path) -> PatchSummary:
    """Patch `original` fully in memory, then write the result to `path`.

    Parser errors propagate before the output file is opened, so a failed
    patch never leaves a partial ROM behind.
    """
    path = Path(path)
    patched, summary = patch_rom(patch, original)
    _write_bytes(path, patched, "patched ROM")
    log.info("Wrote %d-byte patched ROM to %s", len(patched), path)
    return summary
