import zlib
from dataclasses import dataclass
from pathlib import Path

from .errors import HeaderError, RomLoadError
from .header import HEADER_SIZE, NesHeader, describe_header


@dataclass
class RomImage:
    """A ROM file split into its 16-byte header and the body that follows."""

    header: bytes
    body: bytes

    @property
    def crc32(self) -> int:
        return crc32(self.body)

    def to_bytes(self) -> bytes:
        return self.header + self.body


def read_rom_bytes(path: str | Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise RomLoadError(f"Cannot read ROM {path}: {e.strerror or e}") from e


def write_rom_bytes(path: str | Path, data: bytes) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_bytes(data)


def crc32(data: bytes) -> int:
    return zlib.crc32(data) & 0xFFFFFFFF


def split_header(data: bytes) -> RomImage:
    if len(data) < HEADER_SIZE:
        raise RomLoadError(f"ROM too small to contain a header ({len(data)} bytes)")
    return RomImage(header=bytes(data[:HEADER_SIZE]), body=bytes(data[HEADER_SIZE:]))


def load_rom(path: str | Path) -> RomImage:
    return split_header(read_rom_bytes(path))


def write_rom(path: str | Path, header: bytes | NesHeader, body: bytes) -> None:
    write_rom_bytes(path, bytes(header) + body)


def inspect_rom(path: str | Path) -> dict:
    rom = load_rom(path)
    info = {"size": len(rom.header) + len(rom.body), "crc32": rom.crc32}
    try:
        info["header"] = describe_header(NesHeader(rom.header))
    except HeaderError as e:
        info["header_error"] = str(e)
    return info
