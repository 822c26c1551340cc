"""iNES / NES 2.0 header model.

Header layout (16 bytes):
    0-3   "NES" 0x1A
    4     PRG ROM size, 16 KiB units (LSB)
    5     CHR ROM size, 8 KiB units (LSB)
    6     mirroring, battery, trainer, four-screen, mapper D0-D3
    7     console type, NES 2.0 identifier, mapper D4-D7
    8     NES 2.0: mapper D8-D11, submapper | iNES: PRG RAM in 8 KiB units
    9     NES 2.0: PRG/CHR ROM size MSB nibbles | iNES: TV system in bit 0
    10    NES 2.0: PRG RAM / PRG NVRAM shift counts
    11    NES 2.0: CHR RAM / CHR NVRAM shift counts
    12    NES 2.0: CPU/PPU timing (TV system)
    13    NES 2.0: VS PPU type / VS hardware type
"""
import logging
from pathlib import Path
from typing import Any

import yaml

from .errors import HeaderError

log = logging.getLogger(__name__)

HEADER_SIZE = 16
NES_MAGIC = b"NES\x1a"

PRG_ROM_UNIT = 16 * 1024
CHR_ROM_UNIT = 8 * 1024

MIRRORING_NAMES = {0: "Horizontal", 1: "Vertical", 2: "Four screen"}
SYSTEM_NAMES = {0: "Home Console", 1: "VS. System", 2: "PlayChoice-10"}
TV_SYSTEM_NAMES = {0: "NTSC", 1: "PAL", 2: "NTSC/PAL"}
VS_PPU_NAMES = {
    0: "RP2C03B",
    1: "RP2C03G",
    2: "RP2C04-0001",
    3: "RP2C04-0002",
    4: "RP2C04-0003",
    5: "RP2C04-0004",
    6: "RC2C03B",
    7: "RC2C03C",
    8: "RC2C05-01",
    9: "RC2C05-02",
    10: "RC2C05-03",
    11: "RC2C05-04",
    12: "RC2C05-05",
}
VS_MODE_NAMES = {0: "Standard", 1: "RBI Baseball", 2: "TKO Boxing", 3: "Super Xevious"}

# Editable fields and their inclusive ranges. `version` comes first so a
# header can be switched to NES 2.0 before NES 2.0-only fields are written.
FIELD_RANGES = {
    "version": (1, 2),
    "mapper": (0, 4095),
    "submapper": (0, 15),
    "mirroring": (0, 2),
    "prgram_present": (0, 1),
    "trainer": (0, 1),
    "system": (0, 2),
    "tvsystem": (0, 2),
    "vsppu": (0, 12),
    "vsmode": (0, 3),
    "prgrom": (0, 4095),
    "prgram": (0, 14),
    "prgnvram": (0, 14),
    "chrrom": (0, 4095),
    "chrram": (0, 14),
    "chrnvram": (0, 14),
}


def shift_to_bytes(shift: int) -> int:
    """NES 2.0 RAM sizes are stored as 64 << shift, with 0 meaning none."""
    return 64 << shift if shift else 0


class NesHeader:
    def __init__(self, data: bytes):
        if len(data) < HEADER_SIZE or bytes(data[:4]) != NES_MAGIC:
            raise HeaderError("No header or invalid ROM: missing 'NES\\x1a' signature")
        self._data = bytearray(data[:HEADER_SIZE])

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def _set_bits(self, index: int, mask: int, value: int) -> None:
        self._data[index] = (self._data[index] & ~mask & 0xFF) | (value & mask)

    def _require_nes2(self, field: str) -> None:
        if self.version != 2:
            raise HeaderError(f"'{field}' needs an NES 2.0 header (set version to 2 first)")

    @property
    def version(self) -> int:
        return 2 if (self._data[7] & 0x0C) == 0x08 else 1

    @version.setter
    def version(self, value: int) -> None:
        self._set_bits(7, 0x0C, 0x08 if value == 2 else 0x00)

    @property
    def mapper(self) -> int:
        mapper = (self._data[6] >> 4) | (self._data[7] & 0xF0)
        if self.version == 2:
            mapper |= (self._data[8] & 0x0F) << 8
        return mapper

    @mapper.setter
    def mapper(self, value: int) -> None:
        if value > 0xFF:
            self._require_nes2("mapper > 255")
        self._set_bits(6, 0xF0, (value & 0x0F) << 4)
        self._set_bits(7, 0xF0, value & 0xF0)
        if self.version == 2:
            self._set_bits(8, 0x0F, value >> 8)

    @property
    def submapper(self) -> int:
        return self._data[8] >> 4 if self.version == 2 else 0

    @submapper.setter
    def submapper(self, value: int) -> None:
        self._require_nes2("submapper")
        self._set_bits(8, 0xF0, value << 4)

    @property
    def mirroring(self) -> int:
        if self._data[6] & 0x08:
            return 2
        return self._data[6] & 0x01

    @mirroring.setter
    def mirroring(self, value: int) -> None:
        if value == 2:
            self._set_bits(6, 0x09, 0x08)
        else:
            self._set_bits(6, 0x09, value)

    @property
    def prgram_present(self) -> int:
        return (self._data[6] >> 1) & 0x01

    @prgram_present.setter
    def prgram_present(self, value: int) -> None:
        self._set_bits(6, 0x02, value << 1)

    @property
    def trainer(self) -> int:
        return (self._data[6] >> 2) & 0x01

    @trainer.setter
    def trainer(self, value: int) -> None:
        self._set_bits(6, 0x04, value << 2)

    @property
    def system(self) -> int:
        return self._data[7] & 0x03

    @system.setter
    def system(self, value: int) -> None:
        self._set_bits(7, 0x03, value)

    @property
    def tvsystem(self) -> int:
        if self.version == 2:
            return self._data[12] & 0x03
        return self._data[9] & 0x01

    @tvsystem.setter
    def tvsystem(self, value: int) -> None:
        if self.version == 2:
            self._set_bits(12, 0x03, value)
        elif value == 2:
            raise HeaderError("iNES headers cannot mark a ROM as NTSC/PAL; set version to 2 first")
        else:
            self._set_bits(9, 0x01, value)

    @property
    def vsppu(self) -> int:
        return self._data[13] & 0x0F if self.version == 2 else 0

    @vsppu.setter
    def vsppu(self, value: int) -> None:
        self._require_nes2("vsppu")
        self._set_bits(13, 0x0F, value)

    @property
    def vsmode(self) -> int:
        return self._data[13] >> 4 if self.version == 2 else 0

    @vsmode.setter
    def vsmode(self, value: int) -> None:
        self._require_nes2("vsmode")
        self._set_bits(13, 0xF0, value << 4)

    @property
    def prgrom(self) -> int:
        units = self._data[4]
        if self.version == 2:
            units |= (self._data[9] & 0x0F) << 8
        return units

    @prgrom.setter
    def prgrom(self, value: int) -> None:
        if value > 0xFF:
            self._require_nes2("prgrom > 255")
        self._data[4] = value & 0xFF
        if self.version == 2:
            self._set_bits(9, 0x0F, value >> 8)

    @property
    def chrrom(self) -> int:
        units = self._data[5]
        if self.version == 2:
            units |= (self._data[9] & 0xF0) << 4
        return units

    @chrrom.setter
    def chrrom(self, value: int) -> None:
        if value > 0xFF:
            self._require_nes2("chrrom > 255")
        self._data[5] = value & 0xFF
        if self.version == 2:
            self._set_bits(9, 0xF0, (value >> 8) << 4)

    # RAM fields hold NES 2.0 shift counts.
    @property
    def prgram(self) -> int:
        return self._data[10] & 0x0F if self.version == 2 else 0

    @prgram.setter
    def prgram(self, value: int) -> None:
        self._require_nes2("prgram")
        self._set_bits(10, 0x0F, value)

    @property
    def prgnvram(self) -> int:
        return self._data[10] >> 4 if self.version == 2 else 0

    @prgnvram.setter
    def prgnvram(self, value: int) -> None:
        self._require_nes2("prgnvram")
        self._set_bits(10, 0xF0, value << 4)

    @property
    def chrram(self) -> int:
        return self._data[11] & 0x0F if self.version == 2 else 0

    @chrram.setter
    def chrram(self, value: int) -> None:
        self._require_nes2("chrram")
        self._set_bits(11, 0x0F, value)

    @property
    def chrnvram(self) -> int:
        return self._data[11] >> 4 if self.version == 2 else 0

    @chrnvram.setter
    def chrnvram(self, value: int) -> None:
        self._require_nes2("chrnvram")
        self._set_bits(11, 0xF0, value << 4)

    def prg_ram_bytes(self) -> int:
        if self.version == 2:
            return shift_to_bytes(self.prgram)
        # iNES stores 8 KiB units, 0 meaning one unit for compatibility
        return (self._data[8] or 1) * 8 * 1024

    def set_field(self, name: str, value: int) -> None:
        if name not in FIELD_RANGES:
            raise HeaderError(f"Unknown header field '{name}'")
        if isinstance(value, bool) or not isinstance(value, int):
            raise HeaderError(f"Header field '{name}' must be an integer, got {value!r}")
        lo, hi = FIELD_RANGES[name]
        if not lo <= value <= hi:
            raise HeaderError(f"Header field '{name}' must be {lo} to {hi}, got {value}")
        log.debug("Setting %s = %d", name, value)
        setattr(self, name, value)


def apply_edits(header: NesHeader, edits: dict[str, int]) -> NesHeader:
    """Apply field edits in FIELD_RANGES order, version first."""
    unknown = set(edits) - set(FIELD_RANGES)
    if unknown:
        raise HeaderError(f"Unknown header field(s): {', '.join(sorted(map(str, unknown)))}")
    for name in FIELD_RANGES:
        if name in edits:
            header.set_field(name, edits[name])
    return header


def load_header_edits(path: str | Path) -> dict[str, int]:
    """Load a YAML mapping of header field -> value.

    Example:
        version: 2
        mapper: 4
        mirroring: 1
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            edits = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise HeaderError(f"{path}: invalid YAML: {e}") from e
    if edits is None:
        return {}
    if not isinstance(edits, dict):
        raise HeaderError(f"{path}: expected a mapping of header fields, got {type(edits).__name__}")
    bad_keys = [k for k in edits if not isinstance(k, str)]
    if bad_keys:
        raise HeaderError(f"{path}: header field names must be strings, got {', '.join(map(repr, bad_keys))}")
    return edits


def describe_header(header: NesHeader) -> dict[str, Any]:
    info: dict[str, Any] = {
        "version": header.version,
        "header_type": "NES 2.0" if header.version == 2 else "iNES",
        "mapper": header.mapper,
        "prg_rom_bytes": header.prgrom * PRG_ROM_UNIT,
        "chr_rom_bytes": header.chrrom * CHR_ROM_UNIT,
        "prgram_present": bool(header.prgram_present),
        "mirroring": header.mirroring,
        "mirroring_name": MIRRORING_NAMES[header.mirroring],
        "trainer": bool(header.trainer),
        "system": header.system,
        "system_name": SYSTEM_NAMES.get(header.system, f"Unknown({header.system})"),
        "tvsystem": header.tvsystem,
        "tvsystem_name": TV_SYSTEM_NAMES.get(header.tvsystem, f"Unknown({header.tvsystem})"),
    }
    if header.prgram_present:
        info["prg_ram_bytes"] = header.prg_ram_bytes()
    if header.version == 2:
        info["submapper"] = header.submapper
        info["prg_nvram_bytes"] = shift_to_bytes(header.prgnvram)
        info["chr_ram_bytes"] = shift_to_bytes(header.chrram)
        info["chr_nvram_bytes"] = shift_to_bytes(header.chrnvram)
        if header.system == 1:
            info["vsppu"] = header.vsppu
            info["vsppu_name"] = VS_PPU_NAMES.get(header.vsppu, f"Unknown({header.vsppu})")
            info["vsmode"] = header.vsmode
            info["vsmode_name"] = VS_MODE_NAMES.get(header.vsmode, f"Unknown({header.vsmode})")
    return info
