"""Exceptions raised by the patch engine and the ROM/header helpers."""


class PatchError(Exception):
    """Base class for IPS patch failures."""


class PatchIOError(PatchError, OSError):
    """A patch or patched ROM could not be opened, read or written."""


class ShortReadError(PatchIOError):
    """Fewer bytes were read than the file reported."""

    def __init__(self, path, expected: int, got: int):
        super().__init__(f"Short read on {path}: expected {expected} bytes, got {got}")
        self.path = path
        self.expected = expected
        self.got = got


class InvalidPatchError(PatchError, ValueError):
    """The buffer does not start with the IPS magic."""


class TruncatedPatchError(PatchError, ValueError):
    """A record (or the EOF marker) runs past the end of the patch buffer."""

    def __init__(self, message: str, position: int):
        super().__init__(f"{message} (patch offset 0x{position:X})")
        self.position = position


class BufferOverflowError(PatchError, IndexError):
    """An apply-mode write would land outside the target buffer."""


class HeaderError(ValueError):
    """Invalid NES header, or a header edit it cannot hold."""


class RomLoadError(RuntimeError):
    """Raised when a ROM file cannot be loaded or split."""
