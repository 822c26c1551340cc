import logging

import click

from . import ips, patch_builder, patch_io, rom_utils
from .errors import HeaderError, PatchError, RomLoadError
from .header import FIELD_RANGES, NesHeader, apply_edits, describe_header, load_header_edits

FIELD_HELP = {
    "version": "Header version (1 = iNES, 2 = NES 2.0)",
    "mapper": "Mapper number",
    "submapper": "Submapper number (NES 2.0)",
    "mirroring": "Mirroring (0 = horizontal, 1 = vertical, 2 = four screen)",
    "prgram_present": "PRG RAM / battery present bit",
    "trainer": "512-byte trainer present bit",
    "system": "System type (0 = home console, 1 = VS. System, 2 = PlayChoice-10)",
    "tvsystem": "TV system (0 = NTSC, 1 = PAL, 2 = NTSC/PAL)",
    "vsppu": "VS. System PPU chip (NES 2.0)",
    "vsmode": "VS. System PPU mode (NES 2.0)",
    "prgrom": "PRG ROM size in 16 KiB units",
    "prgram": "PRG RAM size as a shift count (NES 2.0)",
    "prgnvram": "PRG NVRAM size as a shift count (NES 2.0)",
    "chrrom": "CHR ROM size in 8 KiB units",
    "chrram": "CHR RAM size as a shift count (NES 2.0)",
    "chrnvram": "CHR NVRAM size as a shift count (NES 2.0)",
}


def _echo_header(hdr: dict) -> None:
    click.echo(f"Header Type: {hdr['header_type']}")
    click.echo(f"Mapper: {hdr['mapper']} (0x{hdr['mapper']:02x})")
    if "submapper" in hdr:
        click.echo(f"Submapper: {hdr['submapper']} (0x{hdr['submapper']:02x})")
    click.echo(f"PRG ROM size in bytes: {hdr['prg_rom_bytes']}")
    if hdr["prgram_present"]:
        click.echo(f"PRG RAM size in bytes: {hdr['prg_ram_bytes']}")
        if "prg_nvram_bytes" in hdr:
            click.echo(f"PRG NVRAM size in bytes: {hdr['prg_nvram_bytes']}")
    if hdr["chr_rom_bytes"]:
        click.echo(f"CHR ROM size in bytes: {hdr['chr_rom_bytes']}")
    elif "chr_ram_bytes" in hdr:
        click.echo(f"CHR RAM size in bytes: {hdr['chr_ram_bytes']}")
        click.echo(f"CHR NVRAM size in bytes: {hdr['chr_nvram_bytes']}")
    else:
        click.echo("CHR RAM: Present")
    click.echo(f"Mirroring: {hdr['mirroring_name']}")
    click.echo(f"512-byte trainer: {'Present' if hdr['trainer'] else 'None'}")
    click.echo(f"System: {hdr['system_name']}")
    if "vsppu_name" in hdr:
        click.echo(f"VS. System PPU: {hdr['vsppu_name']}")
        click.echo(f"VS. System Mode: {hdr['vsmode_name']}")
    click.echo(f"TV System: {hdr['tvsystem_name']}")


def _echo_summary(summary: ips.PatchSummary) -> None:
    click.echo(f"Bytes replaced: {summary.bytes_replaced}")
    click.echo(f"All patches: {summary.records}")
    click.echo(f"RLE patches: {summary.rle_records}")
    click.echo(f"Patched size: {summary.patched_size}")


def _load_rom(path) -> rom_utils.RomImage:
    try:
        return rom_utils.load_rom(path)
    except RomLoadError as e:
        raise click.ClickException(str(e))


def _load_valid_patch(path) -> bytes:
    try:
        patch = patch_io.load_patch(path)
    except PatchError as e:
        raise click.ClickException(str(e))
    if not ips.validate_patch(patch):
        raise click.ClickException(f"{path} is not an IPS patch (missing 'PATCH' header)")
    return patch


@click.group()
@click.option("-v", "--verbose", count=True, help="Log patch activity (-vv for every record)")
def main(verbose):
    """NES ROM header editor and IPS patch tool."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )


@main.command()
@click.option("--rom", type=click.Path(exists=True, dir_okay=False), required=True, help="Path to ROM")
def info(rom):
    """Print the file size, body CRC32 and the decoded header."""
    try:
        rom_info = rom_utils.inspect_rom(rom)
    except RomLoadError as e:
        raise click.ClickException(str(e))
    if "header_error" in rom_info:
        raise click.ClickException(rom_info["header_error"])
    click.echo(f"Size: {rom_info['size']} bytes")
    click.echo(f"CRC: {rom_info['crc32']:X}")
    _echo_header(rom_info["header"])


def header_field_options(f):
    for name, (lo, hi) in reversed(FIELD_RANGES.items()):
        f = click.option(
            f"--{name}", type=click.IntRange(lo, hi), default=None, help=f"{FIELD_HELP[name]} ({lo}-{hi})"
        )(f)
    return f


@main.command()
@click.option("--rom", type=click.Path(exists=True, dir_okay=False), required=True, help="Path to ROM")
@click.option("--out", type=click.Path(dir_okay=False), required=True, help="Output ROM with the edited header")
@click.option("--edits", type=click.Path(exists=True, dir_okay=False), default=None, help="YAML file of header field values")
@header_field_options
def edit(rom, out, edits, **fields):
    """Edit header fields and write a new ROM. Options override --edits."""
    image = _load_rom(rom)
    try:
        header = NesHeader(image.header)
        changes = load_header_edits(edits) if edits else {}
        changes.update({name: value for name, value in fields.items() if value is not None})
        apply_edits(header, changes)
    except HeaderError as e:
        raise click.ClickException(str(e))
    try:
        rom_utils.write_rom(out, header, image.body)
    except OSError as e:
        raise click.ClickException(f"Cannot write {out}: {e.strerror or e}")
    click.echo(f"Wrote edited ROM → {out}")
    click.echo(f"CRC: {image.crc32:X}")
    _echo_header(describe_header(header))


@main.command("apply-patch")
@click.option("--rom", type=click.Path(exists=True, dir_okay=False), required=True)
@click.option("--patch", type=click.Path(exists=True, dir_okay=False), required=True, help="IPS patch")
@click.option("--out", type=click.Path(dir_okay=False), required=True, help="Output patched ROM")
@click.option("--body-only", is_flag=True, help="Patch offsets address the ROM body; keep the original header")
def apply_patch(rom, patch, out, body_only):
    """Apply an IPS patch to a ROM."""
    patch_bytes = _load_valid_patch(patch)
    try:
        if body_only:
            image = _load_rom(rom)
            patched, summary = ips.patch_rom(patch_bytes, image.body)
            rom_utils.write_rom(out, image.header, patched)
        else:
            summary = patch_io.write_patched_rom(patch_bytes, rom_utils.read_rom_bytes(rom), out)
    except RomLoadError as e:
        raise click.ClickException(str(e))
    except PatchError as e:
        raise click.ClickException(f"Patch failed, no ROM written: {e}")
    except OSError as e:
        raise click.ClickException(f"Cannot write {out}: {e.strerror or e}")
    click.echo(f"Patched ROM written: {out}")
    _echo_summary(summary)


@main.command("build-patch")
@click.option("--original", type=click.Path(exists=True), required=True)
@click.option("--modified", type=click.Path(exists=True), required=True)
@click.option("--out", type=click.Path(dir_okay=False), required=True)
@click.option("--body-only", is_flag=True, help="Diff ROM bodies only, ignoring the headers")
def build_patch(original, modified, out, body_only):
    """Build an IPS patch that turns ORIGINAL into MODIFIED."""
    if body_only:
        orig = _load_rom(original).body
        mod = _load_rom(modified).body
    else:
        try:
            orig = rom_utils.read_rom_bytes(original)
            mod = rom_utils.read_rom_bytes(modified)
        except RomLoadError as e:
            raise click.ClickException(str(e))
    if len(mod) < len(orig):
        click.echo(
            f"Warning: modified ROM is {len(orig) - len(mod)} bytes shorter; IPS cannot truncate, the tail is kept",
            err=True,
        )
    try:
        patch_bytes = patch_builder.build_ips_patch(orig, mod)
        patch_io.write_patch(patch_bytes, out)
    except (PatchError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"IPS patch written: {out} ({len(patch_bytes)} bytes)")


@main.command("patch-info")
@click.option("--patch", type=click.Path(exists=True, dir_okay=False), required=True, help="IPS patch")
def patch_info(patch):
    """List the records of an IPS patch."""
    patch_bytes = _load_valid_patch(patch)
    try:
        summary = ips.scan_patch(patch_bytes)
    except PatchError as e:
        raise click.ClickException(str(e))
    for record in ips.iter_records(patch_bytes):
        if record.rle:
            click.echo(f"0x{record.offset:06X}  RLE      len={record.length} fill=0x{record.fill:02X}")
        else:
            click.echo(f"0x{record.offset:06X}  literal  len={record.length}")
    _echo_summary(summary)


if __name__ == "__main__":
    main()
