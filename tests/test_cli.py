import pytest
from click.testing import CliRunner

from rom_surgeon.cli import main
from rom_surgeon.header import NesHeader
from rom_surgeon.patch_builder import build_ips_patch

HEADER = b"NES\x1a" + bytes([2, 1, 0x01, 0x00]) + bytes(8)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def rom_file(tmp_path):
    path = tmp_path / "game.nes"
    path.write_bytes(HEADER + bytes(range(64)))
    return path


def test_info(runner, rom_file):
    result = runner.invoke(main, ["info", "--rom", str(rom_file)])
    assert result.exit_code == 0, result.output
    assert "Size: 80 bytes" in result.output
    assert "Header Type: iNES" in result.output
    assert "Mapper: 0 (0x00)" in result.output
    assert "PRG ROM size in bytes: 32768" in result.output
    assert "Mirroring: Vertical" in result.output


def test_info_rejects_headerless_file(runner, tmp_path):
    path = tmp_path / "raw.bin"
    path.write_bytes(bytes(64))
    result = runner.invoke(main, ["info", "--rom", str(path)])
    assert result.exit_code == 1
    assert "invalid ROM" in result.output


def test_edit_with_options_and_yaml(runner, rom_file, tmp_path):
    edits = tmp_path / "edits.yaml"
    edits.write_text("version: 2\nmapper: 300\nmirroring: 0\n", encoding="utf-8")
    out = tmp_path / "edited.nes"
    result = runner.invoke(
        main, ["edit", "--rom", str(rom_file), "--out", str(out), "--edits", str(edits), "--mirroring", "2"]
    )
    assert result.exit_code == 0, result.output
    data = out.read_bytes()
    header = NesHeader(data[:16])
    assert header.version == 2
    assert header.mapper == 300
    assert header.mirroring == 2
    assert data[16:] == bytes(range(64))
    assert "Header Type: NES 2.0" in result.output


def test_edit_rejects_out_of_range_option(runner, rom_file, tmp_path):
    result = runner.invoke(main, ["edit", "--rom", str(rom_file), "--out", str(tmp_path / "x.nes"), "--mirroring", "3"])
    assert result.exit_code == 2
    assert not (tmp_path / "x.nes").exists()


def test_edit_nes2_field_on_ines(runner, rom_file, tmp_path):
    out = tmp_path / "x.nes"
    result = runner.invoke(main, ["edit", "--rom", str(rom_file), "--out", str(out), "--submapper", "1"])
    assert result.exit_code == 1
    assert "NES 2.0" in result.output
    assert not out.exists()


def test_edit_rejects_non_string_yaml_keys(runner, rom_file, tmp_path):
    edits = tmp_path / "edits.yaml"
    edits.write_text("1: 2\nmapper: 4\n", encoding="utf-8")
    out = tmp_path / "x.nes"
    result = runner.invoke(main, ["edit", "--rom", str(rom_file), "--out", str(out), "--edits", str(edits)])
    assert result.exit_code == 1
    assert "must be strings" in result.output
    assert not out.exists()


def test_build_then_apply_patch(runner, rom_file, tmp_path):
    modified = bytearray(rom_file.read_bytes())
    modified[20:24] = b"\xDE\xAD\xBE\xEF"
    modified += b"\x01\x02"
    mod_file = tmp_path / "hack.nes"
    mod_file.write_bytes(bytes(modified))
    patch_file = tmp_path / "hack.ips"
    out = tmp_path / "patched.nes"

    result = runner.invoke(
        main, ["build-patch", "--original", str(rom_file), "--modified", str(mod_file), "--out", str(patch_file)]
    )
    assert result.exit_code == 0, result.output
    assert patch_file.read_bytes().startswith(b"PATCH")

    result = runner.invoke(
        main, ["apply-patch", "--rom", str(rom_file), "--patch", str(patch_file), "--out", str(out)]
    )
    assert result.exit_code == 0, result.output
    assert out.read_bytes() == bytes(modified)
    assert "All patches: 2" in result.output


def test_apply_patch_body_only_keeps_header(runner, rom_file, tmp_path):
    body = rom_file.read_bytes()[16:]
    new_body = b"\xFF" + body[1:]
    patch_file = tmp_path / "body.ips"
    patch_file.write_bytes(build_ips_patch(body, new_body))
    out = tmp_path / "patched.nes"
    result = runner.invoke(
        main, ["apply-patch", "--rom", str(rom_file), "--patch", str(patch_file), "--out", str(out), "--body-only"]
    )
    assert result.exit_code == 0, result.output
    assert out.read_bytes() == HEADER + new_body


def test_apply_invalid_patch(runner, rom_file, tmp_path):
    patch_file = tmp_path / "bad.ips"
    patch_file.write_bytes(b"BPS1\x00\x00")
    out = tmp_path / "patched.nes"
    result = runner.invoke(main, ["apply-patch", "--rom", str(rom_file), "--patch", str(patch_file), "--out", str(out)])
    assert result.exit_code == 1
    assert "not an IPS patch" in result.output
    assert not out.exists()


def test_apply_truncated_patch(runner, rom_file, tmp_path):
    patch_file = tmp_path / "cut.ips"
    patch_file.write_bytes(b"PATCH\x00\x00\x10\x00\x64" + bytes(10))
    out = tmp_path / "patched.nes"
    result = runner.invoke(main, ["apply-patch", "--rom", str(rom_file), "--patch", str(patch_file), "--out", str(out)])
    assert result.exit_code == 1
    assert "no ROM written" in result.output
    assert not out.exists()


def test_patch_info(runner, tmp_path):
    patch_file = tmp_path / "mixed.ips"
    patch_file.write_bytes(b"PATCH" + bytes.fromhex("000010 0002 AABB") + bytes.fromhex("000100 0000 0020 FF") + b"EOF")
    result = runner.invoke(main, ["patch-info", "--patch", str(patch_file)])
    assert result.exit_code == 0, result.output
    assert "0x000010  literal  len=2" in result.output
    assert "0x000100  RLE      len=32 fill=0xFF" in result.output
    assert "RLE patches: 1" in result.output
    assert "Bytes replaced: 34" in result.output


def test_patch_info_size_covers_furthest_record(runner, tmp_path):
    patch_file = tmp_path / "two.ips"
    patch_file.write_bytes(b"PATCH" + bytes.fromhex("000200 0001 01") + bytes.fromhex("000010 0002 AABB") + b"EOF")
    result = runner.invoke(main, ["patch-info", "--patch", str(patch_file)])
    assert result.exit_code == 0, result.output
    assert "All patches: 2" in result.output
    assert "Patched size: 513" in result.output
