"""Tests for option handling and the command line."""

import os

import pytest

from comic2epub.app_service import (
    ApplicationService, default_output_path, default_title, resolve_output_path, validate_limit_mb,
)
from comic2epub.cli import main
from comic2epub.dtos import ConversionOptions
from comic2epub.exceptions import ConfigError, NoImagesFoundError
from comic2epub.profiles import PALETTE_4, describe_profiles, get_profile


def test_default_output_path(comic_dir, comic_zip):
    assert default_output_path(str(comic_dir)) == f"{comic_dir}.epub"
    assert default_output_path(str(comic_zip)) == str(comic_zip.with_suffix(".epub"))


def test_resolve_output_path(comic_zip, tmp_path):
    assert resolve_output_path(str(comic_zip)) == str(comic_zip.with_suffix(".epub"))
    assert resolve_output_path(str(comic_zip), "/somewhere/book.EPUB") == "/somewhere/book.EPUB"

    out_dir = tmp_path / "out"
    out_dir.mkdir()
    assert resolve_output_path(str(comic_zip), str(out_dir)) == os.path.join(str(out_dir), "MyComic.epub")

    with pytest.raises(ConfigError):
        resolve_output_path(str(comic_zip), str(tmp_path / "missing_dir"))


def test_default_title():
    assert default_title("/books/My Comic.epub") == "My Comic"


@pytest.mark.parametrize("limit", [0, 20, 300])
def test_valid_limits(limit):
    assert validate_limit_mb(limit) == limit


@pytest.mark.parametrize("limit", [-1, 1, 19])
def test_invalid_limits(limit):
    with pytest.raises(ConfigError):
        validate_limit_mb(limit)


def test_profiles():
    assert get_profile("K1").palette == PALETTE_4
    assert get_profile("K2").gray_levels == 15
    assert (get_profile("KV").width, get_profile("KV").height) == (1072, 1448)
    with pytest.raises(ConfigError):
        get_profile("Nook")
    assert "Kobo Elipsa" in describe_profiles()


def test_prepare_options_defaults(comic_dir):
    options, profile, image_options = ApplicationService().prepare_options(
        ConversionOptions(input=str(comic_dir), profile="KPW"))

    assert options.output == f"{comic_dir}.epub"
    assert options.title == "MyComic"
    assert options.quality == 85
    assert options.algo == "default"
    assert (image_options.view_width, image_options.view_height) == (758, 1024)
    assert len(image_options.palette) == 16


@pytest.mark.parametrize("overrides", [
    {"profile": "Unknown"},
    {"quality": 101},
    {"quality": 0},
    {"algo": "sepia"},
    {"dither": "atkinson"},
    {"limit_mb": 5},
    {"sort_path_mode": 4},
    {"workers": -2},
    {"failure_policy": "retry"},
])
def test_prepare_options_rejects(comic_dir, overrides):
    values = dict(input=str(comic_dir), profile="K1")
    values.update(overrides)
    with pytest.raises(ConfigError):
        ApplicationService().prepare_options(ConversionOptions(**values))


def test_prepare_options_missing_input(tmp_path):
    with pytest.raises(ConfigError):
        ApplicationService().prepare_options(ConversionOptions(input=str(tmp_path / "nope"), profile="K1"))


def test_convert_propagates_no_images(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    with pytest.raises(NoImagesFoundError):
        ApplicationService().convert(ConversionOptions(input=str(empty), profile="K1", show_progress=False))


def test_convert_writes_epub(comic_zip, tmp_path):
    output = tmp_path / "book.epub"
    result = ApplicationService().convert(ConversionOptions(
        input=str(comic_zip), output=str(output), profile="K1", workers=2, show_progress=False))

    assert output.exists()
    assert result.total_images == 4
    assert all(p.gray_levels == 4 for p in result.pages)


def test_cli_dry_run(comic_dir, capsys):
    code = main(["--input", str(comic_dir), "--profile", "KV", "--dry", "--no-progress"])
    out = capsys.readouterr().out

    assert code == 0
    assert "Dry run: 3 images" in out
    assert out.index("page2.png") < out.index("page10.png")
    assert not os.path.exists(f"{comic_dir}.epub")


def test_cli_convert(comic_dir, tmp_path, capsys):
    output = tmp_path / "cli.epub"
    code = main(["-i", str(comic_dir), "-o", str(output), "-p", "K578", "--quality", "60", "--no-progress"])

    assert code == 0
    assert output.exists()
    assert "3 pages, quality 60" in capsys.readouterr().out


def test_cli_errors(comic_dir, capsys):
    assert main(["--input", str(comic_dir), "--profile", "KV", "--limitmb", "10"]) == 1
    assert "LimitMb should be 0 or >= 20" in capsys.readouterr().err
    assert main(["--input", str(comic_dir), "--profile", "XX"]) == 1
    assert main(["--profile", "KV"]) == 1


def test_cli_list_profiles(capsys):
    assert main(["--list-profiles"]) == 0
    assert "KPW5" in capsys.readouterr().out
