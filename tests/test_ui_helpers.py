"""Tests for the window's formatting and selection helpers."""

import pytest

pytest.importorskip("PyQt6.QtWidgets")

from ui_main import expand_selection, files_base_dir, format_log_message, format_size, format_time  # noqa: E402


def test_format_size():
    assert format_size(512) == "512.0 B"
    assert format_size(2048) == "2.0 KB"
    assert format_size(10 * 1024 * 1024) == "10.0 MB"
    assert format_size(3 * 1024 ** 3) == "3.00 GB"


def test_format_time():
    assert format_time(42) == "42 s"
    assert format_time(125) == "2 min 5 s"
    assert format_time(3725) == "1 h 2 m 5 s"


def test_format_log_message_humanizes_bytes():
    assert format_log_message("Chunk size 6291456 B") == "Chunk size 6.0 MB"
    assert format_log_message("Uploaded b/o (12 B)") == "Uploaded b/o (12 B)"
    assert format_log_message("no sizes here") == "no sizes here"


def test_expand_selection_skips_hidden(tmp_path):
    (tmp_path / "dir" / "nested").mkdir(parents=True)
    (tmp_path / "dir" / "a.txt").write_text("a")
    (tmp_path / "dir" / "nested" / "b.txt").write_text("b")
    (tmp_path / "dir" / "._a.txt").write_text("x")
    (tmp_path / "single.txt").write_text("s")
    (tmp_path / ".hidden").write_text("h")

    files = expand_selection([str(tmp_path / "dir"), str(tmp_path / "single.txt"), str(tmp_path / ".hidden")])

    assert sorted(files) == sorted([
        str(tmp_path / "dir" / "a.txt"),
        str(tmp_path / "dir" / "nested" / "b.txt"),
        str(tmp_path / "single.txt"),
    ])


def test_files_base_dir_same_for_one_or_many_picks(tmp_path):
    folder = tmp_path / "holiday"
    (folder / "raw").mkdir(parents=True)
    for name in ("a.jpg", "b.jpg"):
        (folder / name).write_bytes(b"x")
    (folder / "raw" / "c.dng").write_bytes(b"x")

    assert files_base_dir([str(folder / "a.jpg")]) == str(folder)
    assert files_base_dir([str(folder / "a.jpg"), str(folder / "b.jpg")]) == str(folder)
    assert files_base_dir([str(folder / "a.jpg"), str(folder / "raw" / "c.dng")]) == str(folder)
