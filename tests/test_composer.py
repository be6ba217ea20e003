from __future__ import annotations

import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from PIL import Image

from transit_board.logic.layout import AgencyRow, Layout, LineRow, TextRow
from transit_board.rendering.composer import (
    COLOR_BAND,
    COLOR_BLACK,
    COLOR_WHITE,
    FOOTER_HEIGHT,
    compose_error,
    compose_layout,
    error_chain,
)
from transit_board.rendering.emulator import frame_to_png_bytes, save_frame

WIDTH = 800
HEIGHT = 600
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


def _layout() -> Layout:
    return Layout(
        left=[
            TextRow("Muni"),
            AgencyRow("SF", "IB", [LineRow("N", "Caltrain", [2, 9]), LineRow("J", "Balboa Park", [4])]),
        ],
        right=[AgencyRow("BA", "S", [LineRow("YL", "SFO", [7, 22, 37])])],
        all_agencies={"SF": NOW, "BA": NOW},
    )


def test_compose_layout_size_and_mode() -> None:
    image = compose_layout(_layout(), WIDTH, HEIGHT, now=NOW, rotate=False)

    assert isinstance(image, Image.Image)
    assert image.size == (WIDTH, HEIGHT)
    assert image.mode == "L"


def test_compose_layout_rotates_for_portrait_panel() -> None:
    image = compose_layout(_layout(), WIDTH, HEIGHT, now=NOW)

    assert image.size == (HEIGHT, WIDTH)


def test_column_divider_and_footer_band() -> None:
    image = compose_layout(_layout(), WIDTH, HEIGHT, now=NOW, rotate=False)
    pixels = image.load()

    divider = [pixels[x, HEIGHT // 2] for x in range(WIDTH // 2 - 1, WIDTH // 2 + 2)]
    assert COLOR_BLACK in divider
    assert pixels[2, HEIGHT - 2] == COLOR_BAND
    assert pixels[WIDTH - 2, HEIGHT - FOOTER_HEIGHT - 10] == COLOR_WHITE


def test_empty_layout_smoke() -> None:
    image = compose_layout(Layout(left=[], right=[]), WIDTH, HEIGHT, now=NOW, rotate=False)

    assert image.size == (WIDTH, HEIGHT)


def test_compose_error_smoke() -> None:
    try:
        try:
            raise ValueError("bad timestamp")
        except ValueError as exc:
            raise RuntimeError("loading data for agency SF") from exc
    except RuntimeError as error:
        image = compose_error(error, WIDTH, HEIGHT)

    assert image.size == (HEIGHT, WIDTH)


def test_error_chain_follows_causes() -> None:
    cause = ValueError("bad timestamp")
    error = RuntimeError("load failed")
    error.__cause__ = cause

    assert error_chain(error) == ["load failed", "bad timestamp"]
    assert error_chain("plain") == ["plain"]


def test_save_frame_writes_png(tmp_path) -> None:
    image = compose_layout(_layout(), WIDTH, HEIGHT, now=NOW)
    path = tmp_path / "out" / "image.png"

    save_frame(image, str(path))

    assert path.exists()
    assert [p.name for p in (tmp_path / "out").iterdir()] == ["image.png"]
    with Image.open(path) as loaded:
        assert loaded.size == image.size


def test_failed_save_keeps_previous_frame_and_cleans_up(tmp_path) -> None:
    path = tmp_path / "image.png"
    previous = compose_layout(_layout(), WIDTH, HEIGHT, now=NOW, rotate=False)
    save_frame(previous, str(path))
    before = path.read_bytes()
    frame = compose_layout(_layout(), WIDTH, HEIGHT, now=NOW)

    with patch.object(Image.Image, "save", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            save_frame(frame, str(path))

    assert path.read_bytes() == before
    assert [p.name for p in tmp_path.iterdir()] == ["image.png"]


def test_save_frame_uses_unique_temp_files(tmp_path) -> None:
    path = tmp_path / "image.png"
    image = compose_layout(_layout(), WIDTH, HEIGHT, now=NOW)
    temp_names: list[str] = []
    real_replace = os.replace

    def record_replace(src, dst) -> None:
        temp_names.append(str(src))
        real_replace(src, dst)

    with patch("transit_board.rendering.emulator.os.replace", side_effect=record_replace):
        save_frame(image, str(path))
        save_frame(image, str(path))

    assert len(set(temp_names)) == 2
    assert all(name.endswith(".tmp") for name in temp_names)
    assert [p.name for p in tmp_path.iterdir()] == ["image.png"]


def test_frame_to_png_bytes() -> None:
    data = frame_to_png_bytes(compose_layout(_layout(), WIDTH, HEIGHT, now=NOW))

    assert data.startswith(b"\x89PNG")
