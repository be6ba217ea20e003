"""Rendering utilities for the e-ink arrival board."""

from transit_board.rendering.composer import compose_error, compose_layout
from transit_board.rendering.emulator import frame_to_png_bytes, save_frame

__all__ = ["compose_error", "compose_layout", "frame_to_png_bytes", "save_frame"]
