"""Frame output helpers."""

from __future__ import annotations

import io
import os
import tempfile
from pathlib import Path

from PIL import Image


def frame_to_png_bytes(image: Image.Image) -> bytes:
    """Encode a frame as PNG."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def save_frame(image: Image.Image, path: str = "image.png") -> None:
    """Save a frame to disk as a PNG image, replacing any previous frame in one step.

    The frame goes to a uniquely named temp file beside the target first. A
    failed save removes that file and leaves the previous frame in place.
    """
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_name: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            dir=output_path.parent,
            prefix=output_path.name + ".",
            suffix=".tmp",
            delete=False,
        ) as handle:
            tmp_name = handle.name
            image.save(handle, format="PNG")
        os.replace(tmp_name, output_path)
        tmp_name = None
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass


__all__ = ["frame_to_png_bytes", "save_frame"]
