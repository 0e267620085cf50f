"""Project-canvas to output-pixel geometry.

The editor positions clips on a canvas of the project's resolution; the export
may target any other resolution. Everything here is a pure function of the
clip and the two sizes.
"""

import math
from dataclasses import dataclass

from cutline.schemas.project import Clip

DEFAULT_FONT_SIZE = 32
MIN_FONT_SIZE = 12


def js_round(value: float) -> int:
    """Round half up, the way the editor (JavaScript Math.round) does."""
    return math.floor(value + 0.5)


def format_number(value: float, decimals: int = 3) -> str:
    """Render a number for FFmpeg with at most ``decimals`` fractional digits.

    FFmpeg's expression parser rejects overly long float literals, so every
    time value written into a filtergraph goes through here.
    """
    text = f"{value:.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


def _font_size(value: object) -> float:
    """Editor font size; anything missing or non-numeric falls back to the default."""
    try:
        size = float(value)
    except (TypeError, ValueError):
        return DEFAULT_FONT_SIZE
    if not math.isfinite(size) or size <= 0:
        return DEFAULT_FONT_SIZE
    return size


@dataclass(frozen=True)
class Rect:
    """Output-space rectangle in whole pixels."""

    x: int
    y: int
    w: int
    h: int


@dataclass(frozen=True)
class TextAnchor:
    """Output-space drawtext position and font size."""

    x: int
    y: int
    font_size: int


@dataclass(frozen=True)
class CanvasMapping:
    """Maps project-canvas coordinates onto the export resolution."""

    project_width: int
    project_height: int
    output_width: int
    output_height: int

    def __post_init__(self) -> None:
        if min(self.project_width, self.project_height, self.output_width, self.output_height) <= 0:
            raise ValueError("canvas and output dimensions must be positive")

    def overlay_rect(self, clip: Clip) -> Rect:
        """Rectangle of a video/image layer in output pixels."""
        t = clip.effective_transform
        proj_w, proj_h = self.project_width, self.project_height
        out_w, out_h = self.output_width, self.output_height

        w = proj_w * abs(t.scale_x)
        h = proj_h * abs(t.scale_y)
        return Rect(
            x=js_round(t.x / proj_w * out_w),
            y=js_round(t.y / proj_h * out_h),
            w=js_round(w / proj_w * out_w),
            h=js_round(h / proj_h * out_h),
        )

    def text_anchor(self, clip: Clip) -> TextAnchor:
        """Top-left drawtext position and scaled font size of a text layer."""
        t = clip.effective_transform
        params = clip.params or {}
        font_size = _font_size(params.get("fontSize"))

        return TextAnchor(
            x=js_round((t.x - t.anchor_x) / self.project_width * self.output_width),
            y=js_round((t.y - t.anchor_y) / self.project_height * self.output_height),
            # Floor keeps captions readable on small exports
            font_size=max(MIN_FONT_SIZE, js_round(font_size / self.project_height * self.output_height)),
        )
