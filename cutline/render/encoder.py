"""FFmpeg invocation building.

Turns a fast-path plan or a composition graph plus export options into the
argument list for one FFmpeg run, and owns the temporary files that run
needs:

- the filter_complex script (one per general-path invocation, deleted after
  the run settles)
- backdrop PNGs for non-black project backgrounds (one per colour, shared
  read-only by all invocations, released on shutdown)
"""

import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4

from PIL import Image, ImageColor

from cutline.config import Settings
from cutline.exceptions import CleanupError
from cutline.render.fast_path import FastPathPlan
from cutline.render.geometry import format_number
from cutline.render.graph import BACKDROP_INPUT_INDEX, CompositionGraph, scale_and_letterbox
from cutline.schemas.project import ExportOptions

logger = logging.getLogger(__name__)

VIDEO_ENCODERS = {"h264": "libx264", "hevc": "libx265"}
GIF_PALETTE_CHAIN = "split[s0][s1];[s0]palettegen[p];[s1][p]paletteuse"
# Containers that accept uncompressed PCM audio
PCM_CONTAINERS = frozenset({"mov"})
BACKDROP_IMAGE_SIZE = (16, 16)


@dataclass(frozen=True)
class EngineConfig:
    """Where the engine lives and where its files go.

    Passed explicitly to the invocation builder so parallel instances (tests,
    workers) can run with different directories.
    """

    ffmpeg_path: str = "ffmpeg"
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "cutline")
    output_dir: Path = Path("output")
    output_url_prefix: str = "/output"
    media_roots: tuple[str, ...] = ()
    font_candidates: tuple[str, ...] = ()
    threads: int = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            temp_dir=Path(settings.render_temp_dir),
            output_dir=Path(settings.render_output_dir),
            output_url_prefix=settings.render_output_url_prefix,
            media_roots=tuple(settings.media_roots),
            font_candidates=tuple(settings.font_candidates),
            threads=settings.render_ffmpeg_threads,
        )

    def resolve_font_file(self) -> str | None:
        """First font candidate that exists on this machine."""
        for candidate in self.font_candidates:
            if os.path.exists(candidate):
                return candidate
        return None


@dataclass(frozen=True)
class EncoderInvocation:
    """Concrete FFmpeg arguments plus the temporary files they reference."""

    args: tuple[str, ...]
    output_path: Path
    output_url: str
    fast_path: bool
    script_path: Path | None = None

    @property
    def temp_files(self) -> tuple[Path, ...]:
        return (self.script_path,) if self.script_path else ()


def backdrop_color(background_color: str | None) -> tuple[int, int, int] | None:
    """RGB of a non-default (non-black) project background, else None.

    Accepts any CSS colour string Pillow understands (#rgb, #rrggbb, names,
    rgb(), hsl()). Unparseable colours fall back to the default black.
    """
    if not background_color:
        return None
    try:
        rgb = ImageColor.getrgb(background_color)[:3]
    except ValueError:
        logger.warning(f"[ENCODE] Unknown background colour {background_color!r}, using black")
        return None
    if rgb == (0, 0, 0):
        return None
    return rgb


class BackdropCache:
    """Tiny solid-colour PNGs, created once per colour and reused read-only."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self._paths: dict[tuple[int, int, int], Path] = {}
        self._lock = threading.Lock()

    def get(self, rgb: tuple[int, int, int]) -> Path:
        with self._lock:
            path = self._paths.get(rgb)
            if path is not None and path.exists():
                return path

            self.directory.mkdir(parents=True, exist_ok=True)
            path = self.directory / "cutline-backdrop-{:02x}{:02x}{:02x}.png".format(*rgb)
            if not path.exists():
                # Write then rename so concurrent readers never see a partial file
                tmp_path = path.with_name(f"{path.stem}.{uuid4().hex}.tmp")
                Image.new("RGB", BACKDROP_IMAGE_SIZE, rgb).save(tmp_path, format="PNG")
                os.replace(tmp_path, path)
                logger.info(f"[ENCODE] Created backdrop image {path}")
            self._paths[rgb] = path
            return path

    def release(self) -> None:
        """Delete every backdrop this cache created."""
        with self._lock:
            paths = list(self._paths.values())
            self._paths.clear()
        for path in paths:
            remove_temp_file(path)


def remove_temp_file(path: Path) -> None:
    """Delete a temporary file; failures are logged and swallowed."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        err = CleanupError(str(path), str(e))
        logger.warning(f"[CLEANUP] {err.message}")


def build_output_filename(title: str, export_format: str) -> str:
    """``<title>_<8 hex>.<ext>``, whitespace runs collapsed to underscores."""
    stem = re.sub(r"\s+", "_", title.strip())
    stem = stem.replace("/", "_").replace("\\", "_")
    if not stem or stem in (".", ".."):
        stem = "export"
    return f"{stem}_{uuid4().hex[:8]}.{export_format}"


def video_codec_args(options: ExportOptions) -> list[str]:
    if options.format == "gif":
        return ["-c:v", "gif", "-loop", "0"]
    return [
        "-c:v", VIDEO_ENCODERS[options.video_codec],
        "-b:v", f"{options.video_bitrate_kbps}k",
        "-r", format_number(options.fps),
        "-pix_fmt", "yuv420p",
        "-movflags", "+faststart",
    ]


def audio_codec_args(options: ExportOptions) -> list[str]:
    if options.format == "gif":
        return ["-an"]
    if options.audio_codec == "pcm":
        if options.format in PCM_CONTAINERS:
            return ["-c:a", "pcm_s16le", "-ar", str(options.audio_sample_rate)]
        logger.info(f"[ENCODE] PCM audio is not supported in {options.format}, using AAC")
    return [
        "-c:a", "aac",
        "-b:a", f"{options.audio_bitrate_kbps}k",
        "-ar", str(options.audio_sample_rate),
    ]


class InvocationBuilder:
    """Builds FFmpeg invocations for one engine configuration."""

    def __init__(self, config: EngineConfig, backdrops: BackdropCache | None = None):
        self.config = config
        self.backdrops = backdrops or BackdropCache(config.temp_dir)

    def _base_args(self) -> list[str]:
        args = [self.config.ffmpeg_path, "-y"]
        if self.config.threads > 0:
            args.extend(["-threads", str(self.config.threads)])
        return args

    def _output_target(self, options: ExportOptions) -> tuple[Path, str]:
        filename = build_output_filename(options.title, options.format)
        self.config.output_dir.mkdir(parents=True, exist_ok=True)
        output_url = f"{self.config.output_url_prefix.rstrip('/')}/{filename}"
        return self.config.output_dir / filename, output_url

    def build_fast_path(self, plan: FastPathPlan, options: ExportOptions) -> EncoderInvocation:
        """Trim + scale the single source directly, no filter script."""
        video_filter = ",".join(f.render() for f in scale_and_letterbox(options.width, options.height))
        if options.format == "gif":
            video_filter += f",fps={format_number(options.fps)},{GIF_PALETTE_CHAIN}"

        output_path, output_url = self._output_target(options)
        args = [
            *self._base_args(),
            "-ss", format_number(plan.in_point),
            "-t", format_number(plan.clip_duration),
            "-i", plan.asset.source,
            "-vf", video_filter,
            *video_codec_args(options),
            *audio_codec_args(options),
            str(output_path),
        ]
        logger.info(f"[ENCODE] Fast path: {plan.asset.id} from {plan.in_point}s for {plan.clip_duration}s")
        return EncoderInvocation(
            args=tuple(args),
            output_path=output_path,
            output_url=output_url,
            fast_path=True,
        )

    def _backdrop_input_args(self, graph: CompositionGraph, background_color: str | None) -> list[str]:
        duration = format_number(graph.duration)
        rgb = backdrop_color(background_color)
        if rgb is None:
            return [
                "-f", "lavfi",
                "-i", f"color=c=black:s={graph.width}x{graph.height}:d={duration}:r={format_number(graph.fps)}",
            ]
        return [
            "-loop", "1",
            "-framerate", format_number(graph.fps),
            "-t", duration,
            "-i", str(self.backdrops.get(rgb)),
        ]

    def _write_script(self, graph: CompositionGraph) -> Path:
        self.config.temp_dir.mkdir(parents=True, exist_ok=True)
        fd, path = tempfile.mkstemp(prefix="cutline-filter-", suffix=".txt", dir=self.config.temp_dir)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(graph.render())
        return Path(path)

    def build_graph(
        self,
        graph: CompositionGraph,
        options: ExportOptions,
        background_color: str | None = None,
    ) -> EncoderInvocation:
        """Backdrop + media inputs, filter script on disk, mapped output pads."""
        if options.format == "gif":
            graph = graph.with_gif_palette()

        inputs = self._backdrop_input_args(graph, background_color)
        for index, media in enumerate(graph.media_inputs, start=BACKDROP_INPUT_INDEX + 1):
            if media.index != index:
                raise ValueError(f"media input {media.asset_id} expected at slot {index}, got {media.index}")
            inputs.extend(["-i", media.source])

        maps = ["-map", f"[{graph.output}]", "-t", format_number(graph.duration)]
        audio = graph.audio_input
        if audio is not None and options.format != "gif":
            maps.extend(["-map", f"{audio.index}:a?"])

        output_path, output_url = self._output_target(options)
        script_path = self._write_script(graph)
        args = [
            *self._base_args(),
            *inputs,
            "-filter_complex_script", str(script_path),
            *maps,
            *video_codec_args(options),
            *audio_codec_args(options),
            str(output_path),
        ]
        logger.info(
            f"[ENCODE] Graph path: {len(graph.nodes)} nodes, {len(graph.media_inputs)} media inputs, "
            f"script={script_path}"
        )
        return EncoderInvocation(
            args=tuple(args),
            output_path=output_path,
            output_url=output_url,
            fast_path=False,
            script_path=script_path,
        )

    def cleanup(self, invocation: EncoderInvocation) -> None:
        """Delete the invocation's temporary files. Never raises."""
        for path in invocation.temp_files:
            remove_temp_file(path)
