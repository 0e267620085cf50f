"""Tests for FFmpeg invocation building."""

import dataclasses
import re
from pathlib import Path

import pytest
from factories import clip, image_asset, project, track, video_asset

from cutline.render.encoder import (
    BackdropCache,
    EncoderInvocation,
    InvocationBuilder,
    audio_codec_args,
    backdrop_color,
    build_output_filename,
    video_codec_args,
)
from cutline.render.fast_path import detect_fast_path
from cutline.render.geometry import CanvasMapping
from cutline.render.graph import build_composition_graph
from cutline.render.layers import classify_layers
from cutline.schemas.project import ExportOptions


def _value_after(args, flag):
    return args[list(args).index(flag) + 1]


def _graph_for(p, options, scaled_backdrop=False):
    layers = classify_layers(p)
    mapping = CanvasMapping(p.width, p.height, options.width, options.height)
    return build_composition_graph(
        layers, mapping, fps=options.fps, duration=p.duration, scaled_backdrop=scaled_backdrop
    )


class TestOutputFilename:
    """Tests for build_output_filename."""

    def test_whitespace_collapsed_and_suffix(self):
        name = build_output_filename("My  summer\tvlog", "mp4")
        assert re.fullmatch(r"My_summer_vlog_[0-9a-f]{8}\.mp4", name)

    def test_gif_extension(self):
        assert build_output_filename("clip", "gif").endswith(".gif")

    def test_path_separators_removed(self):
        name = build_output_filename("../etc/passwd", "mov")
        assert "/" not in name
        assert name.endswith(".mov")

    def test_empty_title(self):
        assert build_output_filename("   ", "mp4").startswith("export_")

    def test_names_are_unique(self):
        assert build_output_filename("x", "mp4") != build_output_filename("x", "mp4")


class TestCodecArgs:
    """Tests for codec/container options."""

    def test_h264_aac(self):
        options = ExportOptions(width=1280, height=720, video_bitrate_kbps=5000, audio_bitrate_kbps=128)
        assert video_codec_args(options) == [
            "-c:v", "libx264", "-b:v", "5000k", "-r", "30",
            "-pix_fmt", "yuv420p", "-movflags", "+faststart",
        ]
        assert audio_codec_args(options) == ["-c:a", "aac", "-b:a", "128k", "-ar", "48000"]

    def test_hevc(self):
        options = ExportOptions(width=1280, height=720, video_codec="hevc")
        assert _value_after(video_codec_args(options), "-c:v") == "libx265"

    def test_fractional_frame_rate(self):
        options = ExportOptions(width=1280, height=720, fps=29.97)
        assert _value_after(video_codec_args(options), "-r") == "29.97"
        assert _value_after(video_codec_args(ExportOptions(width=1280, height=720)), "-r") == "30"

    def test_pcm_in_mov(self):
        options = ExportOptions(width=1280, height=720, format="mov", audio_codec="pcm", audio_sample_rate=44100)
        assert audio_codec_args(options) == ["-c:a", "pcm_s16le", "-ar", "44100"]

    def test_pcm_in_mp4_falls_back_to_aac(self):
        options = ExportOptions(width=1280, height=720, format="mp4", audio_codec="pcm")
        assert _value_after(audio_codec_args(options), "-c:a") == "aac"

    def test_gif(self):
        options = ExportOptions(width=320, height=180, format="gif")
        assert video_codec_args(options) == ["-c:v", "gif", "-loop", "0"]
        assert audio_codec_args(options) == ["-an"]


class TestBackdrop:
    """Tests for background colour handling."""

    @pytest.mark.parametrize("color", [None, "", "#000", "#000000", "black", "not-a-colour"])
    def test_default_backgrounds(self, color):
        assert backdrop_color(color) is None

    def test_custom_background(self):
        assert backdrop_color("#336699") == (0x33, 0x66, 0x99)
        assert backdrop_color("white") == (255, 255, 255)

    def test_cache_creates_once_and_releases(self, tmp_path: Path):
        cache = BackdropCache(tmp_path)
        first = cache.get((10, 20, 30))
        second = cache.get((10, 20, 30))
        assert first == second
        assert first.exists()
        assert first.name == "cutline-backdrop-0a141e.png"
        assert list(tmp_path.glob("*.tmp")) == []

        cache.release()
        assert not first.exists()


class TestBuildFastPath:
    """Tests for the single-clip invocation."""

    def test_trim_scale_and_codecs(self, engine_config, single_video_project, export_options):
        plan = detect_fast_path(classify_layers(single_video_project), single_video_project.duration)
        invocation = InvocationBuilder(engine_config).build_fast_path(plan, export_options)

        args = invocation.args
        assert invocation.fast_path
        assert invocation.script_path is None
        assert invocation.temp_files == ()
        assert args[:2] == ("/usr/bin/ffmpeg", "-y")
        assert _value_after(args, "-ss") == "2"
        assert _value_after(args, "-t") == "10"
        assert _value_after(args, "-i") == "https://cdn.example.com/media/intro.mp4"
        assert _value_after(args, "-vf") == (
            "scale=1280:720:force_original_aspect_ratio=decrease,pad=1280:720:(ow-iw)/2:(oh-ih)/2"
        )
        assert "-filter_complex_script" not in args
        assert args[-1] == str(invocation.output_path)
        assert invocation.output_path.parent == engine_config.output_dir
        assert invocation.output_path.name.endswith(".mp4")
        assert invocation.output_url == f"/output/{invocation.output_path.name}"
        assert not engine_config.temp_dir.exists() or not any(engine_config.temp_dir.iterdir())

    def test_gif_palette(self, engine_config, single_video_project):
        options = ExportOptions(width=480, height=270, fps=12, format="gif", title="loop")
        plan = detect_fast_path(classify_layers(single_video_project), single_video_project.duration)
        invocation = InvocationBuilder(engine_config).build_fast_path(plan, options)
        assert _value_after(invocation.args, "-vf").endswith(
            ",fps=12,split[s0][s1];[s0]palettegen[p];[s1][p]paletteuse"
        )
        assert invocation.output_path.suffix == ".gif"

    def test_threads_option(self, engine_config, single_video_project, export_options):
        config = dataclasses.replace(engine_config, threads=2)
        plan = detect_fast_path(classify_layers(single_video_project), single_video_project.duration)
        invocation = InvocationBuilder(config).build_fast_path(plan, export_options)
        assert invocation.args[2:4] == ("-threads", "2")


class TestBuildGraph:
    """Tests for the general filtergraph invocation."""

    def test_inputs_script_and_maps(self, engine_config, video_with_image_project, export_options):
        graph = _graph_for(video_with_image_project, export_options)
        invocation = InvocationBuilder(engine_config).build_graph(graph, export_options)
        args = list(invocation.args)

        assert not invocation.fast_path
        # backdrop first, then the video, then the image
        inputs = [args[i + 1] for i, a in enumerate(args) if a == "-i"]
        assert inputs == [
            "color=c=black:s=1280x720:d=10:r=30",
            "https://cdn.example.com/media/intro.mp4",
            "https://cdn.example.com/media/logo.png",
        ]
        assert args[args.index("-i") - 2 : args.index("-i")] == ["-f", "lavfi"]

        script = invocation.script_path
        assert script is not None and script.exists()
        assert script.parent == engine_config.temp_dir
        assert script.read_text(encoding="utf-8") == graph.render()
        assert _value_after(args, "-filter_complex_script") == str(script)

        map_values = [args[i + 1] for i, a in enumerate(args) if a == "-map"]
        assert map_values == ["[ov1]", "1:a?"]
        assert _value_after(args, "-t") == "10"
        assert "-filter_complex" not in args

    def test_no_audio_map_without_video(self, engine_config, export_options):
        p = project(tracks=[track("t", 0, [clip("i", "logo", "image", 0, 3)])], assets=[image_asset("logo")])
        invocation = InvocationBuilder(engine_config).build_graph(_graph_for(p, export_options), export_options)
        map_values = [invocation.args[i + 1] for i, a in enumerate(invocation.args) if a == "-map"]
        assert map_values == ["[ov0]"]

    def test_custom_background_uses_backdrop_image(self, engine_config, video_with_image_project, export_options):
        graph = _graph_for(video_with_image_project, export_options, scaled_backdrop=True)
        builder = InvocationBuilder(engine_config)
        invocation = builder.build_graph(graph, export_options, background_color="#112233")
        args = list(invocation.args)

        first_input = args.index("-i")
        assert args[first_input - 6 : first_input] == ["-loop", "1", "-framerate", "30", "-t", "10"]
        backdrop = Path(args[first_input + 1])
        assert backdrop.exists()
        assert backdrop.parent == engine_config.temp_dir
        # shared backdrops are not per-invocation temp files
        assert invocation.temp_files == (invocation.script_path,)

    def test_gif_graph(self, engine_config, video_with_image_project):
        options = ExportOptions(width=640, height=360, format="gif", title="anim")
        graph = _graph_for(video_with_image_project, options)
        invocation = InvocationBuilder(engine_config).build_graph(graph, options)
        args = list(invocation.args)
        assert [args[i + 1] for i, a in enumerate(args) if a == "-map"] == ["[gif]"]
        assert "-an" in args
        assert "paletteuse" in invocation.script_path.read_text(encoding="utf-8")

    def test_cleanup_removes_script(self, engine_config, video_with_image_project, export_options):
        builder = InvocationBuilder(engine_config)
        invocation = builder.build_graph(_graph_for(video_with_image_project, export_options), export_options)
        builder.cleanup(invocation)
        assert not invocation.script_path.exists()
        # second cleanup is a no-op
        builder.cleanup(invocation)

    def test_cleanup_failure_is_swallowed(self, engine_config, monkeypatch, tmp_path: Path):
        script = tmp_path / "script.txt"
        script.write_text("x")

        def fail_unlink(self, missing_ok=False):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(Path, "unlink", fail_unlink)
        invocation = EncoderInvocation(
            args=(), output_path=tmp_path / "o.mp4", output_url="/output/o.mp4", fast_path=False, script_path=script
        )
        InvocationBuilder(engine_config).cleanup(invocation)
