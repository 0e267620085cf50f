"""
Pytest fixtures for cutline tests.

No test starts FFmpeg: pipelines are built with a recording runner instead
of the real subprocess call.
"""

from pathlib import Path

import pytest
from factories import RecordingRunner, clip, image_asset, project, track, video_asset

from cutline.render.encoder import EngineConfig
from cutline.render.pipeline import ExportPipeline
from cutline.schemas.project import ExportOptions, Project, Transform


@pytest.fixture
def engine_config(tmp_path: Path) -> EngineConfig:
    """Engine configuration writing into the test's tmp directory."""
    return EngineConfig(
        ffmpeg_path="/usr/bin/ffmpeg",
        temp_dir=tmp_path / "tmp",
        output_dir=tmp_path / "output",
        output_url_prefix="/output",
        media_roots=(str(tmp_path / "media"),),
        font_candidates=(),
    )


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def pipeline(engine_config: EngineConfig, runner: RecordingRunner) -> ExportPipeline:
    return ExportPipeline(engine_config, runner=runner)


@pytest.fixture
def export_options() -> ExportOptions:
    """1280x720 @30fps H.264/AAC MP4."""
    return ExportOptions(width=1280, height=720, fps=30, title="My Export", format="mp4")


@pytest.fixture
def single_video_project() -> Project:
    """One full-length video clip trimmed from 2s to 12s of its source."""
    return project(
        tracks=[track("t-video", 0, [clip("c-video", "vid-asset", "video", 0, 10, in_point=2, out_point=12)])],
        assets=[video_asset()],
    )


@pytest.fixture
def video_with_image_project() -> Project:
    """Full-length video plus a half-size image on a higher track from 2s to 5s."""
    return project(
        tracks=[
            track("t-video", 0, [clip("c-video", "vid-asset", "video", 0, 10, in_point=2, out_point=12)]),
            track(
                "t-image",
                1,
                [
                    clip(
                        "c-image",
                        "img-asset",
                        "image",
                        2,
                        5,
                        track_id="t-image",
                        transform=Transform(x=100, y=100, scale_x=0.5, scale_y=0.5),
                    )
                ],
            ),
        ],
        assets=[video_asset(), image_asset()],
    )
