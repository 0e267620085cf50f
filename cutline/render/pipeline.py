"""
Export pipeline: timeline project -> FFmpeg run -> output URL.

1. Classify clips into layers (fails before any file I/O if nothing renders)
2. Pick the single-clip fast path, or fold layers into a composition graph
3. Build the FFmpeg invocation (writes the filter script for the graph path)
4. Run FFmpeg and wait for it
5. Delete temporary files, whatever the outcome

Steps 1-2 are pure and safe to run concurrently; step 4 is the only await.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from cutline.exceptions import EncoderInvocationError
from cutline.render.encoder import (
    BackdropCache,
    EncoderInvocation,
    EngineConfig,
    InvocationBuilder,
    backdrop_color,
)
from cutline.render.fast_path import FastPathPlan, detect_fast_path
from cutline.render.geometry import CanvasMapping
from cutline.render.graph import CompositionGraph, build_composition_graph
from cutline.render.layers import ClassifiedLayers, classify_layers
from cutline.schemas.project import ExportOptions, Project

logger = logging.getLogger(__name__)

EngineRunner = Callable[[Sequence[str]], Awaitable[None]]

# Keep error messages readable: FFmpeg prints the whole banner to stderr
STDERR_TAIL_CHARS = 2000


async def run_ffmpeg(args: Sequence[str]) -> None:
    """Run FFmpeg to completion.

    Raises:
        EncoderInvocationError: If the binary is missing or exits non-zero
    """
    logger.info(f"[ENGINE] {' '.join(args)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise EncoderInvocationError(f"FFmpeg binary not found: {args[0]}") from e

    try:
        _, stderr = await proc.communicate()
    except asyncio.CancelledError:
        # Caller timed out or gave up: do not leave FFmpeg running
        logger.warning(f"[ENGINE] Cancelled, killing FFmpeg pid={proc.pid}")
        if proc.returncode is None:
            proc.kill()
        await proc.wait()
        raise

    if proc.returncode != 0:
        stderr_text = stderr.decode("utf-8", errors="replace").strip()
        logger.error(f"[ENGINE] FFmpeg failed ({proc.returncode}): {stderr_text}")
        raise EncoderInvocationError(stderr_text[-STDERR_TAIL_CHARS:], returncode=proc.returncode)


@dataclass(frozen=True)
class CompositionPlan:
    """Compiled export: exactly one of ``fast_path`` / ``graph`` is set."""

    layers: ClassifiedLayers
    fast_path: FastPathPlan | None = None
    graph: CompositionGraph | None = None

    @property
    def is_fast_path(self) -> bool:
        return self.fast_path is not None


class ExportPipeline:
    """Compiles timeline projects and drives FFmpeg for one configuration."""

    def __init__(
        self,
        config: EngineConfig,
        runner: EngineRunner | None = None,
        backdrops: BackdropCache | None = None,
    ):
        self.config = config
        self.builder = InvocationBuilder(config, backdrops)
        self._runner = runner or run_ffmpeg

    def compile(self, project: Project, options: ExportOptions) -> CompositionPlan:
        """Classify, then choose fast path or graph. No file I/O.

        Raises:
            NoRenderableLayersError: If no clip can be rendered
        """
        layers = classify_layers(project, self.config.media_roots)
        duration = project.duration

        fast_path = detect_fast_path(layers, duration)
        if fast_path is not None:
            logger.info(f"[PLAN] project={project.id}: fast path")
            return CompositionPlan(layers=layers, fast_path=fast_path)

        mapping = CanvasMapping(project.width, project.height, options.width, options.height)
        font_file = self.config.resolve_font_file() if layers.text_count else None
        graph = build_composition_graph(
            layers,
            mapping,
            fps=options.fps,
            duration=duration,
            font_file=font_file,
            scaled_backdrop=backdrop_color(project.background_color) is not None,
        )
        logger.info(f"[PLAN] project={project.id}: graph with {len(layers)} layers")
        return CompositionPlan(layers=layers, graph=graph)

    def build_invocation(
        self, plan: CompositionPlan, project: Project, options: ExportOptions
    ) -> EncoderInvocation:
        if plan.fast_path is not None:
            return self.builder.build_fast_path(plan.fast_path, options)
        return self.builder.build_graph(plan.graph, options, project.background_color)

    async def export(self, project: Project, options: ExportOptions) -> str:
        """Render ``project`` and return the relative URL of the output file.

        Raises:
            NoRenderableLayersError: Nothing to render (raised before any I/O)
            EncoderInvocationError: FFmpeg failed (raised after cleanup)
        """
        plan = self.compile(project, options)
        invocation = self.build_invocation(plan, project, options)
        try:
            await self._runner(invocation.args)
        finally:
            self.builder.cleanup(invocation)

        logger.info(f"[EXPORT] project={project.id} -> {invocation.output_url}")
        return invocation.output_url

    def close(self) -> None:
        """Release shared resources (backdrop images)."""
        self.builder.backdrops.release()
