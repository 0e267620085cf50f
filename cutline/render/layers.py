"""Layer classification: timeline clips -> renderable layer operations.

Tracks are stacked by ascending ``order`` (higher order is drawn on top).
Clips whose asset is missing or whose source the engine cannot read are
dropped here rather than failing the whole export: an editor timeline may
legitimately hold clips that are still uploading.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from cutline.exceptions import (
    NoRenderableLayersError,
    UnreachableSourceError,
    UnresolvedAssetReferenceError,
)
from cutline.schemas.project import Asset, Clip, Project, Track

logger = logging.getLogger(__name__)


class LayerType(Enum):
    """Renderable layer kinds."""

    VIDEO = "video"
    IMAGE = "image"
    TEXT = "text"


@dataclass(frozen=True)
class LayerOp:
    """One renderable contribution derived from a timeline clip."""

    type: LayerType
    clip: Clip
    asset: Asset
    track: Track


@dataclass(frozen=True)
class ClassifiedLayers:
    """Layers in back-to-front order plus per-type counts."""

    layers: tuple[LayerOp, ...]

    def of_type(self, layer_type: LayerType) -> tuple[LayerOp, ...]:
        return tuple(op for op in self.layers if op.type is layer_type)

    @property
    def video_count(self) -> int:
        return len(self.of_type(LayerType.VIDEO))

    @property
    def image_count(self) -> int:
        return len(self.of_type(LayerType.IMAGE))

    @property
    def text_count(self) -> int:
        return len(self.of_type(LayerType.TEXT))

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self):
        return iter(self.layers)


def is_engine_readable(source: str, media_roots: Sequence[str] = ()) -> bool:
    """Whether FFmpeg can open ``source`` directly.

    http(s) URLs always qualify. Local paths qualify only when they live under
    one of ``media_roots``; blob URLs and bare file names never do.
    """
    if not source:
        return False
    if source.startswith(("http://", "https://")):
        return True
    if not media_roots or "://" in source:
        return False

    path = Path(source)
    if not path.is_absolute():
        return False
    resolved = path.resolve()
    for root in media_roots:
        if resolved.is_relative_to(Path(root).resolve()):
            return True
    return False


def visible_tracks(project: Project) -> list[Track]:
    """Non-hidden tracks, back to front. ``sorted`` is stable, so ties keep array order."""
    return sorted((t for t in project.tracks if not t.hidden), key=lambda t: t.order)


def resolve_text(clip: Clip, asset: Asset) -> str:
    """Displayed string of a text clip: ``params.text``, else the asset's initial text."""
    text = (clip.params or {}).get("text")
    if text is None and asset.text_meta is not None:
        text = asset.text_meta.initial_text
    return str(text) if text else ""


def _classify_clip(
    clip: Clip,
    asset: Asset,
    media_roots: Sequence[str],
) -> LayerType | None:
    if clip.kind == "text" and asset.kind == "text":
        if not resolve_text(clip, asset):
            logger.debug(f"[CLASSIFY] Skipping text clip {clip.id}: empty text")
            return None
        return LayerType.TEXT

    if clip.kind in ("video", "image") and asset.kind == clip.kind:
        if not is_engine_readable(asset.source, media_roots):
            err = UnreachableSourceError(asset.id, asset.source)
            logger.debug(f"[CLASSIFY] Skipping clip {clip.id}: {err.message}")
            return None
        return LayerType(clip.kind)

    logger.debug(
        f"[CLASSIFY] Skipping clip {clip.id}: clip kind '{clip.kind}' "
        f"not renderable with asset kind '{asset.kind}'"
    )
    return None


def classify_layers(project: Project, media_roots: Sequence[str] = ()) -> ClassifiedLayers:
    """Partition the project's clips into typed layer operations.

    Args:
        project: Timeline project
        media_roots: Local directories the engine may read from

    Returns:
        ClassifiedLayers in stacking order (first = bottom)

    Raises:
        NoRenderableLayersError: If no clip survives classification
    """
    layers: list[LayerOp] = []

    for track in visible_tracks(project):
        for clip in track.clips:
            asset = project.find_asset(clip.asset_id)
            if asset is None:
                err = UnresolvedAssetReferenceError(clip.id, clip.asset_id)
                logger.debug(f"[CLASSIFY] Skipping clip: {err.message}")
                continue

            layer_type = _classify_clip(clip, asset, media_roots)
            if layer_type is not None:
                layers.append(LayerOp(type=layer_type, clip=clip, asset=asset, track=track))

    classified = ClassifiedLayers(tuple(layers))
    logger.info(
        f"[CLASSIFY] project={project.id}: {classified.video_count} video, "
        f"{classified.image_count} image, {classified.text_count} text layers"
    )

    if not classified.layers:
        raise NoRenderableLayersError()

    return classified
