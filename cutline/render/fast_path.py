"""Single-clip fast path detection.

A timeline holding exactly one video clip that covers the whole duration
needs no compositing: trimming and scaling the source directly skips the
filtergraph and one generation of re-encoding.
"""

from dataclasses import dataclass

from cutline.render.layers import ClassifiedLayers, LayerType
from cutline.schemas.project import Asset

# Tolerance (seconds) for "covers the whole timeline"
FULL_SPAN_EPSILON = 0.01


@dataclass(frozen=True)
class FastPathPlan:
    """Trim window of the single source asset."""

    asset: Asset
    in_point: float
    clip_duration: float


def detect_fast_path(layers: ClassifiedLayers, duration: float) -> FastPathPlan | None:
    """Return a FastPathPlan if the layers reduce to one full-length video."""
    if layers.image_count or layers.text_count:
        return None

    videos = layers.of_type(LayerType.VIDEO)
    if len(videos) != 1:
        return None

    clip = videos[0].clip
    if clip.start > FULL_SPAN_EPSILON or clip.end < duration - FULL_SPAN_EPSILON:
        return None

    return FastPathPlan(
        asset=videos[0].asset,
        in_point=clip.effective_in_point,
        clip_duration=clip.timeline_duration,
    )
