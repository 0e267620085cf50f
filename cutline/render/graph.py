"""Composition graph builder.

Folds classified layers (bottom to top) into an immutable chain of FFmpeg
filtergraph nodes. Each layer is drawn over the running composite, so node
order is stacking order:

    [0:v] backdrop ──► base ──► ov0 ──► txt1 ──► ov2 ──► ... (output pad)
                        ▲        ▲               ▲
                      vid0      (drawtext)      img2

Nodes are small tagged records; turning them into FFmpeg's textual syntax
happens only in ``GraphNode.render`` / ``CompositionGraph.render`` so label
and ordering logic can be checked without string parsing.

Input slots: 0 is the backdrop (added by the encoder), then one slot per
distinct video asset in first-use order, then one per distinct image asset.
"""

import functools
import logging
from dataclasses import dataclass, field, replace
from enum import Enum

from PIL import ImageColor

from cutline.render.geometry import CanvasMapping, format_number
from cutline.render.layers import ClassifiedLayers, LayerOp, LayerType, resolve_text

logger = logging.getLogger(__name__)

BACKDROP_INPUT_INDEX = 0
BASE_LABEL = "base"
DEFAULT_TEXT_COLOR = "0xffffff"

# Argument keys whose values are quoted (and escaped) in the filtergraph text
_QUOTED_KEYS = frozenset({"enable", "text", "fontfile"})


class NodeKind(Enum):
    """Kinds of nodes in a composition graph."""

    BACKDROP = "backdrop"
    VIDEO_SOURCE = "video_source"
    IMAGE_SOURCE = "image_source"
    OVERLAY = "overlay"
    DRAWTEXT = "drawtext"
    PALETTE = "palette"


def escape_drawtext_text(text: str) -> str:
    """Escape a string for a single-quoted drawtext ``text`` value.

    ``%`` starts a drawtext expansion sequence, so it is escaped like the
    backslash.
    """
    return (
        text.replace("\\", "\\\\")
        .replace("'", "'\\\\\\''")
        .replace("\n", "\\n")
        .replace("%", "\\%")
    )


def _escape_quoted(value: str) -> str:
    return value.replace("'", "'\\\\\\''")


def build_enable_expr(start_s: float, end_s: float) -> str:
    """Time gate visible on the closed interval [start_s, end_s]."""
    return f"gte(t,{format_number(start_s)})*lte(t,{format_number(end_s)})"


@dataclass(frozen=True)
class Filter:
    """One filter with ordered arguments; ``None`` keys are positional."""

    name: str
    args: tuple[tuple[str | None, str], ...] = ()

    def arg(self, key: str) -> str | None:
        for k, v in self.args:
            if k == key:
                return v
        return None

    def positional(self) -> tuple[str, ...]:
        return tuple(v for k, v in self.args if k is None)

    def render(self) -> str:
        if not self.args:
            return self.name
        parts = []
        for key, value in self.args:
            if key in _QUOTED_KEYS:
                escaped = escape_drawtext_text(value) if key == "text" else _escape_quoted(value)
                value = f"'{escaped}'"
            parts.append(value if key is None else f"{key}={value}")
        return f"{self.name}=" + ":".join(parts)


def _filter(name: str, *positional: object, **named: object) -> Filter:
    args: list[tuple[str | None, str]] = [(None, str(v)) for v in positional]
    args.extend((k, str(v)) for k, v in named.items())
    return Filter(name, tuple(args))


def scale_and_letterbox(width: int, height: int) -> tuple[Filter, ...]:
    """Fit inside width x height keeping aspect ratio, pad the rest centred."""
    return (
        _filter("scale", width, height, force_original_aspect_ratio="decrease"),
        _filter("pad", width, height, "(ow-iw)/2", "(oh-ih)/2"),
    )


@dataclass(frozen=True)
class GraphNode:
    """A linear filter chain from input pads to output pads."""

    kind: NodeKind
    inputs: tuple[str, ...]
    filters: tuple[Filter, ...]
    outputs: tuple[str, ...]
    clip_id: str | None = None

    @property
    def output(self) -> str:
        return self.outputs[0]

    @property
    def enable(self) -> str | None:
        """Time gate of an overlay/drawtext node."""
        for f in reversed(self.filters):
            value = f.arg("enable")
            if value is not None:
                return value
        return None

    def find(self, name: str) -> Filter | None:
        for f in self.filters:
            if f.name == name:
                return f
        return None

    def render(self) -> str:
        ins = "".join(f"[{label}]" for label in self.inputs)
        outs = "".join(f"[{label}]" for label in self.outputs)
        return ins + ",".join(f.render() for f in self.filters) + outs


@dataclass(frozen=True)
class MediaInput:
    """An external file/URL opened once and shared by every layer using it."""

    index: int
    asset_id: str
    source: str
    type: LayerType


@dataclass(frozen=True)
class CompositionGraph:
    """Ordered filtergraph nodes plus the inputs they read."""

    nodes: tuple[GraphNode, ...]
    output: str
    media_inputs: tuple[MediaInput, ...]
    width: int
    height: int
    fps: float
    duration: float

    @property
    def audio_input(self) -> MediaInput | None:
        """The single audio-bearing input: the first video input, if any."""
        for media in self.media_inputs:
            if media.type is LayerType.VIDEO:
                return media
        return None

    def nodes_of(self, kind: NodeKind) -> tuple[GraphNode, ...]:
        return tuple(n for n in self.nodes if n.kind is kind)

    def with_gif_palette(self) -> "CompositionGraph":
        """Append palette generation so GIF output keeps its colours."""
        palette_nodes = gif_palette_nodes(self.output, "gif")
        return replace(self, nodes=self.nodes + palette_nodes, output="gif")

    def render(self) -> str:
        """FFmpeg filter_complex script text."""
        return ";\n".join(node.render() for node in self.nodes)


def gif_palette_nodes(source: str, output: str) -> tuple[GraphNode, ...]:
    return (
        GraphNode(NodeKind.PALETTE, (source,), (_filter("split"),), ("pal_src", "pal_gen")),
        GraphNode(NodeKind.PALETTE, ("pal_gen",), (_filter("palettegen"),), ("palette",)),
        GraphNode(NodeKind.PALETTE, ("pal_src", "palette"), (_filter("paletteuse"),), (output,)),
    )


def assign_media_inputs(layers: ClassifiedLayers) -> tuple[MediaInput, ...]:
    """Give each distinct video/image asset one input slot after the backdrop."""
    inputs: list[MediaInput] = []
    seen: set[str] = set()
    next_index = BACKDROP_INPUT_INDEX + 1
    for layer_type in (LayerType.VIDEO, LayerType.IMAGE):
        for op in layers.of_type(layer_type):
            if op.asset.id in seen:
                continue
            seen.add(op.asset.id)
            inputs.append(MediaInput(next_index, op.asset.id, op.asset.source, layer_type))
            next_index += 1
    return tuple(inputs)


@dataclass(frozen=True)
class _FoldState:
    nodes: tuple[GraphNode, ...]
    current: str


@dataclass(frozen=True)
class _FoldContext:
    mapping: CanvasMapping
    fps: float
    input_index: dict[str, int] = field(hash=False)
    font_file: str | None = None


def _text_color(fill: object) -> str:
    """CSS colour (#rgb, #rrggbb, names, rgb()) as FFmpeg 0xRRGGBB; white if unparseable."""
    if not isinstance(fill, str) or not fill:
        return DEFAULT_TEXT_COLOR
    try:
        rgb = ImageColor.getrgb(fill)[:3]
    except ValueError:
        logger.debug(f"[GRAPH] Unknown text colour {fill!r}, using white")
        return DEFAULT_TEXT_COLOR
    return "0x{:02x}{:02x}{:02x}".format(*rgb)


def _text_nodes(ctx: _FoldContext, op: LayerOp, label: str, current: str) -> tuple[GraphNode, ...]:
    text = resolve_text(op.clip, op.asset)
    if not text:
        return ()

    anchor = ctx.mapping.text_anchor(op.clip)
    params = op.clip.params or {}
    named: dict[str, object] = {
        "text": text,
        "fontsize": anchor.font_size,
        "fontcolor": _text_color(params.get("fill")),
        "x": anchor.x,
        "y": anchor.y,
    }
    if ctx.font_file:
        named["fontfile"] = ctx.font_file
    named["enable"] = build_enable_expr(op.clip.start, op.clip.end)

    drawtext = _filter("drawtext", **named)
    return (GraphNode(NodeKind.DRAWTEXT, (current,), (drawtext,), (label,), op.clip.id),)


def _image_nodes(ctx: _FoldContext, op: LayerOp, index: int, current: str) -> tuple[GraphNode, ...]:
    clip = op.clip
    rect = ctx.mapping.overlay_rect(clip)
    source_label = f"img{index}"
    source = GraphNode(
        NodeKind.IMAGE_SOURCE,
        (f"{ctx.input_index[op.asset.id]}:v",),
        (
            _filter("loop", -1, size=1, start=0),
            _filter("trim", 0, format_number(clip.timeline_duration)),
            _filter("setpts", "PTS-STARTPTS"),
            _filter("fps", format_number(ctx.fps)),
            _filter("scale", rect.w, rect.h),
        ),
        (source_label,),
        clip.id,
    )
    overlay = GraphNode(
        NodeKind.OVERLAY,
        (current, source_label),
        (_filter("overlay", rect.x, rect.y, enable=build_enable_expr(clip.start, clip.end)),),
        (f"ov{index}",),
        clip.id,
    )
    return source, overlay


def _video_nodes(ctx: _FoldContext, op: LayerOp, index: int, current: str) -> tuple[GraphNode, ...]:
    clip = op.clip
    mapping = ctx.mapping
    source_label = f"vid{index}"
    source = GraphNode(
        NodeKind.VIDEO_SOURCE,
        (f"{ctx.input_index[op.asset.id]}:v",),
        (
            _filter(
                "trim",
                format_number(clip.effective_in_point),
                format_number(clip.effective_out_point),
            ),
            _filter("setpts", "PTS-STARTPTS"),
            *scale_and_letterbox(mapping.output_width, mapping.output_height),
        ),
        (source_label,),
        clip.id,
    )
    overlay = GraphNode(
        NodeKind.OVERLAY,
        (current, source_label),
        (_filter("overlay", 0, 0, enable=build_enable_expr(clip.start, clip.end)),),
        (f"ov{index}",),
        clip.id,
    )
    return source, overlay


def _fold_layer(ctx: _FoldContext, state: _FoldState, step: tuple[int, LayerOp]) -> _FoldState:
    index, op = step
    if op.type is LayerType.TEXT:
        added = _text_nodes(ctx, op, f"txt{index}", state.current)
    elif op.type is LayerType.IMAGE:
        added = _image_nodes(ctx, op, index, state.current)
    else:
        added = _video_nodes(ctx, op, index, state.current)

    if not added:
        logger.debug(f"[GRAPH] Layer {index} (clip {op.clip.id}) produced no nodes, skipping")
        return state
    return _FoldState(nodes=state.nodes + added, current=added[-1].output)


def backdrop_node(width: int, height: int, scaled: bool) -> GraphNode:
    """Seed node: the synthetic input 0, scaled when it is a tiny colour image."""
    if scaled:
        filters = (_filter("scale", width, height), _filter("setsar", 1))
    else:
        filters = (_filter("copy"),)
    return GraphNode(NodeKind.BACKDROP, (f"{BACKDROP_INPUT_INDEX}:v",), filters, (BASE_LABEL,))


def build_composition_graph(
    layers: ClassifiedLayers,
    mapping: CanvasMapping,
    fps: float,
    duration: float,
    font_file: str | None = None,
    scaled_backdrop: bool = False,
) -> CompositionGraph:
    """Fold classified layers into a CompositionGraph.

    Args:
        layers: Classified layers, bottom first
        mapping: Project canvas to output mapping
        fps: Output frame rate (image layers are resampled to it)
        duration: Timeline duration in seconds
        font_file: Optional font for drawtext
        scaled_backdrop: Input 0 is a small image that must be scaled up

    Returns:
        Immutable CompositionGraph
    """
    media_inputs = assign_media_inputs(layers)
    ctx = _FoldContext(
        mapping=mapping,
        fps=fps,
        input_index={m.asset_id: m.index for m in media_inputs},
        font_file=font_file,
    )

    seed = _FoldState(
        nodes=(backdrop_node(mapping.output_width, mapping.output_height, scaled_backdrop),),
        current=BASE_LABEL,
    )
    final = functools.reduce(functools.partial(_fold_layer, ctx), enumerate(layers.layers), seed)

    logger.info(
        f"[GRAPH] {len(final.nodes)} nodes, {len(media_inputs)} media inputs, output=[{final.current}]"
    )
    return CompositionGraph(
        nodes=final.nodes,
        output=final.current,
        media_inputs=media_inputs,
        width=mapping.output_width,
        height=mapping.output_height,
        fps=fps,
        duration=duration,
    )
