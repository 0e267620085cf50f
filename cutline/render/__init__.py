from cutline.render.encoder import EncoderInvocation, EngineConfig, InvocationBuilder
from cutline.render.fast_path import FastPathPlan, detect_fast_path
from cutline.render.geometry import CanvasMapping, format_number
from cutline.render.graph import CompositionGraph, GraphNode, NodeKind, build_composition_graph
from cutline.render.layers import ClassifiedLayers, LayerOp, LayerType, classify_layers
from cutline.render.pipeline import CompositionPlan, ExportPipeline, run_ffmpeg

__all__ = [
    "CanvasMapping",
    "ClassifiedLayers",
    "CompositionGraph",
    "CompositionPlan",
    "EncoderInvocation",
    "EngineConfig",
    "ExportPipeline",
    "FastPathPlan",
    "GraphNode",
    "InvocationBuilder",
    "LayerOp",
    "LayerType",
    "NodeKind",
    "build_composition_graph",
    "classify_layers",
    "detect_fast_path",
    "format_number",
    "run_ffmpeg",
]
