from cutline.schemas.project import (
    Asset,
    Clip,
    ExportOptions,
    Project,
    TextMeta,
    Track,
    Transform,
)
from cutline.schemas.render import RenderJobRequest, RenderJobResponse

__all__ = [
    "Asset",
    "Clip",
    "ExportOptions",
    "Project",
    "RenderJobRequest",
    "RenderJobResponse",
    "TextMeta",
    "Track",
    "Transform",
]
