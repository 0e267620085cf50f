from typing import Literal

from cutline.schemas.project import ExportOptions, Project, TimelineModel


class RenderJobRequest(TimelineModel):
    project: Project
    export_options: ExportOptions


class RenderJobResponse(TimelineModel):
    id: str
    status: Literal["completed"] = "completed"
    output_url: str
