from typing import Annotated

from fastapi import Depends, Request

from cutline.render.pipeline import ExportPipeline


def get_export_pipeline(request: Request) -> ExportPipeline:
    """The process-wide pipeline created in the app lifespan."""
    return request.app.state.export_pipeline


Pipeline = Annotated[ExportPipeline, Depends(get_export_pipeline)]
