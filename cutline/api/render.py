"""Render API endpoints - synchronous export (the request waits for FFmpeg)."""

import logging
from uuid import uuid4

from fastapi import APIRouter, status

from cutline.api.deps import Pipeline
from cutline.schemas.render import RenderJobRequest, RenderJobResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/render-jobs",
    response_model=RenderJobResponse,
    status_code=status.HTTP_200_OK,
)
async def create_render_job(
    render_request: RenderJobRequest,
    pipeline: Pipeline,
) -> RenderJobResponse:
    """
    Render a project with the given export options.

    Returns once the output file exists. Errors are raised as CutlineError
    and turned into JSON by the app's exception handler.
    """
    project = render_request.project
    job_id = str(uuid4())
    logger.info(
        f"[RENDER] job={job_id} project={project.id} "
        f"{render_request.export_options.width}x{render_request.export_options.height} "
        f"{render_request.export_options.format}"
    )

    output_url = await pipeline.export(project, render_request.export_options)

    return RenderJobResponse(id=job_id, output_url=output_url)
