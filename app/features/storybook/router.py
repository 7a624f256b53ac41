# app/features/storybook/router.py
import os
import shutil

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse

from app.config import config, make_job_dir
from app.lib.pdf import make_storybook_pdf
from app.logger import get_logger
from .orchestrator import USER_ERROR_MESSAGE, GenerationInProgressError, StoryOrchestrator
from .schemas import (
    STYLE_PRESETS,
    GenerationStatus,
    StoryState,
    StylePreset,
    StylePresetsResponse,
    UserInput,
)
from .service import StructureGenerationError

router = APIRouter(prefix="/api/v1", tags=["storybook"])
log = get_logger(__name__)

# one book at a time for the whole process
orchestrator = StoryOrchestrator()

def get_orchestrator() -> StoryOrchestrator:
    return orchestrator

@router.post("/storybook/generate", response_model=StoryState)
async def generate_storybook(
    req: UserInput,
    wait: bool = Query(False, description="Block until every page has settled"),
    orch: StoryOrchestrator = Depends(get_orchestrator),
):
    """
    Write the story, then illustrate each page.
    wait=false: returns 202 as soon as the text is ready; poll GET /storybook for pictures.
    wait=true:  returns 200 once every page has its picture (or fallback).
    """
    try:
        if wait:
            await orch.generate(req)
        else:
            await orch.start(req)
    except GenerationInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StructureGenerationError:
        raise HTTPException(status_code=502, detail=USER_ERROR_MESSAGE)

    state = orch.snapshot()
    if wait:
        return state
    return JSONResponse(state.model_dump(mode="json"), status_code=202)

@router.get("/storybook", response_model=StoryState)
async def storybook_state(orch: StoryOrchestrator = Depends(get_orchestrator)) -> StoryState:
    return orch.snapshot()

@router.post("/storybook/reset", response_model=StoryState)
async def reset_storybook(orch: StoryOrchestrator = Depends(get_orchestrator)) -> StoryState:
    return orch.reset()

@router.get("/storybook/styles", response_model=StylePresetsResponse)
async def storybook_styles() -> StylePresetsResponse:
    return StylePresetsResponse(styles=[StylePreset(value=v, label=l) for v, l in STYLE_PRESETS])

@router.get("/storybook/pdf")
async def storybook_pdf(
    background_tasks: BackgroundTasks,
    orch: StoryOrchestrator = Depends(get_orchestrator),
):
    story = orch.story
    if orch.status is not GenerationStatus.COMPLETED or story is None:
        raise HTTPException(409, f"storybook is not ready (status {orch.status.value})")

    workdir = make_job_dir()
    log.info(f"Working directory created: {workdir}")
    # auto-clean temp directory after response is sent
    if not config.keep_outputs:
        background_tasks.add_task(shutil.rmtree, workdir, ignore_errors=True)

    pdf_path = os.path.join(workdir, "storybook.pdf")
    try:
        # rendering and fallback downloads block; keep them off the event loop
        await run_in_threadpool(make_storybook_pdf, story, pdf_name=pdf_path)
    except Exception as e:
        log.exception("PDF export failed")
        raise HTTPException(500, f"PDF export failed: {e}")
    return FileResponse(pdf_path, media_type="application/pdf", filename="storybook.pdf")
