from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import config
from app.features.storybook.router import orchestrator, router as storybook_router
from app.logger import get_logger

log = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(f"storybook api up (text={config.openai_text_model}, image={config.openai_image_model})")
    yield
    orchestrator.close()

app = FastAPI(title="Storybook API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins,
    allow_credentials="*" not in config.allowed_origins,  # browsers reject credentials with "*"
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],  # for downloads via FileResponse
)

app.include_router(storybook_router)

@app.get("/healthz")
async def healthz():
    return {"ok": True}
