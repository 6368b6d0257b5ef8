import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routers.drawing import router as drawing_router
from routers.project import router as project_router
from routers.screenshot import router as screenshot_router
from routers.videos import router as videos_router
from routers.webvtt import router as webvtt_router
from utils.timefmt import kst_now_iso

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Video Object Annotation Backend",
    description="Stores annotated video objects as WebVTT files with embedded JSON blocks",
    version="1.0.0",
)

# ---------------------------------------------------------
# CORS settings
# ---------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------
# Include Routers
# ---------------------------------------------------------
app.include_router(videos_router)
app.include_router(drawing_router)
app.include_router(webvtt_router)
app.include_router(project_router)
app.include_router(screenshot_router)

# ---------------------------------------------------------
# Health check
# ---------------------------------------------------------
@app.get("/api/ping")
async def ping():
    return {"message": "Video object annotation server is running", "timestamp": kst_now_iso()}
