import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from backend.sessions import SessionRegistry
from storyquest.images import ImageClient
from storyquest.llm import LLM

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(
    data_dir: Path | None = None,
    *,
    llm: LLM | None = None,
    background_client: ImageClient | None = None,
    character_client: ImageClient | None = None,
) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    app = FastAPI(title="StoryQuest")
    app.state.sessions = SessionRegistry(
        resolved,
        llm=llm,
        background_client=background_client,
        character_client=character_client,
    )
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
