import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from backend.session import init_session
from rp_sandbox.llm import LLM, EchoLLM

load_dotenv(Path(__file__).parent.parent / ".env")

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None, llm: LLM | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    if llm is None and os.getenv("LLM_BACKEND", "") == "echo":
        # characters repeat their catch-up block; no provider needed
        llm = EchoLLM()
    init_session(resolved, llm=llm)

    app = FastAPI(title="RP Sandbox")
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
