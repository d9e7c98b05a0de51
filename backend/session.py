"""Process-wide turn controller, loaded from the data directory."""

from pathlib import Path

from rp_sandbox.llm import LLM
from rp_sandbox.pipeline import TurnController
from rp_sandbox.storage import Storage

_controller: TurnController | None = None


def init_session(data_dir: Path, llm: LLM | None = None) -> TurnController:
    """Load world, histories, token counters and settings from `data_dir`."""
    global _controller
    _controller = TurnController.from_storage(Storage(data_dir), llm=llm)
    return _controller


def controller() -> TurnController:
    assert _controller is not None, "Call init_session() before using the API"
    return _controller
