from pathlib import Path

import pytest

from storyquest.images import ImageError, ImageRequest
from storyquest.llm import GenerationConfig, LLMError
from storyquest.storage import SaveStore

# Long enough to pass the image length check.
FAKE_IMAGE = "iVBORw0KGgo" + "A" * 200


class StubLLM:
    """Returns queued replies in order and records every call.

    A queued exception is raised instead of returned.
    """

    def __init__(self, *replies: str | Exception) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[str, str, GenerationConfig | None]] = []

    async def __call__(self, stage: str, prompt: str, config: GenerationConfig | None = None) -> str:
        self.calls.append((stage, prompt, config))
        reply = self.replies.pop(0) if self.replies else LLMError("no reply queued")
        if isinstance(reply, Exception):
            raise reply
        return reply


class StubImageClient:
    """Returns FAKE_IMAGE, or raises ImageError when `fail` is set."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[ImageRequest] = []

    async def __call__(self, request: ImageRequest) -> str:
        self.requests.append(request)
        if self.fail:
            raise ImageError("backend down")
        return FAKE_IMAGE


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def store(data_dir: Path) -> SaveStore:
    return SaveStore(data_dir)
