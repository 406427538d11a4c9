import asyncio
import json
from typing import Sequence

import pytest

from app.schemas import BrandContext, ConceptContext, PlaybookContext
from app.services.generation import GenerationOrchestrator
from app.services.image_provider import GeneratedImage
from app.services.repository import InMemoryRepository
from app.services.storage_bridge import StoredBlob

USER_ID = "user-1"

AD_COPY = {
    "headline": "Run Lighter Every Mile",
    "subheadline": "The Aero Runner cushions every stride without the weight.",
    "cta": "Shop Now",
    "image_prompt": "Square ad, black running shoe on a track at dawn.",
}


class FakeTextCompletion:
    def __init__(self, reply: str | None = None, error: Exception | None = None, delay: float = 0.0) -> None:
        self.reply = json.dumps(AD_COPY) if reply is None else reply
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []
        self.image_urls: list[Sequence[str]] = []

    async def complete(self, prompt: str, *, image_urls: Sequence[str] = ()) -> str:
        self.prompts.append(prompt)
        self.image_urls.append(tuple(image_urls))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeImageGenerator:
    def __init__(self, fail: bool = False, empty: bool = False) -> None:
        self.fail = fail
        self.empty = empty
        self.calls: list[dict] = []

    async def generate(self, prompt: str, *, aspect_ratio: str = "1:1", reference_urls: Sequence[str] = ()) -> GeneratedImage:
        self.calls.append({"prompt": prompt, "aspect_ratio": aspect_ratio, "reference_urls": tuple(reference_urls)})
        if self.fail:
            raise RuntimeError("image backend down")
        if self.empty:
            return GeneratedImage(text_fallback="I cannot draw that")
        return GeneratedImage(mime_type="image/png", image_bytes=b"\x89PNG-fake")


class FakeBlobStore:
    def __init__(self) -> None:
        self.stored: list[tuple[str, str, int]] = []

    async def store(self, data: bytes, folder: str, content_type: str) -> StoredBlob:
        key = f"{folder}/img-{len(self.stored) + 1}.png"
        self.stored.append((folder, content_type, len(data)))
        return StoredBlob(key=key, url=f"https://cdn.example.com/{key}")


class RecordingRepository(InMemoryRepository):
    """In-memory repository that keeps every saved progress value."""

    def __init__(self) -> None:
        super().__init__()
        self.progress_log: list[int] = []

    async def create(self, record):
        self.progress_log.append(record.progress)
        return await super().create(record)

    async def save(self, record):
        self.progress_log.append(record.progress)
        return await super().save(record)


def aero_playbook(**overrides) -> PlaybookContext:
    raw = {
        "product_identity": {
            "product_name": "Aero Runner",
            "product_type": "Running shoe",
            "key_features": ["Knit upper"],
        },
        "brand_colors": {"primary": "#1A1A1A"},
    }
    raw.update(overrides)
    return PlaybookContext.from_raw(raw)


@pytest.fixture
def repository():
    repo = RecordingRepository()
    repo.brands["brand-1"] = BrandContext(id="brand-1", user_id=USER_ID, name="Aero", playbook=aero_playbook())
    repo.concepts["concept-1"] = ConceptContext(
        id="concept-1",
        user_id=USER_ID,
        analysis={"layout": {"type": "hero"}},
        original_image_url="https://cdn.example.com/concept.png",
    )
    return repo


@pytest.fixture
def text_completion():
    return FakeTextCompletion()


@pytest.fixture
def image_generator():
    return FakeImageGenerator()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def orchestrator(repository, text_completion, image_generator, blob_store):
    return GenerationOrchestrator(repository, text_completion, image_generator, blob_store)
