import io
import json
from typing import Callable, List

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from menuscan.config.settings import (
    DishImageCacheSettings,
    ModelApiSettings,
    RetrySettings,
    Settings,
)
from menuscan.core.dependencies import ServiceContainer
from menuscan.core.error_handlers import error_handler
from menuscan.core.metrics import reset_metrics
from menuscan.main import create_app


class FakeModelApi:
    """
    Scripted stand-in for the model API, mounted through httpx.MockTransport.

    Queued responses for a path are served in order; once a queue runs dry
    the path's default handler (if any) answers.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._queues = {}
        self._defaults = {}

    @staticmethod
    def chat(content: str) -> httpx.Response:
        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": content}}]},
        )

    @staticmethod
    def image(url: str) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"url": url}]})

    def queue(self, path: str, *responses) -> "FakeModelApi":
        self._queues.setdefault(path, []).extend(responses)
        return self

    def default(self, path: str, handler: Callable) -> "FakeModelApi":
        self._defaults[path] = handler
        return self

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(path)]

    def bodies(self, path: str) -> List[dict]:
        return [json.loads(r.content) for r in self.calls(path)]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for path, queued in self._queues.items():
            if request.url.path.endswith(path) and queued:
                item = queued.pop(0)
                if isinstance(item, Exception):
                    raise item
                return item
        for path, handler in self._defaults.items():
            if request.url.path.endswith(path):
                result = handler(request)
                if hasattr(result, "__await__"):
                    result = await result
                return result
        return httpx.Response(404, json={"error": "no scripted response"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Async sleep replacement that records delays instead of waiting"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        model_api=ModelApiSettings(api_key="test-key", base_url="https://model.test/v1"),
        retry=RetrySettings(max_attempts=3, jitter=False),
        dish_images=DishImageCacheSettings(use_redis=False),
        log_format="text",
    )


@pytest.fixture
def fake_api() -> FakeModelApi:
    return FakeModelApi()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def container(settings, fake_api, clock, sleeper) -> ServiceContainer:
    return ServiceContainer(settings, transport=fake_api.transport, sleep=sleeper, clock=clock)


@pytest.fixture
def app(settings, container):
    return create_app(settings, container)


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def _reset_global_counters():
    error_handler.reset()
    reset_metrics()
    yield


@pytest.fixture
def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 40, 40)).save(buf, format="PNG")
    return buf.getvalue()
