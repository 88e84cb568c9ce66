import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import httpx
import pytest

from keepsake import AsyncCache, CacheConfig

ResponseFactory = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], Exception]


class Origin:
    """
    A scripted origin server for `httpx.MockTransport`.

    Responses are queued per URL and handed out in order; the last one is
    repeated once the queue runs dry. Every request is recorded.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, List[ResponseFactory]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, url: str, *responses: ResponseFactory) -> None:
        self.routes.setdefault(url, []).extend(responses)

    def calls(self, url: Optional[str] = None) -> int:
        return len([request for request in self.requests if url is None or str(request.url) == url])

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(str(request.url))
        if not queue:
            return httpx.Response(404)

        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            # A response object can only be streamed once, hand out a copy.
            return httpx.Response(response.status_code, headers=response.headers, content=response.content)
        return response(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)


@pytest.fixture()
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache-root"


@pytest.fixture()
def origin() -> Origin:
    return Origin()


@pytest.fixture()
def make_cache(cache_dir: Path, origin: Origin) -> Callable[..., AsyncCache]:
    def factory(**config_options: object) -> AsyncCache:
        config = CacheConfig(cache_dir=cache_dir, **config_options)  # type: ignore[arg-type]
        return AsyncCache(config, client=origin.client())

    return factory
