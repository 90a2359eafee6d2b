import json
from typing import Any, Dict, Optional

import pytest
import requests

from download_data import CrawlConfig, JikanClient

BASE = "https://jikan.test/v4"


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._body = body
        self._text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        if self._text is not None:
            return json.loads(self._text)
        return self._body


class FakeSession:
    """
    Routes GETs by (path, page). A route value may be a FakeResponse or an exception to raise.
    """

    def __init__(self) -> None:
        self.headers: Dict[str, str] = {}
        self.routes: Dict[Any, Any] = {}
        self.calls = []
        self.timeouts = []

    def add_page(self, page: int, response: Any) -> None:
        self.routes[("/characters", page)] = response

    def add_anime(self, mal_id: int, response: Any) -> None:
        self.routes[(f"/characters/{mal_id}/anime", None)] = response

    def get(self, url: str, params: Optional[Dict[str, Any]] = None, timeout: Any = None) -> FakeResponse:
        path = url[len(BASE):]
        page = (params or {}).get("page")
        self.calls.append((path, page))
        self.timeouts.append(timeout)
        route = self.routes.get((path, page))
        if route is None:
            return FakeResponse(404, {"status": 404})
        if isinstance(route, Exception):
            raise route
        return route


def page_body(*chars: Dict[str, Any]) -> FakeResponse:
    return FakeResponse(200, {"data": list(chars)})


def anime_body(*titles: str) -> FakeResponse:
    return FakeResponse(200, {"data": [{"role": "Main", "anime": {"mal_id": i, "title": t}} for i, t in enumerate(titles)]})


def character(mal_id: int, name: str, image_url: Optional[str] = None) -> Dict[str, Any]:
    c: Dict[str, Any] = {"mal_id": mal_id, "name": name}
    if image_url:
        c["images"] = {"jpg": {"image_url": image_url}}
    return c


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def config(tmp_path) -> CrawlConfig:
    return CrawlConfig(
        base_url=BASE,
        max_pages=1,
        delay_s=0,
        out_json=str(tmp_path / "characters.json"),
        upload=False,
    )


@pytest.fixture
def client(config, session) -> JikanClient:
    return JikanClient(config, session=session)
