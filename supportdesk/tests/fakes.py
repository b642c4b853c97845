# supportdesk/tests/fakes.py
"""Deterministic stand-ins for the embedding model, the OpenAI SDK and the crawl service"""

import asyncio
import hashlib
import json
import math
from types import SimpleNamespace
from typing import Dict, List, Optional

import httpx

from supportdesk.utils.exceptions import EmbeddingUnavailable

DIM = 16
CRAWL_BASE_URL = "https://crawl.test"


def unit(index: int, dim: int = DIM) -> List[float]:
    vector = [0.0] * dim
    vector[index] = 1.0
    return vector


def blend(a: List[float], b: List[float], weight: float) -> List[float]:
    """a + weight * b, normalized"""
    mixed = [x + weight * y for x, y in zip(a, b)]
    norm = math.sqrt(sum(x * x for x in mixed))
    return [x / norm for x in mixed]


def hashed_vector(text: str, dim: int = DIM) -> List[float]:
    """Deterministic vector in the upper half of the space.

    Named test vectors use the lower half, so unnamed text never
    resembles them.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    half = dim // 2
    vector = [0.0] * dim
    for i in range(half):
        vector[half + i] = digest[i] / 127.5 - 1.0 + 0.001
    return vector


class FakeEmbedder:
    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, dimension: int = DIM):
        self.vectors = dict(vectors or {})
        self.dimension = dimension
        self.calls: List[str] = []
        self.failing_texts = set()
        self.unavailable = False

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.unavailable or text in self.failing_texts:
            raise EmbeddingUnavailable("fake embedder down")
        if text in self.vectors:
            return list(self.vectors[text])
        return hashed_vector(text, self.dimension)


class FakeEmbeddings:
    def __init__(self, dimension=4, error=None, delay=0.0):
        self.dimension = dimension
        self.error = error
        self.delay = delay
        self.requests = []

    async def create(self, model, input, dimensions):
        self.requests.append({"model": model, "input": input, "dimensions": dimensions})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        vector = [float(len(input))] + [0.5] * (self.dimension - 1)
        return SimpleNamespace(
            data=[SimpleNamespace(embedding=vector)],
            usage=SimpleNamespace(total_tokens=3),
        )


class FakeOpenAI:
    def __init__(self, embeddings):
        self.embeddings = embeddings
        self.closed = False

    async def close(self):
        self.closed = True


class FakeCrawlAPI:
    """Scripted crawl service: one start response, then status bodies in order"""

    def __init__(self):
        self.start_status_code = 200
        self.start_response = {"success": True, "id": "job-1"}
        self.statuses: List = []
        self.next_pages: Dict[str, dict] = {}
        self.started: List[dict] = []
        self.status_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/v1/crawl":
            self.started.append(json.loads(request.content))
            return httpx.Response(self.start_status_code, json=self.start_response)

        if request.method == "GET" and str(request.url) in self.next_pages:
            return httpx.Response(200, json=self.next_pages[str(request.url)])

        if request.method == "GET" and request.url.path.startswith("/v1/crawl/"):
            self.status_calls += 1
            body = self.statuses[min(self.status_calls - 1, len(self.statuses) - 1)]
            if isinstance(body, int):
                return httpx.Response(body, json={"error": "upstream error"})
            return httpx.Response(200, json=body)

        return httpx.Response(404, json={"error": "not found"})


def page(url: str, markdown: Optional[str], title: str = "") -> dict:
    return {"markdown": markdown, "metadata": {"sourceURL": url, "title": title}}


def crawl_status(status: str, pages: Optional[list] = None, total: Optional[int] = None, next_url=None) -> dict:
    pages = pages or []
    body = {
        "status": status,
        "total": len(pages) if total is None else total,
        "completed": len(pages),
        "data": pages,
    }
    if next_url:
        body["next"] = next_url
    return body


class SleepRecorder:
    """PollPolicy sleep that returns immediately and remembers the intervals"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
