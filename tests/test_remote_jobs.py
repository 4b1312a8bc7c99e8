import json

import httpx
import pytest

from app.core.exceptions import RemoteSubmissionError
from app.services.remote_jobs import RemoteJobClient


def make_client(handler):
    return RemoteJobClient(api_key="test-key", base_url="https://provider.test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_submit_training_posts_images():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "task-77"})

    client = make_client(handler)
    task_id = await client.submit_training("Me", ["https://cdn/a.jpg"])
    await client.aclose()

    assert task_id == "task-77"
    assert seen["path"] == "/higgsfield/character"
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"] == {"name": "Me", "input_images": ["https://cdn/a.jpg"]}


@pytest.mark.asyncio
async def test_submit_generation_references_character():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"task_id": "task-88"})

    client = make_client(handler)
    task_id = await client.submit_generation("prompt", "style-1", character_id="char_42", seed=7)
    await client.aclose()

    assert task_id == "task-88"
    assert seen["body"]["custom_reference_id"] == "char_42"
    assert seen["body"]["seed"] == 7
    assert seen["body"]["quality"] == "basic"


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(500, text="upstream down"),
    httpx.Response(200, json={"message": "queued"}),
])
async def test_submit_errors_raise(response):
    client = make_client(lambda request: response)

    with pytest.raises(RemoteSubmissionError):
        await client.submit_training("Me", ["https://cdn/a.jpg"])
    await client.aclose()


@pytest.mark.asyncio
async def test_fetch_status_raises_on_http_error():
    client = make_client(lambda request: httpx.Response(503))

    with pytest.raises(httpx.HTTPStatusError):
        await client.fetch_status("task-1")
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("response, expected", [
    (httpx.Response(200, json={"status": "completed"}), True),
    (httpx.Response(200, json={"status": "failed"}), False),
    (httpx.Response(404, json={"detail": "not found"}), False),
])
async def test_character_exists(response, expected):
    client = make_client(lambda request: response)
    assert await client.character_exists("char_42") is expected
    await client.aclose()
