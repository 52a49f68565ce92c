"""Static publishing routes."""

from __future__ import annotations

import asyncio
import json

import aiohttp
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from core.infra.web import StaticServer, create_app


@pytest_asyncio.fixture
async def published(tmp_path):
    cache_dir = tmp_path / "cache"
    image_dir = tmp_path / "images"
    cache_dir.mkdir()
    image_dir.mkdir()
    (cache_dir / "all.json").write_text(json.dumps([{"item_id": 1}]))
    (image_dir / "1.png").write_bytes(b"\x89PNG-bytes")

    server = TestServer(create_app(cache_dir, image_dir))
    await server.start_server()
    async with aiohttp.ClientSession() as session:
        yield server, session
    await server.close()


@pytest.mark.asyncio
async def test_snapshot_served_at_root(published):
    server, session = published
    async with session.get(server.make_url("/all.json")) as resp:
        assert resp.status == 200
        assert json.loads(await resp.text()) == [{"item_id": 1}]


@pytest.mark.asyncio
async def test_images_served_under_prefix(published):
    server, session = published
    async with session.get(server.make_url("/images/1.png")) as resp:
        assert resp.status == 200
        assert await resp.read() == b"\x89PNG-bytes"


@pytest.mark.asyncio
async def test_unknown_file_is_404(published):
    server, session = published
    async with session.get(server.make_url("/images/404.png")) as resp:
        assert resp.status == 404


def test_create_app_makes_missing_directories(tmp_path):
    create_app(tmp_path / "c", tmp_path / "i")
    assert (tmp_path / "c").is_dir()
    assert (tmp_path / "i").is_dir()


@pytest.mark.asyncio
async def test_server_stop_ends_serve_forever(tmp_path, unused_tcp_port):
    server = StaticServer(tmp_path / "c", tmp_path / "i", host="127.0.0.1", port=unused_tcp_port)
    task = asyncio.create_task(server.serve_forever())
    while server._runner is None:
        await asyncio.sleep(0.01)

    async with aiohttp.ClientSession() as session:
        async with session.get(f"http://127.0.0.1:{unused_tcp_port}/") as resp:
            assert resp.status == 200

    await server.stop()
    await asyncio.wait_for(task, timeout=2)
    assert server._runner is None
