"""Plugin discovery, pipeline config and end-to-end runs through the CLI."""

from __future__ import annotations

import json

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

import main
from core import plugin_loader
from core.config import Settings
from core.errors import ConfigError, SourceError
from core.models import Snapshot
from core.pipeline_orchestrator import (
    SNAPSHOT_PIPELINE,
    build_stages,
    find_pipeline,
    load_pipelines_config,
    run_pipeline,
)
from plugins.pocket import PocketEnricher, PocketFetcher, SnapshotSink

ITEMS = {
    "5": {"item_id": "5", "resolved_url": "https://example.com/5", "resolved_title": "Five", "sort_id": 5},
    "1": {"item_id": "1", "given_url": "https://example.com/1", "given_title": "One", "sort_id": 1},
    "3": {
        "item_id": "3",
        "resolved_url": "https://example.com/3",
        "resolved_title": "Three",
        "excerpt": "third",
        "has_video": "2",
        "sort_id": 3,
    },
}


@pytest_asyncio.fixture
async def pocket_api():
    state = {"status": 200, "hits": 0}

    async def retrieve(request: web.Request) -> web.Response:
        state["hits"] += 1
        if state["status"] != 200:
            return web.Response(status=state["status"])
        return web.json_response({"status": 1, "complete": 1, "list": ITEMS, "error": None})

    app = web.Application()
    app.router.add_get("/v3/get", retrieve)
    server = TestServer(app)
    await server.start_server()
    state["base"] = str(server.make_url("/v3"))
    yield state
    await server.close()


@pytest_asyncio.fixture
async def offline_settings(settings: Settings, pocket_api) -> Settings:
    return settings.model_copy(update={"api_url": pocket_api["base"], "generate_screenshots": False})


def test_plugin_discovery_registers_pocket_stages():
    plugin_loader.refresh_registry()
    available = plugin_loader.list_available()

    assert available["pocket.PocketFetcher"] is PocketFetcher
    assert available["pocket.PocketEnricher"] is PocketEnricher
    assert available["pocket.SnapshotSink"] is SnapshotSink


def test_unknown_stage_is_a_config_error(settings):
    with pytest.raises(ConfigError, match="pocket.Nope"):
        build_stages({"name": "x", "chain": [{"class": "pocket.Nope"}]}, settings)


def test_missing_config_file_falls_back_to_default(tmp_path):
    cfgs = load_pipelines_config(str(tmp_path / "absent.yml"))
    chain = [s["class"] for s in find_pipeline(cfgs, SNAPSHOT_PIPELINE)["chain"]]
    assert chain == ["pocket.PocketFetcher", "pocket.PocketEnricher", "pocket.SnapshotSink"]


def test_dict_form_config_and_kwargs(tmp_path, settings):
    path = tmp_path / "pipelines.yml"
    path.write_text(
        "pipelines:\n"
        "  snapshot:\n"
        "    chain:\n"
        "      - class: pocket.PocketFetcher\n"
        "        kwargs: {state: all}\n"
        "      - class: pocket.SnapshotSink\n"
    )
    cfg = find_pipeline(load_pipelines_config(str(path)), "snapshot")
    fetcher, sink = build_stages(cfg, settings)

    assert isinstance(fetcher, PocketFetcher) and fetcher._state == "all"
    assert sink.path == settings.snapshot_path


def test_config_without_pipelines_key(tmp_path):
    path = tmp_path / "pipelines.yml"
    path.write_text("other: 1\n")
    with pytest.raises(ConfigError):
        load_pipelines_config(str(path))


def test_unknown_pipeline_name():
    with pytest.raises(ConfigError, match="nightly"):
        find_pipeline(load_pipelines_config(None), "nightly")


@pytest.mark.asyncio
async def test_snapshot_run_writes_sorted_json(offline_settings):
    image_dir = offline_settings.image_dir
    image_dir.mkdir(parents=True)
    (image_dir / "3.png").write_bytes(b"cached")

    cfg = find_pipeline(load_pipelines_config(None), SNAPSHOT_PIPELINE)
    (snapshot,) = await run_pipeline(cfg, offline_settings)

    assert isinstance(snapshot, Snapshot)
    written = json.loads(offline_settings.snapshot_path.read_text())
    assert [e["item_id"] for e in written] == [1, 3, 5]
    assert written[0] == {
        "item_id": 1,
        "title": "One",
        "url": "https://example.com/1",
        "excerpt": "",
        "type": "article",
        "sort_id": 1,
        "image": "",
    }
    assert written[1]["type"] == "video"
    assert written[1]["image"] == "http://localhost:4000/images/3.png"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 503])
async def test_source_failure_leaves_previous_snapshot(offline_settings, pocket_api, status):
    pocket_api["status"] = status
    path = offline_settings.snapshot_path
    path.parent.mkdir(parents=True)
    path.write_text("[]")

    cfg = find_pipeline(load_pipelines_config(None), SNAPSHOT_PIPELINE)
    with pytest.raises(SourceError):
        await run_pipeline(cfg, offline_settings)

    assert path.read_text() == "[]"
    assert list(path.parent.iterdir()) == [path]


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    env = {
        "POCKET_ACCESS_TOKEN": "tok",
        "POCKET_CONSUMER_KEY": "key",
        "POCKET_API_URL": "http://127.0.0.1:1/v3",
        "SOURCE_MAX_RETRIES": "1",
        "HTTP_TIMEOUT": "2",
        "GENERATE_SCREENSHOTS": "0",
        "OUTPUT_LOGS": "0",
        "CACHE_DIR": str(tmp_path / "cache"),
        "IMAGE_DIR": str(tmp_path / "images"),
        "PIPELINES_CONFIG": str(tmp_path / "pipelines.yml"),
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return tmp_path


def test_get_exits_nonzero_when_source_unreachable(cli_env):
    snapshot = cli_env / "cache" / "all.json"
    snapshot.parent.mkdir()
    snapshot.write_text('[{"item_id": 9}]')

    assert main.main(["get"]) == 1
    assert snapshot.read_text() == '[{"item_id": 9}]'


def test_get_exits_nonzero_without_credentials(cli_env, monkeypatch):
    monkeypatch.setenv("POCKET_ACCESS_TOKEN", "")

    assert main.main(["get"]) == 1
    assert not (cli_env / "cache" / "all.json").exists()


def test_invalid_numeric_setting_exits_nonzero(cli_env, monkeypatch):
    monkeypatch.setenv("MAX_WORKERS", "many")
    assert main.main(["get"]) == 1


@pytest.mark.asyncio
async def test_generate_writes_snapshot(cli_env, monkeypatch, pocket_api):
    monkeypatch.setenv("POCKET_API_URL", pocket_api["base"])

    await main.generate(Settings.from_env())

    written = json.loads((cli_env / "cache" / "all.json").read_text())
    assert [e["title"] for e in written] == ["One", "Three", "Five"]
    assert pocket_api["hits"] == 1


def test_mode_defaults_to_serve():
    assert main.parse_args([]).mode == "serve"
    assert main.parse_args(["get"]).mode == "get"
    with pytest.raises(SystemExit):
        main.parse_args(["publish"])
