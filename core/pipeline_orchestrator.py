"""
Pipeline orchestrator using the Transform chain pattern.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import yaml

from .config import Settings
from .errors import ConfigError
from .interfaces import Transform
from .plugin_loader import get as load_transform_class

logger = logging.getLogger(__name__)

SNAPSHOT_PIPELINE = "snapshot"

DEFAULT_PIPELINES: List[Dict[str, Any]] = [
    {
        "name": SNAPSHOT_PIPELINE,
        "chain": [
            {"class": "pocket.PocketFetcher"},
            {"class": "pocket.PocketEnricher"},
            {"class": "pocket.SnapshotSink"},
        ],
    }
]


async def _drain(stages: List[Transform]) -> List[Any]:
    """Execute a pipeline by connecting transform stages; return what falls out the end."""

    async def seed() -> AsyncIterator[None]:
        """Seed the pipeline with a single None value."""
        yield None

    stream: AsyncIterator[Any] = seed()
    results: List[Any] = []

    # Stages owning sessions or browsers are closed even when a stage raises
    async with AsyncExitStack() as stack:
        for stage in stages:
            if hasattr(stage, "__aenter__"):
                await stack.enter_async_context(stage)

        for stage in stages:
            stream = stage(stream)

        async for item in stream:
            results.append(item)

    return results


def build_stages(cfg: Dict[str, Any], settings: Settings) -> List[Transform]:
    """Instantiate every stage of a pipeline config, injecting *settings*."""
    instances: List[Transform] = []
    for entry in cfg.get("chain", []):
        try:
            cls = load_transform_class(entry.get("class", ""))
        except KeyError as e:
            raise ConfigError(e.args[0]) from e
        kwargs = dict(entry.get("kwargs") or {})
        instances.append(cls(settings=settings, **kwargs))
    return instances


async def run_pipeline(cfg: Dict[str, Any], settings: Settings) -> List[Any]:
    """Run a single pipeline from configuration.

    Stage failures propagate to the caller: a pipeline that dies half-way
    must not look like a successful run.
    """
    pipeline_name = cfg.get("name", "unnamed")
    logger.info(f"Starting pipeline: {pipeline_name}")

    instances = build_stages(cfg, settings)
    if not instances:
        raise ConfigError(f"Pipeline '{pipeline_name}' has no stages")

    coro = _drain(instances)
    if settings.run_timeout > 0:
        results = await asyncio.wait_for(coro, timeout=settings.run_timeout)
    else:
        results = await coro

    logger.info(f"Pipeline completed: {pipeline_name}")
    return results


def load_pipelines_config(config_path: Optional[str] = "pipelines.yml") -> List[Dict[str, Any]]:
    """Load pipeline configuration from YAML, falling back to the built-in chain."""
    path = Path(config_path) if config_path else None

    if path is None or not path.exists():
        logger.debug(f"Pipeline config file not found: {config_path}, using defaults")
        return [dict(p) for p in DEFAULT_PIPELINES]

    with path.open() as f:
        data = yaml.safe_load(f) or {}

    if "pipelines" not in data:
        raise ConfigError(f"No 'pipelines' key found in {config_path}")

    pipelines = data["pipelines"]

    # Convert dict format to list format
    if isinstance(pipelines, dict):
        result = []
        for name, config in pipelines.items():
            config = dict(config or {})
            config["name"] = name
            result.append(config)
        return result

    return pipelines


def find_pipeline(pipelines_cfg: List[Dict[str, Any]], name: str) -> Dict[str, Any]:
    for pipeline in pipelines_cfg:
        if pipeline.get("name") == name:
            return pipeline
    available = [p.get("name", "unnamed") for p in pipelines_cfg]
    raise ConfigError(f"Pipeline '{name}' not found. Available: {available}")
