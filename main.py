"""
Main entry point for pocket-shelf.

    python main.py get      # build cache/all.json once and exit
    python main.py [serve]  # serve cache/ at / and images/ at /images/
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.config import Settings
from core.errors import PocketShelfError
from core.infra.web import StaticServer
from core.pipeline_orchestrator import (
    SNAPSHOT_PIPELINE,
    find_pipeline,
    load_pipelines_config,
    run_pipeline,
)

logger = logging.getLogger("pocket_shelf")


def setup_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level, logging.INFO) if settings.output_logs else logging.ERROR
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        force=True,
    )


async def generate(settings: Settings) -> None:
    """Run the snapshot pipeline once."""
    settings.require_credentials()
    pipelines_cfg = load_pipelines_config(os.getenv("PIPELINES_CONFIG", "pipelines.yml"))
    await run_pipeline(find_pipeline(pipelines_cfg, SNAPSHOT_PIPELINE), settings)


async def serve(settings: Settings) -> None:
    """Serve the snapshot and image directories until SIGINT/SIGTERM."""
    server = StaticServer(
        settings.cache_dir,
        settings.image_dir,
        host=settings.server_host,
        port=settings.server_port,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(server.stop()))
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    await server.serve_forever()
    logger.info("Shutdown complete")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pocket-shelf",
        description="Republish a Pocket reading list with a cached image per item.",
    )
    parser.add_argument(
        "mode",
        nargs="?",
        choices=("get", "serve"),
        default="serve",
        help="'get' writes the snapshot once and exits; 'serve' (default) runs the HTTP server",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_dotenv()

    try:
        settings = Settings.from_env()
    except PocketShelfError as e:
        logging.basicConfig(format="%(levelname)s | %(message)s")
        logger.error("%s", e)
        return 1

    setup_logging(settings)

    try:
        if args.mode == "get":
            asyncio.run(generate(settings))
        else:
            asyncio.run(serve(settings))
    except PocketShelfError as e:
        logger.error("%s", e)
        return 1
    except asyncio.TimeoutError:
        logger.error("Run exceeded RUN_TIMEOUT of %.0fs", settings.run_timeout)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
