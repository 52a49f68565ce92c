"""Pocket plugin package – fetcher, enricher, sink.

The stages the pipeline orchestrator discovers:

* :class:`PocketFetcher`  – retrieves saved items from the Pocket v3 API
* :class:`PocketEnricher` – normalises items and makes sure each has an image
* :class:`SnapshotSink`   – publishes the sorted list as ``all.json``

so that ``pipelines.yml`` can reference them as ``pocket.PocketFetcher``
and so on.
"""

from .fetcher import PocketFetcher    # noqa: F401
from .enricher import PocketEnricher  # noqa: F401
from .sinks import SnapshotSink       # noqa: F401
