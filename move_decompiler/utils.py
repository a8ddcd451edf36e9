"""Small shared helpers: logging setup, thread-pool fan-out and file output."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generic, List, Sequence, TypeVar, Union

T = TypeVar("T")
R = TypeVar("R")

LOG = logging.getLogger(__name__)

__all__ = ["setup_logging", "ParallelRun", "run_parallel", "ensure_directory", "write_text"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO) -> int:
    """Configure the root logger; ``level`` may be a name such as ``"DEBUG"``.

    Unknown level names fall back to ``INFO``.  Returns the numeric level used.
    """

    numeric = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    unknown = not isinstance(numeric, int)
    if unknown:
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    if unknown:
        LOG.warning("Unknown log level %r; using INFO", level)
    return numeric


@dataclass
class ParallelRun(Generic[R]):
    """Outcome of :func:`run_parallel`: input-ordered results and timing."""

    results: List[R]
    duration: float = 0.0
    workers: int = 0


def run_parallel(
    items: Sequence[T],
    worker: Callable[[T], R],
    *,
    jobs: int = 1,
    timer: Callable[[], float] | None = None,
) -> ParallelRun[R]:
    """Apply ``worker`` to ``items``, on a thread pool when ``jobs > 1``.

    ``results`` follow the input order whatever order the workers finish in.
    The first exception raised by ``worker`` (in input order) propagates.
    """

    if not items:
        return ParallelRun([])

    timer = timer or time.perf_counter
    start = timer()
    workers = max(1, min(jobs, len(items)))
    if workers == 1:
        results = [worker(item) for item in items]
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="move-decompiler") as pool:
            results = list(pool.map(worker, items))
    run = ParallelRun(results, timer() - start, workers)
    LOG.debug("Processed %d items on %d workers in %.3fs", len(items), workers, run.duration)
    return run


def ensure_directory(path: Path) -> None:
    """Create *path* if it does not exist."""

    path.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, content: str) -> None:
    """Write *content* to *path* as UTF-8, creating parent directories."""

    ensure_directory(path.parent)
    path.write_text(content, encoding="utf-8")
    LOG.debug("Wrote %d chars to %s", len(content), path)
