from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, TypeVar

from tqdm import tqdm

__all__ = ["configure", "set_verbose", "set_progress", "get_config", "progress_iter"]

T = TypeVar("T")


@dataclass
class _BaseConfig:
    verbose: bool = False
    progress: bool = False


_CONFIG = _BaseConfig()


def configure(*, verbose: bool | None = None, progress: bool | None = None) -> None:
    """Configure logging verbosity and progress bars for batch operations."""
    if verbose is not None:
        set_verbose(verbose)
    if progress is not None:
        set_progress(progress)


def set_verbose(value: bool) -> None:
    """Enable or disable debug logging for the receiptflow package."""
    _CONFIG.verbose = bool(value)
    logging.getLogger("receiptflow").setLevel(logging.DEBUG if _CONFIG.verbose else logging.NOTSET)


def set_progress(value: bool) -> None:
    """Enable or disable progress bars in batch loops."""
    _CONFIG.progress = bool(value)


def get_config() -> _BaseConfig:
    """Return the current base configuration."""
    return _CONFIG


def progress_iter(
    iterable: Iterable[T],
    *,
    desc: str | None = None,
    total: int | None = None,
) -> Iterable[T]:
    """Return an iterator with an optional progress bar."""
    if _CONFIG.progress:
        return tqdm(iterable, desc=desc, total=total, leave=False)
    return iterable
