import os
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from time import perf_counter

from loguru import logger

root_dir = Path(__file__).resolve().parents[3]

data_dir_path = Path(os.getenv("FULFILLMENT_DATA_DIR", root_dir / "data"))

_VERSION_PATTERN = re.compile(r'^version\s*=\s*"([^"]+)"', re.MULTILINE)


def get_version() -> str:
    """Project version as declared in pyproject.toml."""

    match = _VERSION_PATTERN.search((root_dir / "pyproject.toml").read_text(encoding="utf-8"))
    if not match:
        raise ValueError("No version declared in pyproject.toml")
    return match.group(1)


@contextmanager
def benchmark(
    *,
    log: Callable[[float], None] | None = None,
    decimal_places: int = 3,
) -> Iterator[None]:
    """Time the wrapped block and hand the elapsed seconds to `log`."""

    started = perf_counter()
    try:
        yield
    finally:
        elapsed = round(perf_counter() - started, decimal_places)
        if log is None:
            logger.debug(f"Block took {elapsed}s")
        else:
            log(elapsed)
