#!/usr/bin/env -S python3 -B -u
"""
File helpers for set files and rule table snapshots.

Deletion may race with a reader holding a transient lock on the file,
so it is wrapped in a bounded retry policy with a fixed delay.
"""

import os
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from .structured_logging import get_logger


PathLike = Union[str, Path]


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry policy."""
    attempts: int = 10
    delay: float = 0.02


DEFAULT_DELETE_POLICY = RetryPolicy()


def delete_file(path: PathLike, policy: RetryPolicy = DEFAULT_DELETE_POLICY) -> bool:
    """
    Delete ``path``, retrying on OS errors.

    A missing file counts as deleted. After the last failed attempt the
    function gives up and returns False without raising.
    """
    logger = get_logger(__name__)
    path = Path(path)
    for attempt in range(max(1, policy.attempts)):
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.debug(f"Delete of {path} failed", attempt=attempt + 1, error=str(e))
            if attempt < policy.attempts - 1:
                time.sleep(policy.delay)
    logger.warning(f"Giving up deleting {path} after {policy.attempts} attempts")
    return False


def replace_file(source: PathLike, target: PathLike,
                 policy: RetryPolicy = DEFAULT_DELETE_POLICY) -> None:
    """
    Move ``source`` over ``target``.

    The existing target is deleted first with ``policy``; if that fails
    the move raises the underlying OSError.
    """
    target = Path(target)
    if target.exists():
        delete_file(target, policy)
    os.replace(str(source), str(target))


@contextmanager
def scoped_temp_file(directory: Optional[PathLike] = None, suffix: str = '.tmp',
                     path: Optional[PathLike] = None,
                     policy: RetryPolicy = DEFAULT_DELETE_POLICY) -> Iterator[Path]:
    """
    Yield a temporary file path that is removed when the block exits.

    With ``path`` the given name is used (and truncated) instead of a
    generated one. A file moved away inside the block is simply not
    found at cleanup time.
    """
    if path is not None:
        temp_path = Path(path)
        temp_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text('')
    else:
        fd, name = tempfile.mkstemp(suffix=suffix, dir=str(directory) if directory else None)
        os.close(fd)
        temp_path = Path(name)
    try:
        yield temp_path
    finally:
        delete_file(temp_path, policy)
