from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import os
import time
import urllib.request
from rich.console import Console

console = Console(stderr=True)

def _ready(path: Path) -> bool:
    return path.exists() and path.stat().st_size > 0

@contextmanager
def _dir_lock(lock_dir: Path, *, ready: Path, poll_seconds: float, timeout_seconds: float):
    """Hold `lock_dir` for the duration of the block.

    Yields False if `ready` appeared while waiting (someone else finished the
    download), True once the lock is ours. mkdir is atomic on every platform,
    which makes it safe across the batch runner's worker processes.
    """
    deadline = time.monotonic() + timeout_seconds
    while True:
        try:
            lock_dir.mkdir()
            break
        except FileExistsError:
            if _ready(ready):
                yield False
                return
            if time.monotonic() > deadline:
                raise TimeoutError(f"Timed out waiting for lock: {lock_dir}")
            time.sleep(poll_seconds)
    try:
        yield True
    finally:
        if lock_dir.exists():
            lock_dir.rmdir()

def download_if_missing(url: str, dst: Path, *, poll_seconds: float = 0.25, timeout_seconds: float = 120.0) -> Path:
    """Fetch `url` into `dst` unless a non-empty file is already there."""
    dst.parent.mkdir(parents=True, exist_ok=True)
    if _ready(dst):
        return dst

    lock_dir = dst.with_suffix(dst.suffix + ".lock")
    with _dir_lock(lock_dir, ready=dst, poll_seconds=poll_seconds, timeout_seconds=timeout_seconds) as owned:
        if not owned or _ready(dst):
            return dst

        console.log(f"[yellow]Downloading segmentation model[/yellow] {url}\n -> {dst}")
        part = dst.with_suffix(dst.suffix + f".{os.getpid()}.part")
        part.unlink(missing_ok=True)
        with urllib.request.urlopen(url) as resp, open(part, "wb") as fh:
            fh.write(resp.read())

        if not _ready(part):
            raise RuntimeError(f"Download failed or produced empty file: {part}")
        os.replace(part, dst)
    return dst
