"""Discovery of candidate components on disk."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Collection, Iterable, Iterator, List, Tuple

from .logging import get_logger
from .models import Component

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".idea",
    ".depcheck",
}


def _iter_files(root: Path) -> Iterator[Path]:
    if root.is_file():
        yield root
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name not in _EXCLUDED_DIRS)
        current_dir = Path(dirpath)
        for filename in sorted(filenames):
            yield current_dir / filename


def _hash_file(path: Path) -> Tuple[str, str]:
    sha1 = hashlib.sha1()
    md5 = hashlib.md5()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            sha1.update(chunk)
            md5.update(chunk)
    return sha1.hexdigest(), md5.hexdigest()


class ComponentScanner:
    """Walks files and directories, producing one component per supported file."""

    def __init__(self, extensions: Collection[str]) -> None:
        self.extensions = {extension.lower().lstrip(".") for extension in extensions}
        self.logger = get_logger("scanner")

    def scan(self, paths: Iterable[str | Path]) -> List[Component]:
        components: List[Component] = []
        seen: set[Path] = set()
        for raw in paths:
            root = Path(raw).expanduser().resolve()
            if not root.exists():
                raise FileNotFoundError(f"Scan path not found: {raw}")
            for path in _iter_files(root):
                if path in seen or path.suffix.lower().lstrip(".") not in self.extensions:
                    continue
                seen.add(path)
                try:
                    sha1, md5 = _hash_file(path)
                except OSError as exc:
                    self.logger.warning("Skipping unreadable file %s: %s", path, exc)
                    continue
                components.append(Component(path=path, sha1=sha1, md5=md5))
        self.logger.debug("Discovered %d component(s)", len(components))
        return components


__all__ = ["ComponentScanner"]
