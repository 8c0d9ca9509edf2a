import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional
from vconvert.domain.models import VideoFile, CODEC_MARKER, TARGET_EXTENSION

logger = logging.getLogger(__name__)


class FileScanner:
    """Finds candidate videos under a root directory.

    ``include``/``exclude`` are case-sensitive substrings matched against the
    file stem. Hidden files and directories are never visited. Files that are
    already our own output (``*.x265.mp4``) are left out.
    """

    def __init__(
        self,
        extensions: List[str],
        include: Optional[List[str]] = None,
        exclude: Optional[List[str]] = None,
        recurse: bool = False,
    ):
        self.extensions = {e.lower().lstrip(".") for e in extensions}
        self.include = list(include or [])
        self.exclude = list(exclude or [])
        self.recurse = recurse

    def _is_candidate(self, path: Path) -> bool:
        if path.name.startswith("."):
            return False
        extension = path.suffix.lstrip(".").lower()
        if extension not in self.extensions:
            return False
        stem = path.stem
        if extension == TARGET_EXTENSION and stem.endswith(CODEC_MARKER):
            return False
        if self.include and not any(pattern in stem for pattern in self.include):
            return False
        if any(pattern in stem for pattern in self.exclude):
            return False
        return True

    def _walk(self, root: Path) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root):
            # Prune hidden directories in place so os.walk never enters them.
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in filenames:
                yield Path(dirpath) / name
            if not self.recurse:
                break

    def scan(self, root: Path) -> List[VideoFile]:
        """Returns candidates sorted by path. A file root is checked on its own."""
        root = Path(root)
        if root.is_file():
            return [VideoFile.from_path(root)] if self._is_candidate(root) else []

        files = [VideoFile.from_path(p) for p in self._walk(root) if p.is_file() and self._is_candidate(p)]
        files.sort(key=lambda vf: str(vf.path))
        logger.info(f"Scanned {root}: {len(files)} candidate files")
        return files
