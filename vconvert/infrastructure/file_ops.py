import logging
from pathlib import Path
import send2trash

logger = logging.getLogger(__name__)


class FileOps:
    """Source disposal and rename policy shared by the analyzer and engine.

    With ``delete`` set, files are unlinked; otherwise they go to the
    desktop trash. Both raise ``OSError`` on failure.
    """

    def __init__(self, delete: bool = False):
        self.delete = delete

    def remove(self, path: Path):
        path = Path(path)
        if self.delete:
            path.unlink()
            logger.info(f"Deleted {path}")
        else:
            send2trash.send2trash(str(path))
            logger.info(f"Trashed {path}")

    def rename(self, source: Path, target: Path):
        Path(source).replace(target)
        logger.info(f"Renamed {source} -> {target}")
