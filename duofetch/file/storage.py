"""
Download Storage

Storage Layout:
```
downloads/
├── 10KB.txt          # one file per requested name
├── 100KB.txt
└── docs/
    └── readme.txt    # nested names keep their relative path
```

Every save overwrites whatever is already at the path. There are no
partial files: a transfer is buffered in memory and written in one go
once it has completed.
"""

import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import WriteFailure
from .resolver import confine_path

logger = logging.getLogger(__name__)


class DownloadStorage:
    """
    Local directory that received files are written into.

    Provides:
    - Mapping a requested name to a save path inside the directory
    - Whole-buffer overwrite writes
    - Removal of stale files after a failed transfer
    """

    def __init__(self, download_dir: Path):
        """
        Initialize download storage.

        Args:
            download_dir: Directory for saved files (created if missing)
        """
        self.download_dir = Path(download_dir)
        self.download_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        """
        Get the save path for a requested name.

        Raises:
            AccessDenied: if the name would land outside the download dir
        """
        return confine_path(self.download_dir, name)

    async def save(self, save_path: Path, data: bytes) -> int:
        """
        Write a completed transfer to disk, replacing any existing file.

        Returns:
            Number of bytes written
        """
        try:
            await aiofiles.os.makedirs(save_path.parent, exist_ok=True)
            async with aiofiles.open(save_path, 'wb') as f:
                await f.write(data)
        except OSError as e:
            raise WriteFailure(f"Failed to save {save_path}: {e}") from e

        return len(data)

    async def discard(self, save_path: Path) -> bool:
        """
        Remove the file at a save path, if any.

        Used after a failed transfer so no file is left looking like a
        successful download.
        """
        if not await aiofiles.os.path.exists(save_path):
            return False

        try:
            await aiofiles.os.remove(save_path)
        except OSError as e:
            logger.warning(f"Could not remove {save_path}: {e}")
            return False

        logger.debug(f"Removed {save_path}")
        return True
