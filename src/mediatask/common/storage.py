from __future__ import annotations

import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import BinaryIO

from .errors import InvalidSpec
from .types import StoredFile

logger = logging.getLogger(__name__)


class LocalStorage:
    """Keeps uploaded input files on local disk under ``upload_dir``."""

    def __init__(self, upload_dir: Path, url_prefix: str = "/api/uploads"):
        self.upload_dir = upload_dir
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, name: str | None, src: BinaryIO) -> StoredFile:
        # drop any client-supplied directories
        base = Path(name or "").name
        if not base or base in {".", ".."}:
            raise InvalidSpec("uploaded file needs a name")
        # the random part keeps same-second uploads of one name apart
        filename = f"{int(time.time())}_{uuid.uuid4().hex[:8]}_{base}"
        dest = self.upload_dir / filename
        with dest.open("xb") as out:
            shutil.copyfileobj(src, out)
        logger.info("Stored upload %s (%d bytes)", dest, dest.stat().st_size)
        return StoredFile(filename=filename, path=str(dest), url=f"{self.url_prefix}/{filename}")
