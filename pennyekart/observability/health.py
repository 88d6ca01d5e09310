from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from pennyekart.config import Config
from pennyekart.database import engine


def check_database_health() -> Dict[str, str]:
    """Attempt a lightweight DB query to ensure connectivity."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return {"status": "UP"}
    except OperationalError as exc:
        return {"status": "DOWN", "detail": str(exc)}


def check_blob_storage_health(root: Path | None = None) -> Dict[str, str]:
    """Uploaded images land here; the directory must exist and be writable."""
    root = Path(root or Config.BLOB_STORAGE_DIR)
    if not root.is_dir():
        return {"status": "DOWN", "detail": f"{root} does not exist"}
    if not os.access(root, os.W_OK):
        return {"status": "DOWN", "detail": f"{root} is not writable"}
    return {"status": "UP"}
