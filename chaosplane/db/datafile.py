"""
Datastore path resolution.

CHAOSBLADE_DATAFILE_PATH decides where the datastore file lives:
- unset: ``chaosblade.dat`` beside the program
- existing directory, or a missing path without an extension: the file goes inside it
- existing file, or a missing path with an extension: that exact path
Any failure to stat or create directories falls back to the program directory.
"""

import os
import sys
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

DATA_FILE = "chaosblade.dat"


def program_dir() -> Path:
    """Directory of the running program (falls back to the working directory)."""
    if sys.argv and sys.argv[0]:
        return Path(sys.argv[0]).resolve().parent
    return Path.cwd()


def default_datafile(base: Optional[Path] = None) -> Path:
    return (base or program_dir()) / DATA_FILE


def resolve_datafile(env_path: Optional[str] = None, base: Optional[Path] = None) -> Path:
    """Resolve the datastore path from ``env_path`` (usually CHAOSBLADE_DATAFILE_PATH)."""
    if env_path is None:
        env_path = os.environ.get("CHAOSBLADE_DATAFILE_PATH", "")
    if not env_path:
        return default_datafile(base)

    path = Path(env_path)
    try:
        if path.is_dir():
            return path / DATA_FILE
        if path.exists():
            return path
    except OSError as exc:
        logger.warning("datafile_stat_failed", path=env_path, error=str(exc))
        return default_datafile(base)

    if path.suffix:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("datafile_parent_create_failed", path=str(path.parent), error=str(exc))
            return default_datafile(base)
        return path

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning("datafile_dir_create_failed", path=env_path, error=str(exc))
        return default_datafile(base)
    return path / DATA_FILE
