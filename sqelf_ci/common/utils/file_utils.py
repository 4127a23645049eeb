from pathlib import Path
from typing import Iterator, List, Union
import os
import shutil
import stat
import sys

from sqelf_ci.common.config.logging_config import get_logger


logger = get_logger(__name__)


def ensure_directory(
    directory: Union[str, Path],
    mode: int = 0o755,
) -> Path:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True, mode=mode)
    return directory


def get_file_size(
    file_path: Union[str, Path],
) -> int:
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    return file_path.stat().st_size


def _remove_readonly(func, path, _exc) -> None:
    os.chmod(path, stat.S_IWRITE)
    func(path)


def _remove_tree(path: Path) -> None:
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_remove_readonly)
    else:
        shutil.rmtree(path, onerror=_remove_readonly)


def empty_directory(directory: Union[str, Path]) -> int:
    """Remove everything inside ``directory`` and return how many entries went.

    Errors propagate; callers decide whether a partial clean is fatal.
    """
    directory = Path(directory)
    removed = 0
    for entry in list(directory.iterdir()):
        if entry.is_dir() and not entry.is_symlink():
            _remove_tree(entry)
        else:
            entry.unlink()
        removed += 1
    return removed


def relative_tree(directory: Union[str, Path]) -> List[str]:
    directory = Path(directory)
    return sorted(str(p.relative_to(directory)) for p in directory.rglob("*"))


def iter_lines(
    file_path: Union[str, Path],
    encoding: str = "utf-8",
) -> Iterator[str]:
    with open(file_path, "r", encoding=encoding, errors="replace") as f:
        for line in f:
            yield line.rstrip("\r\n")


def copy_executable(
    source: Union[str, Path],
    destination: Union[str, Path],
) -> Path:
    source = Path(source)
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
    mode = destination.stat().st_mode
    destination.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    logger.debug(f"Copied {source} to {destination}")
    return destination
