"""Zip packing and unpacking of plugin content."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import zipfile
from pathlib import Path

from metaverse_sdk_automation.exceptions import ArchiveError

logger = logging.getLogger(__name__)


def _iter_files(root: Path) -> list[Path]:
    """Return ``root`` and everything below it, directories first."""
    if root.is_file():
        return [root]
    entries = [root]
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        base = Path(dirpath)
        entries.extend(base / name for name in dirnames)
        entries.extend(base / name for name in sorted(filenames))
    return entries


def pack_directory(content_dir: Path, archive_path: Path) -> int:
    """Zip every entry of ``content_dir`` at the root of a new archive.

    Entries keep their names relative to ``content_dir`` and their permission
    bits.

    Args:
        content_dir: Directory whose children are archived.
        archive_path: Zip file to create, overwritten when present.

    Returns:
        Size of the written archive in bytes.

    Raises:
        ArchiveError: If the content cannot be listed or the archive written.
    """
    try:
        items = sorted(content_dir.iterdir())
    except OSError as e:
        raise ArchiveError(f"failed to read content dir: {e}") from e

    try:
        with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED) as zf:
            for item in items:
                for path in _iter_files(item):
                    arcname = path.relative_to(content_dir).as_posix()
                    zf.write(path, arcname)
    except OSError as e:
        raise ArchiveError(f"failed to zip release archive files: {e}") from e

    size = archive_path.stat().st_size
    logger.debug("packed %d entries into %s (%d bytes)", len(items), archive_path, size)
    return size


def _safe_target(destination: Path, name: str) -> Path:
    target = (destination / name).resolve()
    root = destination.resolve()
    if target != root and root not in target.parents:
        raise ArchiveError(f"archive entry escapes the destination: {name}")
    return target


def unpack_archive(archive_path: Path, destination: Path) -> list[Path]:
    """Extract a zip archive, restoring the permission bits of each entry.

    Args:
        archive_path: Zip file to read.
        destination: Directory receiving the entries, created when missing.

    Returns:
        Paths of the extracted files.

    Raises:
        ArchiveError: If the archive is invalid, an entry would land outside
            ``destination`` or a file cannot be written.
    """
    extracted: list[Path] = []
    dir_modes: list[tuple[Path, int]] = []
    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            destination.mkdir(parents=True, exist_ok=True)
            for info in zf.infolist():
                target = _safe_target(destination, info.filename)
                mode = stat.S_IMODE(info.external_attr >> 16)

                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    if mode:
                        dir_modes.append((target, mode))
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as source, open(target, "wb") as out:
                    shutil.copyfileobj(source, out)
                if mode:
                    os.chmod(target, mode)
                extracted.append(target)

            # Directory modes last, a read-only directory still receives its files.
            for directory, mode in reversed(dir_modes):
                os.chmod(directory, mode)
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"invalid archive {archive_path}: {e}") from e
    except OSError as e:
        raise ArchiveError(f"failed to unzip release archive files: {e}") from e

    logger.debug("unpacked %d files into %s", len(extracted), destination)
    return extracted
