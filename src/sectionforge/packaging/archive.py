"""Zip and tar archive writers.

Member timestamps and modes are pinned, so the same entries always
produce byte-identical archives.
"""

from __future__ import annotations

import gzip
import io
import tarfile
import zipfile
from pathlib import Path
from typing import BinaryIO

from sectionforge.constants import CompressionLevel, PackageFormat

_ZLIB_LEVELS: dict[CompressionLevel, int] = {
    CompressionLevel.NONE: 0,
    CompressionLevel.FAST: 1,
    CompressionLevel.BEST: 9,
}

# 1980-01-01 00:00 UTC, the earliest date a zip header can hold
ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)
ARCHIVE_MTIME = 315532800
_MEMBER_MODE = 0o644


def archive_suffix(
    fmt: PackageFormat, level: CompressionLevel
) -> str:
    if fmt == PackageFormat.ZIP:
        return ".zip"
    return ".tar" if level == CompressionLevel.NONE else ".tar.gz"


def _write_zip(
    path: Path, entries: dict[str, bytes], level: CompressionLevel
) -> None:
    if level == CompressionLevel.NONE:
        compress_type, compresslevel = zipfile.ZIP_STORED, None
    else:
        compress_type = zipfile.ZIP_DEFLATED
        compresslevel = _ZLIB_LEVELS[level]
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in entries.items():
            info = zipfile.ZipInfo(name, date_time=ZIP_DATE_TIME)
            info.external_attr = _MEMBER_MODE << 16
            zf.writestr(
                info,
                data,
                compress_type=compress_type,
                compresslevel=compresslevel,
            )


def _add_tar_members(
    fileobj: BinaryIO, entries: dict[str, bytes]
) -> None:
    with tarfile.open(fileobj=fileobj, mode="w") as tf:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mtime = ARCHIVE_MTIME
            info.mode = _MEMBER_MODE
            tf.addfile(info, io.BytesIO(data))


def _write_tar(
    path: Path, entries: dict[str, bytes], level: CompressionLevel
) -> None:
    with path.open("wb") as raw:
        if level == CompressionLevel.NONE:
            _add_tar_members(raw, entries)
            return
        with gzip.GzipFile(
            filename="",
            mode="wb",
            fileobj=raw,
            compresslevel=_ZLIB_LEVELS[level],
            mtime=ARCHIVE_MTIME,
        ) as gz:
            _add_tar_members(gz, entries)  # type: ignore[arg-type]


def write_archive(
    path: Path,
    entries: dict[str, bytes],
    fmt: PackageFormat,
    level: CompressionLevel,
) -> int:
    """Write ``entries`` to ``path`` and return the archive size."""
    if fmt == PackageFormat.ZIP:
        _write_zip(path, entries, level)
    else:
        _write_tar(path, entries, level)
    return path.stat().st_size


def compression_ratio(uncompressed: int, compressed: int) -> float:
    """``(uncompressed - compressed) / uncompressed``, 0 when empty."""
    if uncompressed <= 0:
        return 0.0
    return round((uncompressed - compressed) / uncompressed, 4)


def read_archive_names(path: Path) -> list[str]:
    """Entry names of an existing archive, in stored order."""
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as zf:
            return zf.namelist()
    with tarfile.open(path, "r:*") as tf:
        return tf.getnames()
