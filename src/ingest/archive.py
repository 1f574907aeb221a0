"""
ZIP and GZIP input unpacking.

Archived inputs are extracted into a temporary directory and the run
proceeds on the extracted file (or directory) as if it had been given
directly. Runs use ``unpacked_input()``, which removes that directory when
the run ends.
"""

import gzip
import logging
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Generator, List, Optional, Tuple

from src.ingest.errors import ArchiveError

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSIONS = ("zip", "gz")
ARCHIVE_RECORD_EXTENSIONS = ("csv", "tsv", "json", "jsonl")


def extension_of(path: str) -> str:
    return Path(path).suffix.lower().lstrip(".")


def normalize_input(
    path: str, zip_path: Optional[str] = None, workdir: Optional[str] = None
) -> Tuple[str, str]:
    """
    Resolve an input path to ``(readable_path, provider_ext)``.

    ``.zip`` and ``.gz`` inputs are unpacked; anything else is returned
    unchanged. Directories resolve to the ``json_dir`` provider.

    Args:
        path: Input path as given by the caller
        zip_path: Entry (file or directory) to pick inside a ZIP input
        workdir: Directory to extract into; a new temporary directory when
            omitted, left for the caller to remove

    Raises:
        ArchiveError: If the archive cannot be read or holds no record file
    """
    if Path(path).is_dir():
        return path, "json_dir"

    ext = extension_of(path)
    if ext == "zip":
        return unpack_zip(path, zip_path, workdir)
    if ext == "gz":
        return unpack_gzip(path, workdir)
    return path, ext


@contextmanager
def unpacked_input(path: str, zip_path: Optional[str] = None) -> Generator[Tuple[str, str], None, None]:
    """
    ``normalize_input`` for the length of a block.

    Anything extracted from an archive is deleted when the block exits.
    """
    if Path(path).is_dir() or extension_of(path) not in ARCHIVE_EXTENSIONS:
        yield normalize_input(path, zip_path)
        return

    with tempfile.TemporaryDirectory(prefix="loose_ingest_") as workdir:
        yield normalize_input(path, zip_path, workdir)


def _target_dir(workdir: Optional[str], prefix: str) -> str:
    return workdir if workdir is not None else tempfile.mkdtemp(prefix=prefix)


def _entry_ext(name: str) -> str:
    return PurePosixPath(name).suffix.lower().lstrip(".")


def _locate(names: List[str], wanted: str) -> Optional[str]:
    """Case-insensitive lookup of a ZIP entry, as file or as directory."""
    wanted = wanted.strip("/").lower()
    for name in names:
        if name.rstrip("/").lower() == wanted:
            return name
    # directories without an explicit entry
    prefix = wanted + "/"
    for name in names:
        if name.lower().startswith(prefix):
            return name[:len(prefix)]
    return None


def unpack_zip(
    archive_path: str, filter_path: Optional[str] = None, workdir: Optional[str] = None
) -> Tuple[str, str]:
    logger.info(f"ZIP input detected: {archive_path}")
    try:
        zf = zipfile.ZipFile(archive_path)
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f'Unable to open ZIP file "{archive_path}": {e}') from e

    with zf:
        names = zf.namelist()

        if filter_path:
            entry = _locate(names, filter_path)
            if entry is None:
                raise ArchiveError(
                    f'File or directory "{filter_path}" not found inside ZIP "{archive_path}".'
                )

            if entry.endswith("/"):
                members = [
                    n for n in names
                    if n.lower().startswith(entry.lower())
                    and not n.endswith("/")
                    and _entry_ext(n) in ARCHIVE_RECORD_EXTENSIONS
                ]
                if not members:
                    raise ArchiveError(
                        f'Directory "{entry}" inside ZIP "{archive_path}" does not contain '
                        f'any JSON/JSONL/CSV files.'
                    )
                tmp_dir = _target_dir(workdir, "loose_ingest_zip_dir_")
                zf.extractall(tmp_dir, members)
                records_dir = str(Path(tmp_dir) / entry.rstrip("/"))
                logger.info(f"ZIP directory {entry} extracted to {records_dir}")
                return records_dir, "json_dir"

            return _extract_member(zf, entry, archive_path, workdir)

        for name in names:
            if name.endswith("/"):
                continue
            if _entry_ext(name) in ARCHIVE_RECORD_EXTENSIONS:
                return _extract_member(zf, name, archive_path, workdir)

    raise ArchiveError(f'ZIP file "{archive_path}" does not contain a CSV, JSON, or JSONL file.')


def _extract_member(
    zf: zipfile.ZipFile, name: str, archive_path: str, workdir: Optional[str] = None
) -> Tuple[str, str]:
    tmp_dir = _target_dir(workdir, "loose_ingest_zip_")
    try:
        extracted = zf.extract(name, tmp_dir)
    except (OSError, KeyError, zipfile.BadZipFile) as e:
        raise ArchiveError(f'Failed to extract "{name}" from ZIP file "{archive_path}": {e}') from e
    ext = _entry_ext(name)
    logger.info(f"Using {name!r} from ZIP (.{ext})")
    return extracted, ext


def unpack_gzip(archive_path: str, workdir: Optional[str] = None) -> Tuple[str, str]:
    logger.info(f"GZIP input detected: {archive_path}")
    inner_name = Path(archive_path).stem
    inner_ext = extension_of(inner_name)
    if not inner_ext:
        raise ArchiveError(
            f'Cannot infer underlying extension from GZIP file "{archive_path}". '
            f'Expected something like ".csv.gz" or ".json.gz".'
        )

    tmp_dir = _target_dir(workdir, "loose_ingest_gz_")
    out_path = Path(tmp_dir) / inner_name
    try:
        with gzip.open(archive_path, "rb") as src, open(out_path, "wb") as dst:
            shutil.copyfileobj(src, dst)
    except (OSError, EOFError) as e:
        raise ArchiveError(f'Unable to decompress GZIP file "{archive_path}": {e}') from e

    logger.info(f"GZIP decompressed to {out_path} (.{inner_ext})")
    return str(out_path), inner_ext
