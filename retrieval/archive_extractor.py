"""Unpacks decrypted record archives and sorts entries by file type."""

import io
import logging
import zipfile
import zlib
from pathlib import PurePosixPath

from common.constants import (
    APPLEDOUBLE_MARKER,
    DICOM_EXTENSIONS,
    IMAGE_EXTENSIONS,
    MACOS_METADATA_PREFIX,
    PDF_EXTENSIONS,
)
from retrieval.exceptions import ArchiveError
from retrieval.types import ClassifiedFileSet

logger = logging.getLogger(__name__)

_READ_ERRORS = (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError,
                RuntimeError, EOFError, ValueError, zlib.error)


def is_noise_entry(info: zipfile.ZipInfo) -> bool:
    """
    Check whether a zip entry carries no record content.

    Directories, the macOS resource-fork tree and AppleDouble ``._`` files
    inside a directory are noise. A ``._`` file at the archive root is kept.
    """
    if info.is_dir():
        return True
    if info.filename.startswith(MACOS_METADATA_PREFIX):
        return True
    return f"/{APPLEDOUBLE_MARKER}" in info.filename


def classify(filename: str) -> str:
    """
    Map an entry name to its bucket by lowercased extension.

    Args:
        filename: Entry path inside the archive

    Returns:
        One of 'dicom', 'images', 'pdf', 'other'
    """
    extension = PurePosixPath(filename).suffix.lower().lstrip('.')
    if extension in DICOM_EXTENSIONS:
        return 'dicom'
    if extension in IMAGE_EXTENSIONS:
        return 'images'
    if extension in PDF_EXTENSIONS:
        return 'pdf'
    return 'other'


def extract(plaintext: bytes) -> ClassifiedFileSet:
    """
    Extract and classify every content entry of a zip archive.

    Args:
        plaintext: Decrypted archive bytes

    Returns:
        ClassifiedFileSet with entries in archive order

    Raises:
        ArchiveError: If the bytes are not a zip archive or an entry cannot be read
    """
    files = ClassifiedFileSet()

    try:
        with zipfile.ZipFile(io.BytesIO(plaintext)) as archive:
            for info in archive.infolist():
                if is_noise_entry(info):
                    logger.debug(f"Skipping archive entry {info.filename}")
                    continue

                bucket = classify(info.filename)
                if bucket == 'other':
                    logger.warning(f"Unrecognised file type in archive: {info.filename}")

                files.add(bucket, info.filename, archive.read(info))
    except _READ_ERRORS as e:
        raise ArchiveError(f"Decrypted data is not a readable archive: {e}") from e

    logger.info(f"Extracted {files.count()} file(s) from archive: {files.summary()}")
    return files
