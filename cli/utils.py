"""Utility functions for CLI operations."""

from pathlib import Path, PurePosixPath
from typing import Dict, List

from retrieval.schemas import MedicalRecord
from retrieval.types import ClassifiedFileSet


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit for readability.

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"


def _unique_path(directory: Path, filename: str) -> Path:
    candidate = directory / filename
    stem, suffix = candidate.stem, candidate.suffix
    index = 1
    while candidate.exists():
        candidate = directory / f"{stem}_{index}{suffix}"
        index += 1
    return candidate


def save_file_set(files: ClassifiedFileSet, output_dir: Path) -> Dict[str, List[Path]]:
    """
    Write extracted entries to ``output_dir/<bucket>/``.

    Only the base name of each archive entry is used, so entries cannot be
    written outside their bucket directory. Name collisions get a numeric
    suffix.

    Args:
        files: Extracted archive entries
        output_dir: Destination root

    Returns:
        Written paths per bucket (empty buckets omitted)
    """
    written: Dict[str, List[Path]] = {}
    for bucket in files.BUCKETS:
        entries = getattr(files, bucket)
        if not entries:
            continue
        bucket_dir = output_dir / bucket
        bucket_dir.mkdir(parents=True, exist_ok=True)
        for index, (name, data) in enumerate(zip(files.entry_names[bucket], entries)):
            filename = PurePosixPath(name).name or f"entry_{index}"
            path = _unique_path(bucket_dir, filename)
            path.write_bytes(data)
            written.setdefault(bucket, []).append(path)
    return written


def format_record_row(record: MedicalRecord) -> str:
    """One-line listing of a record."""
    recorded = record.recorded_at.strftime('%Y-%m-%d') if record.date else '-'
    title = record.title or '(untitled)'
    return (
        f"  #{record.id:<6} {recorded}  {record.status.value:<11} {title}  "
        f"[{record.from_doctor or '?'} -> {record.to_doctor or '?'}]  patient: {record.patient_name or '-'}"
    )
