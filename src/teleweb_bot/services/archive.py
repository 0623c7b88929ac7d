"""Zip creation and extraction for the archive feature."""

import zipfile
from pathlib import Path

SUPPORTED_ARCHIVES = (".zip",)


def build_zip(files: list[Path], target: Path) -> Path:
    """Pack ``files`` into ``target``; duplicate names get a numeric suffix."""
    target.parent.mkdir(parents=True, exist_ok=True)
    used: set[str] = set()
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in files:
            archive.write(path, arcname=_unique_name(path.name, used))
    return target


def extract_zip(source: Path, target_dir: Path) -> list[Path]:
    """Extract a zip archive and return the extracted files.

    Members that would land outside ``target_dir`` are skipped.
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    root = target_dir.resolve()
    extracted: list[Path] = []
    with zipfile.ZipFile(source) as archive:
        for member in archive.infolist():
            if member.is_dir():
                continue
            destination = (root / member.filename).resolve()
            if not destination.is_relative_to(root):
                continue
            destination.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member) as reader, destination.open("wb") as writer:
                while chunk := reader.read(1024 * 1024):
                    writer.write(chunk)
            extracted.append(destination)
    return extracted


def is_supported_archive(file_name: str) -> bool:
    return file_name.lower().endswith(SUPPORTED_ARCHIVES)


def _unique_name(name: str, used: set[str]) -> str:
    candidate = name
    stem, dot, suffix = name.rpartition(".")
    if not dot:
        stem, suffix = name, ""
    counter = 1
    while candidate in used:
        candidate = f"{stem}_{counter}.{suffix}" if suffix else f"{stem}_{counter}"
        counter += 1
    used.add(candidate)
    return candidate
