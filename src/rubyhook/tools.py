from __future__ import annotations

import os
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
)

DEFAULT_UNIDIC_URL = "https://clrd.ninjal.ac.jp/unidic_archive/cwj/3.1.1/unidic-cwj-3.1.1-full.zip"
UNIDIC_VERSION = "3.1.1"
UNIDIC_DIR_ENV = "RUBYHOOK_UNIDIC_DIR"
_VERSION_FILE = ".rubyhook-version"


class UniDicInstallError(RuntimeError):
    pass


@dataclass(slots=True)
class UniDicStatus:
    version: str | None
    path: Path | None
    managed: bool


def managed_unidic_dir(data_dir: Path) -> Path:
    return data_dir / "dictionary" / "unidic"


def _has_dicrc(path: Path) -> bool:
    return (path / "dicrc").is_file()


def ensure_unidic_installed(
    data_dir: Path,
    *,
    url: str | None = DEFAULT_UNIDIC_URL,
    zip_path: str | None = None,
    force: bool = False,
) -> UniDicStatus:
    target_dir = managed_unidic_dir(data_dir)

    if _has_dicrc(target_dir) and not force:
        return resolve_managed_unidic(data_dir)

    archive_path = Path(zip_path) if zip_path else None
    if archive_path is not None and not archive_path.is_file():
        raise UniDicInstallError(f"Archive not found: {archive_path}")

    if archive_path is None:
        if url is None:
            raise UniDicInstallError("No download URL provided for UniDic installation.")
        archive_path = _download_unidic_archive(url, target_dir.parent)

    with tempfile.TemporaryDirectory() as tmpdir:
        tmp_path = Path(tmpdir)
        _extract_archive(archive_path, tmp_path)
        dic_root = _locate_dic_root(tmp_path)
        if dic_root is None:
            raise UniDicInstallError("Failed to locate dicrc inside the UniDic archive.")
        if target_dir.exists():
            shutil.rmtree(target_dir)
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(dic_root), str(target_dir))

    (target_dir / _VERSION_FILE).write_text(UNIDIC_VERSION, encoding="utf-8")
    return UniDicStatus(version=UNIDIC_VERSION, path=target_dir, managed=True)


def _download_unidic_archive(url: str, root: Path) -> Path:
    downloads = root / "downloads"
    downloads.mkdir(parents=True, exist_ok=True)
    filename = url.rstrip("/").split("/")[-1] or "unidic.zip"
    archive_path = downloads / filename
    try:
        response = requests.get(url, stream=True, timeout=60)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise UniDicInstallError(f"Failed to download UniDic archive: {exc}") from exc

    total = response.headers.get("Content-Length")
    total_bytes = int(total) if total and total.isdigit() else None
    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TimeRemainingColumn(),
        transient=True,
    )
    with archive_path.open("wb") as handle, progress:
        task = progress.add_task(f"Downloading UniDic {UNIDIC_VERSION}", total=total_bytes)
        for chunk in response.iter_content(chunk_size=1024 * 1024):
            if not chunk:
                continue
            handle.write(chunk)
            progress.advance(task, len(chunk))
    return archive_path


def _extract_archive(archive_path: Path, destination: Path) -> None:
    try:
        with zipfile.ZipFile(archive_path) as zf:
            zf.extractall(destination)
    except zipfile.BadZipFile as exc:
        raise UniDicInstallError(f"Not a zip archive: {archive_path}") from exc


def _locate_dic_root(base: Path) -> Path | None:
    # shallowest dicrc wins
    found = sorted(base.rglob("dicrc"), key=lambda path: len(path.parts))
    return found[0].parent if found else None


def resolve_managed_unidic(data_dir: Path) -> UniDicStatus:
    target = managed_unidic_dir(data_dir)
    if not _has_dicrc(target):
        return UniDicStatus(version=None, path=None, managed=False)
    try:
        version = (target / _VERSION_FILE).read_text(encoding="utf-8").strip() or None
    except FileNotFoundError:
        version = None
    return UniDicStatus(version=version, path=target, managed=True)


def get_unidic_dicdir(data_dir: Path) -> Path | None:
    managed = managed_unidic_dir(data_dir)
    if _has_dicrc(managed):
        return managed
    env_dir = os.environ.get(UNIDIC_DIR_ENV)
    if env_dir:
        candidate = Path(env_dir).expanduser()
        if _has_dicrc(candidate):
            return candidate
    try:
        import unidic  # type: ignore
    except ImportError:
        return None
    dicdir = Path(getattr(unidic, "DICDIR", ""))
    if dicdir and _has_dicrc(dicdir):
        return dicdir
    return None
