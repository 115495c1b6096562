from __future__ import annotations

import zipfile

import pytest

import rubyhook.tools as tools


def _write_unidic_zip(path, with_dicrc: bool = True):
    with zipfile.ZipFile(path, "w") as zf:
        if with_dicrc:
            zf.writestr("unidic-cwj-3.1.1/dicrc", "; dicrc\n")
        zf.writestr("unidic-cwj-3.1.1/sys.dic", b"\0" * 8)
    return path


def test_install_from_local_zip(tmp_path) -> None:
    archive = _write_unidic_zip(tmp_path / "unidic.zip")
    data_dir = tmp_path / "data"

    status = tools.ensure_unidic_installed(data_dir, zip_path=str(archive))

    assert status.managed
    assert status.path == data_dir / "dictionary" / "unidic"
    assert (status.path / "dicrc").is_file()
    assert tools.resolve_managed_unidic(data_dir).version == tools.UNIDIC_VERSION
    assert tools.get_unidic_dicdir(data_dir) == status.path


def test_install_skips_when_present(tmp_path, monkeypatch) -> None:
    target = tools.managed_unidic_dir(tmp_path)
    target.mkdir(parents=True)
    (target / "dicrc").write_text("", encoding="utf-8")

    def _no_download(url, root):
        raise AssertionError("should not download")

    monkeypatch.setattr(tools, "_download_unidic_archive", _no_download)
    status = tools.ensure_unidic_installed(tmp_path)
    assert status.path == target


def test_install_errors(tmp_path) -> None:
    with pytest.raises(tools.UniDicInstallError):
        tools.ensure_unidic_installed(tmp_path, zip_path=str(tmp_path / "missing.zip"))
    archive = _write_unidic_zip(tmp_path / "broken.zip", with_dicrc=False)
    with pytest.raises(tools.UniDicInstallError):
        tools.ensure_unidic_installed(tmp_path / "data", zip_path=str(archive))
    not_zip = tmp_path / "plain.zip"
    not_zip.write_text("nope", encoding="utf-8")
    with pytest.raises(tools.UniDicInstallError):
        tools.ensure_unidic_installed(tmp_path / "data", zip_path=str(not_zip))


def test_dicdir_env_override(tmp_path, monkeypatch) -> None:
    custom = tmp_path / "custom"
    custom.mkdir()
    (custom / "dicrc").write_text("", encoding="utf-8")
    monkeypatch.setenv(tools.UNIDIC_DIR_ENV, str(custom))
    assert tools.get_unidic_dicdir(tmp_path / "data") == custom


def test_status_without_install(tmp_path) -> None:
    status = tools.resolve_managed_unidic(tmp_path)
    assert status.path is None
    assert not status.managed
