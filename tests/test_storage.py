# tests/test_storage.py

from __future__ import annotations

import io
from pathlib import Path

import pytest

from mediatask.common.errors import InvalidSpec
from mediatask.common.storage import LocalStorage


def test_same_name_uploads_do_not_overwrite(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path / "uploads")
    first = storage.save("cover.png", io.BytesIO(b"first"))
    second = storage.save("cover.png", io.BytesIO(b"second"))

    assert first.filename != second.filename
    assert first.path != second.path
    assert first.filename.endswith("_cover.png") and second.filename.endswith("_cover.png")
    assert Path(first.path).read_bytes() == b"first"
    assert Path(second.path).read_bytes() == b"second"


def test_client_directories_are_dropped(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path / "uploads", url_prefix="/files/")
    stored = storage.save("../../etc/audio.mp3", io.BytesIO(b"id3"))

    assert Path(stored.path).parent == tmp_path / "uploads"
    assert stored.url == f"/files/{stored.filename}"


@pytest.mark.parametrize("name", [None, "", "..", "uploads/../"])
def test_upload_needs_a_name(tmp_path: Path, name) -> None:
    storage = LocalStorage(tmp_path / "uploads")
    with pytest.raises(InvalidSpec):
        storage.save(name, io.BytesIO(b"x"))
    assert list((tmp_path / "uploads").iterdir()) == []
