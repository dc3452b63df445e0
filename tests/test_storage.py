from datetime import date

import pytest

from app.sommertheater.storage import LocalStorage, S3Storage, StorageError, build_storage_key, storage_from_config


def test_build_storage_key():
    key = build_storage_key("/gallery/2024/", "Bühne Foto.png", upload_date=date(2024, 6, 1), unique="abc123")
    assert key == "gallery/2024/2024-06-01/abc123-Buhne_Foto.png"
    assert build_storage_key("docs", "../..", upload_date=date(2024, 6, 1)) == "docs/2024-06-01/datei.bin"


def test_local_storage_roundtrip(tmp_path):
    storage = LocalStorage(root=tmp_path)
    storage.put_bytes("a/b.txt", b"hallo")
    assert storage.exists("a/b.txt")
    with storage.open("a/b.txt") as f:
        assert f.read() == b"hallo"
    storage.delete("a/b.txt")
    storage.delete("a/b.txt")
    assert not storage.exists("a/b.txt")
    with pytest.raises(StorageError):
        storage.open("a/b.txt")
    with pytest.raises(StorageError):
        storage.put_bytes("../outside.txt", b"x")


def test_storage_from_config(tmp_path):
    assert storage_from_config({"LOCAL_STORAGE_ROOT": str(tmp_path)}) == LocalStorage(root=tmp_path)
    s3 = storage_from_config({"STORAGE_BACKEND": "S3", "S3_BUCKET": " fotos ", "S3_ENDPOINT": "fra1.example.com"})
    assert isinstance(s3, S3Storage)
    assert s3.bucket == "fotos"
    assert s3.region == "fra1"
