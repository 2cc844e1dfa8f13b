"""
Unit tests for ZIP archive reading
"""
import zipfile

import pytest

from picstash.services.archive_reader import (
    ZipArchiveReader,
    get_mime_type_from_extension,
    is_supported_image_extension,
)


@pytest.fixture
def archive_path(tmp_path):
    path = tmp_path / "photos.zip"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("album/", "")
        archive.writestr("album/beach.JPG", b"jpeg-bytes")
        archive.writestr("notes.txt", b"hello")
        archive.writestr("cat.png", b"png-bytes")
    return path


class TestExtensions:
    """Tests for extension helpers."""

    def test_supported_extensions(self):
        assert is_supported_image_extension(".jpg")
        assert is_supported_image_extension(".WEBP")
        assert not is_supported_image_extension(".txt")

    def test_mime_types(self):
        assert get_mime_type_from_extension(".jpeg") == "image/jpeg"
        assert get_mime_type_from_extension(".PNG") == "image/png"
        assert get_mime_type_from_extension(".xyz") == "application/octet-stream"


class TestZipArchiveReader:
    """Tests for listing and extracting entries."""

    def test_list_entries_in_archive_order(self, archive_path):
        entries = ZipArchiveReader(archive_path).list_entries()

        assert [e.index for e in entries] == [0, 1, 2, 3]
        assert entries[0].is_directory is True
        assert entries[0].filename == "album"
        assert entries[1].filename == "beach.JPG"
        assert entries[1].path == "album/beach.JPG"
        assert entries[1].extension == ".jpg"
        assert entries[1].size == len(b"jpeg-bytes")

    def test_image_entries(self, archive_path):
        images = ZipArchiveReader(archive_path).image_entries()

        assert [(e.index, e.filename) for e in images] == [(1, "beach.JPG"), (3, "cat.png")]

    def test_extract_entry(self, archive_path):
        assert ZipArchiveReader(archive_path).extract_entry(3) == b"png-bytes"

    def test_extract_out_of_range(self, archive_path):
        reader = ZipArchiveReader(archive_path)
        with pytest.raises(IndexError):
            reader.extract_entry(4)
        with pytest.raises(IndexError):
            reader.extract_entry(-1)

    def test_extract_directory(self, archive_path):
        with pytest.raises(IsADirectoryError):
            ZipArchiveReader(archive_path).extract_entry(0)

    def test_missing_archive(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ZipArchiveReader(tmp_path / "none.zip").list_entries()

    def test_not_a_zip(self, tmp_path):
        path = tmp_path / "fake.zip"
        path.write_bytes(b"plain text")
        with pytest.raises(zipfile.BadZipFile):
            ZipArchiveReader(path).list_entries()
