"""
Tests for the Drive v3 calls against the in-memory Drive from conftest.
"""
from unittest.mock import patch

import pytest
import requests

from kolp.errors import DriveError
from kolp.services import drive_service
from kolp.services.drive_service import delete_file, download_file, find_latest_backup, upload_file


class TestUpload:
    def test_upload_returns_id_and_stores_content(self, fake_drive):
        file_id = upload_file("access-1", b"KOLP\x01\x00\r\n--binary", "kolp_backup_x.klp")

        stored = fake_drive.files[file_id]
        assert stored["name"] == "kolp_backup_x.klp"
        assert stored["mimeType"] == "application/octet-stream"
        assert stored["content"] == b"KOLP\x01\x00\r\n--binary"

    def test_upload_error_carries_provider_message(self, fake_drive):
        with pytest.raises(DriveError) as exc:
            upload_file("wrong-token", b"data", "kolp_backup_x.klp")
        assert exc.value.msg == "Invalid Credentials"
        assert exc.value.status_code == 401

    def test_upload_transport_error(self):
        with patch.object(drive_service.requests, "request", side_effect=requests.ConnectionError("no route")):
            with pytest.raises(DriveError) as exc:
                upload_file("access-1", b"data", "kolp_backup_x.klp")
        assert "no route" in exc.value.msg


class TestFindLatest:
    def test_newest_backup_wins(self, fake_drive):
        fake_drive.add("kolp_backup_A")
        newer = fake_drive.add("kolp_backup_B")

        assert find_latest_backup("access-1") == newer

    def test_ignores_other_and_trashed_files(self, fake_drive):
        expected = fake_drive.add("kolp_backup_A")
        trashed = fake_drive.add("kolp_backup_B")
        fake_drive.files[trashed]["trashed"] = True
        fake_drive.add("holiday.jpg")
        fake_drive.add("kolp_backup_json", mime="application/json")

        assert find_latest_backup("access-1") == expected

    def test_none_when_empty(self, fake_drive):
        assert find_latest_backup("access-1") is None

    def test_query_parameters(self, fake_drive):
        with patch.object(drive_service.requests, "request", wraps=fake_drive.request) as request:
            find_latest_backup("access-1")

        params = request.call_args.kwargs["params"]
        assert "name contains 'kolp_backup'" in params["q"]
        assert "trashed=false" in params["q"]
        assert params["orderBy"] == "modifiedTime desc"
        assert params["pageSize"] == 1


class TestDownload:
    def test_returns_full_content(self, fake_drive):
        content = bytes(range(256)) * 100
        file_id = fake_drive.add("kolp_backup_A", content)

        assert download_file("access-1", file_id) == content

    def test_missing_file_raises(self, fake_drive):
        with pytest.raises(DriveError) as exc:
            download_file("access-1", "nope")
        assert exc.value.status_code == 404


class TestDelete:
    def test_delete_existing(self, fake_drive):
        file_id = fake_drive.add("kolp_backup_A")

        assert delete_file("access-1", file_id) is True
        assert file_id not in fake_drive.files

    def test_delete_missing_is_false(self, fake_drive):
        assert delete_file("access-1", "nope") is False

    def test_delete_transport_error_is_false(self):
        with patch.object(drive_service.requests, "delete", side_effect=requests.Timeout("timed out")):
            assert delete_file("access-1", "file-1") is False
