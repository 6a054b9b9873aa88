"""
Tests for BackupExporter: CSV snapshots, best-effort S3 mirroring, and
artifact listing / lookup.
"""
import os
import pytest
import pandas as pd
from unittest.mock import Mock, patch
from freezegun import freeze_time

from marketsync.backups.errors import ArtifactNotFound, InvalidArtifactName
from marketsync.backups.exporter import BackupExporter, parse_artifact_name
from marketsync.backups.storage import S3BackupMirror
from marketsync.models import db


@pytest.fixture
def exporter(backup_dir):
    return BackupExporter(str(backup_dir))


@pytest.fixture
def seeded(make_order, make_product, make_user):
    """Two orders (which also creates buyers, sellers and products) plus one deleted product."""
    make_order()
    make_order(status="pending")
    make_product(name="Discontinued", deleted=True)


class TestExportEntity:

    def test_accounts_row_count_matches_users(self, app, exporter, seeded):
        from marketsync.models import User

        result = exporter.export_entity("accounts")

        assert result.row_count == User.query.count()
        df = pd.read_csv(result.path)
        assert len(df) == result.row_count
        assert list(df.columns)[:3] == ["ID", "Username", "Email"]

    def test_catalog_items_exclude_deleted_products(self, app, exporter, seeded):
        result = exporter.export_entity("catalog-items")

        df = pd.read_csv(result.path)
        assert result.row_count == 2
        assert "Discontinued" not in df["Name"].tolist()
        assert df["Seller Username"].notna().all()

    def test_transactions_include_buyer_and_shipment_columns(self, app, exporter, seeded):
        result = exporter.export_entity("transactions")

        df = pd.read_csv(result.path)
        assert result.row_count == 2
        for column in ("User Name", "User Email", "Carrier Order ID", "AWB Code", "Shipping Status"):
            assert column in df.columns

    def test_empty_table_writes_header_only(self, app, exporter):
        result = exporter.export_entity("transactions")

        assert result.row_count == 0
        with open(result.path) as fh:
            assert fh.read().strip().startswith("ID,User ID")

    def test_unknown_entity_rejected(self, app, exporter):
        with pytest.raises(ValueError, match="Unsupported backup entity type"):
            exporter.export_entity("products")

    @freeze_time("2024-01-01 00:00:00.123")
    def test_filename_carries_millisecond_timestamp(self, app, exporter):
        result = exporter.export_entity("accounts")

        assert result.filename.startswith("accounts-backup-2024-01-01T00-00-00-123Z-")
        assert parse_artifact_name(result.filename) == "accounts"

    def test_failed_write_leaves_no_artifact(self, app, exporter, backup_dir):
        def partial_write(path, index=False):
            with open(path, "w") as fh:
                fh.write("ID\n1\n")
            raise OSError("disk full")

        df = Mock()
        df.to_csv.side_effect = partial_write
        with patch.dict("marketsync.backups.exporter.ENTITY_QUERIES", {"accounts": Mock(return_value=df)}):
            with pytest.raises(OSError, match="disk full"):
                exporter.export_entity("accounts")

        assert exporter.list_artifacts()["accounts"] == []
        assert os.listdir(backup_dir) == []

    @freeze_time("2024-01-01 00:00:00")
    def test_same_instant_exports_do_not_collide(self, app, exporter):
        first = exporter.export_entity("accounts")
        second = exporter.export_entity("accounts")

        assert first.filename != second.filename
        assert os.path.exists(first.path) and os.path.exists(second.path)


class TestMirror:

    def test_uploaded_result(self, app, backup_dir):
        s3 = Mock()
        mirror = S3BackupMirror(bucket="bucket", region="ap-south-1", client=s3)
        exporter = BackupExporter(str(backup_dir), mirror=mirror)

        with freeze_time("2024-02-03 04:05:06"):
            result = exporter.export_entity("accounts")

        assert result.uploaded is True
        assert result.remote_key == f"backups/2024-02-03/{result.filename}"
        kwargs = s3.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "bucket"
        assert kwargs["ContentType"] == "text/csv"

    def test_upload_failure_keeps_local_file(self, app, backup_dir):
        mirror = Mock()
        mirror.upload.side_effect = RuntimeError("S3 unavailable")
        exporter = BackupExporter(str(backup_dir), mirror=mirror)

        result = exporter.export_entity("accounts")

        assert result.uploaded is False
        assert result.local_only is True
        assert result.upload_error == "S3 unavailable"
        assert os.path.exists(result.path)


class TestExportAll:

    def test_exports_every_entity_in_order(self, app, exporter, seeded):
        results = exporter.export_all()

        assert list(results) == ["accounts", "catalog-items", "transactions"]
        assert all(os.path.exists(r.path) for r in results.values())

    def test_first_failure_aborts(self, app, exporter):
        failing = Mock(side_effect=RuntimeError("db down"))
        with patch.dict("marketsync.backups.exporter.ENTITY_QUERIES", {"catalog-items": failing}):
            with pytest.raises(RuntimeError, match="db down"):
                exporter.export_all()

        listing = exporter.list_artifacts()
        assert len(listing["accounts"]) == 1
        assert listing["catalog-items"] == []
        assert listing["transactions"] == []


class TestArtifacts:

    def test_list_groups_by_entity_and_ignores_unrelated_files(self, app, exporter, backup_dir):
        backup_dir.mkdir(parents=True)
        for name in (
            "accounts-backup-2024-01-01T00-00-00-000Z-aaaaaa.csv",
            "accounts-backup-2024-01-02T00-00-00-000Z-bbbbbb.csv",
            "transactions-backup-2024-01-01T00-00-00-000Z-cccccc.csv",
            "products-backup-2024-01-01T00-00-00-000Z-dddddd.csv",
            "notes.txt",
        ):
            (backup_dir / name).write_text("ID\n")

        listing = exporter.list_artifacts()

        assert listing["accounts"] == [
            "accounts-backup-2024-01-02T00-00-00-000Z-bbbbbb.csv",
            "accounts-backup-2024-01-01T00-00-00-000Z-aaaaaa.csv",
        ]
        assert listing["catalog-items"] == []
        assert listing["transactions"] == ["transactions-backup-2024-01-01T00-00-00-000Z-cccccc.csv"]

    def test_list_without_directory(self, app, exporter):
        assert exporter.list_artifacts() == {"accounts": [], "catalog-items": [], "transactions": []}

    @pytest.mark.parametrize("filename", [
        "../etc/passwd",
        "accounts-backup-../../secret.csv",
        "accounts-backup-2024/x.csv",
        "products-backup-2024-01-01.csv",
        "accounts-backup-.csv",
        "",
    ])
    def test_invalid_names_rejected_before_filesystem_access(self, exporter, filename):
        with patch("marketsync.backups.exporter.os.path.isfile") as isfile, \
             patch("marketsync.backups.exporter.os.remove") as remove:
            with pytest.raises(InvalidArtifactName):
                exporter.fetch_artifact_path(filename)
            with pytest.raises(InvalidArtifactName):
                exporter.delete_artifact(filename)

        isfile.assert_not_called()
        remove.assert_not_called()

    def test_missing_artifact(self, exporter):
        with pytest.raises(ArtifactNotFound):
            exporter.fetch_artifact_path("accounts-backup-2024-01-01T00-00-00-000Z-abcdef.csv")

    def test_delete_artifact(self, app, exporter):
        result = exporter.export_entity("accounts")

        exporter.delete_artifact(result.filename)

        assert not os.path.exists(result.path)
        assert exporter.list_artifacts()["accounts"] == []
