from __future__ import annotations

from vaultsync.models.config_models import MappingVariant
from vaultsync.models.error_record import CSV_NOT_FOUND, OUTPUT_NOT_FOUND
from vaultsync.models.job import DirectoryJobRegistry
from vaultsync.services.orchestrator import preview_file, preview_job

"""Integration tests: preview (mapping + photo check, no Vault calls)."""

HEADER = ["Card No", "Name", "Staff No", "MessHall"]


def test_preview_job(temp_workdir, job_dir, settings, csv_writer) -> None:
    """Job preview maps every row and reports photo presence."""
    csv_writer(job_dir / "CardDatafileformat_1.csv", HEADER,
               [["0000000001", "Alice", "S1", "Labota"], ["", "Bob", "S2", ""]])
    (job_dir / "S2.jpg").write_bytes(b"x")

    preview = preview_job(DirectoryJobRegistry(temp_workdir / "output"), "job-1", settings)

    assert preview.success
    assert [(r.row_index, r.card_no, r.has_photo) for r in preview.rows] == [(0, "0000000001", False), (1, "", True)]
    assert preview.rows[0].profile["AccessLevel"] == "1"
    assert "Photo" not in preview.rows[0].profile
    # nothing written to the job directory
    assert not list(job_dir.glob("vault-*"))


def test_preview_file_update_variant(job_dir, settings, csv_writer) -> None:
    """File preview uses the requested mapping variant."""
    path = csv_writer(job_dir / "update.csv", ["CARD NO", "NAME", "MESSHALL"], [["7", "Zed", "Makarti"]])
    preview = preview_file(path, MappingVariant.UPDATE, settings)
    assert preview.rows[0].profile["AccessLevel"] == "10"
    assert preview.rows[0].profile["VehicleNo"] == "Makarti"


def test_preview_errors(temp_workdir, job_dir, settings) -> None:
    """Missing directories and files come back as preview errors."""
    assert preview_job(DirectoryJobRegistry(temp_workdir / "output"), "missing", settings).errors[0].code == OUTPUT_NOT_FOUND
    result = preview_file(job_dir / "none.csv", MappingVariant.CREATE, settings)
    assert not result.success
    assert result.errors[0].code == CSV_NOT_FOUND
