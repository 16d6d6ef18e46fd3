"""Tests for the CSV report export."""

from __future__ import annotations

import csv
import datetime as dt

import pyarrow as pa
import pytest

import shiftlog.errors as errors
import shiftlog.export as export
from shiftlog.models import Boss, Machine, Shift


class TestRecordsToTable:
    def test_schema_and_rows(self, make_record) -> None:
        records = [
            make_record(
                date=dt.date(2024, 1, 2),
                machine=Machine.GIAVE,
                shift=Shift.NIGHT,
                boss=Boss.NAVARRO,
                operator="Ana",
                meters=4200,
                changes_count=2,
                changes_comment="Montado",
            ),
            make_record(),
        ]

        table = export.records_to_table(records)

        assert table.schema == export.REPORT_SCHEMA
        assert table.num_rows == 2
        first = table.slice(0, 1).to_pylist()[0]
        assert first == {
            "Fecha": dt.date(2024, 1, 2),
            "Turno": "Noche",
            "Jefe de Turno": "J.Navarro",
            "Máquina": "Giave",
            "Operario": "Ana",
            "Metros": 4200,
            "Cambios": 2,
            "Comentarios/Incidencias": "Montado",
        }

    def test_empty(self) -> None:
        table = export.records_to_table([])

        assert table.num_rows == 0
        assert table.schema.field("Metros").type == pa.int64()


class TestWriteCsv:
    def test_writes_header_and_rows(self, tmp_path, make_record) -> None:
        path = export.write_csv(
            [make_record(meters=1500, changes_comment="Bio")], tmp_path / "out" / "report.csv"
        )

        with path.open(encoding="utf-8") as f:
            rows = list(csv.DictReader(f))

        assert list(rows[0]) == [name for name, _ in export.COLUMNS]
        assert rows[0]["Metros"] == "1500"
        assert rows[0]["Comentarios/Incidencias"] == "Bio"
        assert rows[0]["Fecha"] == "2024-01-01"

    def test_unwritable_path(self, tmp_path, make_record) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")

        with pytest.raises(errors.ExportError):
            export.write_csv([make_record()], blocker / "report.csv")

    def test_default_filename(self) -> None:
        assert (
            export.default_filename(dt.date(2024, 3, 9))
            == "Reporte_Produccion_2024-03-09.csv"
        )
