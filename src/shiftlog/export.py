"""Export collaborator: turn a Record list into a report table.

The column layout follows the plant's paper report. The table is a
pyarrow.Table so any Arrow-aware writer can consume it; CSV is written
here directly because it opens in every spreadsheet tool.
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Sequence

import pyarrow as pa
import pyarrow.csv as pa_csv
from loguru import logger

import shiftlog.errors as errors
from shiftlog.models import Record

COLUMNS = [
    ("Fecha", pa.date32()),
    ("Turno", pa.string()),
    ("Jefe de Turno", pa.string()),
    ("Máquina", pa.string()),
    ("Operario", pa.string()),
    ("Metros", pa.int64()),
    ("Cambios", pa.int64()),
    ("Comentarios/Incidencias", pa.string()),
]

REPORT_SCHEMA = pa.schema(COLUMNS)


def records_to_table(records: Sequence[Record]) -> pa.Table:
    """Build the report table, one row per Record, in the given order."""
    data = {
        "Fecha": [r.date for r in records],
        "Turno": [r.shift.value for r in records],
        "Jefe de Turno": [r.boss.value for r in records],
        "Máquina": [r.machine.value for r in records],
        "Operario": [r.operator for r in records],
        "Metros": [r.meters for r in records],
        "Cambios": [r.changes_count for r in records],
        "Comentarios/Incidencias": [r.changes_comment for r in records],
    }
    return pa.table(data, schema=REPORT_SCHEMA)


def default_filename(today: dt.date | None = None) -> str:
    return f"Reporte_Produccion_{(today or dt.date.today()).isoformat()}.csv"


def write_csv(records: Sequence[Record], path: Path | str) -> Path:
    """Write the report table to ``path`` as CSV. Returns the path written.

    Raises:
        ExportError: If the file cannot be written.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        pa_csv.write_csv(records_to_table(records), str(path))
    except (OSError, pa.ArrowException) as e:
        raise errors.ExportError(str(path), str(e)) from e
    logger.debug(f"Exported {len(records)} record(s) to {path}")
    return path
