"""Flat CSV export of the held report list."""

from collections.abc import Sequence
from datetime import tzinfo

import pandas as pd

from checkin_console.services.normalizer import CheckInRecord, report_timezone

CSV_COLUMNS = [
    "ID",
    "Funcionário",
    "ID do Funcionário",
    "Data",
    "Hora",
    "Latitude",
    "Longitude",
    "Precisão",
    "Endereço",
    "Foto",
    "Dispositivo",
]


def records_to_frame(records: Sequence[CheckInRecord], tz: tzinfo | None = None) -> pd.DataFrame:
    tz = tz or report_timezone()
    rows = []
    for record in records:
        local = record.timestamp.astimezone(tz)
        rows.append(
            [
                record.id,
                record.username,
                record.user_id,
                local.strftime("%d/%m/%Y"),
                local.strftime("%H:%M:%S"),
                record.location.latitude,
                record.location.longitude,
                record.location.accuracy,
                record.address,
                record.photo_url or "",
                record.device_info,
            ]
        )
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def export_csv(records: Sequence[CheckInRecord], tz: tzinfo | None = None) -> bytes:
    """UTF-8 with BOM so spreadsheet tools pick up the accents."""
    return records_to_frame(records, tz).to_csv(index=False).encode("utf-8-sig")
