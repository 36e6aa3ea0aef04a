import csv
import gzip
import io
from typing import Iterable, List, Tuple

from app.services.report_schema import CompendiumEntry

# Export column order is fixed
COLUMNS: Tuple[str, ...] = (
    "name",
    "id",
    "category",
    "description",
    "image",
    "common_locations",
    "drops",
    "dlc",
)


def entry_row(entry: CompendiumEntry) -> List[str]:
    return [
        entry.name,
        str(entry.id),
        entry.category,
        entry.description,
        entry.image,
        ", ".join(entry.common_locations),
        ", ".join(entry.drops),
        "true" if entry.dlc else "false",
    ]


def build_csv_gz_bytes(entries: Iterable[CompendiumEntry]) -> bytes:
    """Render entries as a gzip-compressed CSV with a header row."""
    buffer = io.BytesIO()
    with gzip.GzipFile(fileobj=buffer, mode="wb") as gz:
        with io.TextIOWrapper(gz, encoding="utf-8", newline="") as text:
            writer = csv.writer(text)
            writer.writerow(COLUMNS)
            for entry in entries:
                writer.writerow(entry_row(entry))
    return buffer.getvalue()
