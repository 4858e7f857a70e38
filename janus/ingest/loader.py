"""CSV snapshot loader.

Reads the raw certificate split export, the broker master list and the
optional schedule master list into a validated :class:`Snapshot`.  Column
headers are the snake_case field names of the record models; unknown columns
are ignored and empty cells are treated as missing values.

Any row that fails validation aborts the load with a :class:`SnapshotError`
naming the file and line, because a bad date or percent would otherwise
corrupt every signature computed downstream.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from janus.exceptions import SnapshotError
from janus.ingest.schemas import BrokerRecord, CertificateSplitRecord, ScheduleRecord, Snapshot

logger = logging.getLogger("janus.ingest.loader")

ModelT = TypeVar("ModelT", bound=BaseModel)


class SnapshotLoader:
    """Loads snapshot CSV files.

    Usage::

        snapshot = SnapshotLoader().load("certificates.csv", "brokers.csv")
    """

    def __init__(self, encoding: str = "utf-8-sig") -> None:
        self.encoding = encoding

    def load(
        self,
        certificates_path: str | Path,
        brokers_path: str | Path,
        schedules_path: str | Path | None = None,
    ) -> Snapshot:
        records = self.read_rows(certificates_path, CertificateSplitRecord)
        brokers = self.read_rows(brokers_path, BrokerRecord)
        schedules = (
            self.read_rows(schedules_path, ScheduleRecord) if schedules_path is not None else None
        )
        logger.info(
            "Loaded snapshot: %d split rows, %d brokers, %s schedules",
            len(records),
            len(brokers),
            len(schedules) if schedules is not None else "no",
        )
        return Snapshot(records=records, brokers=brokers, schedules=schedules)

    def read_rows(self, path: str | Path, model: type[ModelT]) -> list[ModelT]:
        """Parse every data row of *path* into *model* instances."""
        path = Path(path)
        if not path.exists():
            raise SnapshotError("file not found", source=str(path))

        required = {
            name for name, field in model.model_fields.items() if field.is_required()
        }
        rows: list[ModelT] = []
        with path.open(newline="", encoding=self.encoding) as fh:
            reader = csv.DictReader(fh)
            headers = {h.strip() for h in (reader.fieldnames or [])}
            missing = sorted(required - headers)
            if missing:
                raise SnapshotError(
                    f"missing required columns: {', '.join(missing)}", source=str(path)
                )
            for raw in reader:
                cleaned = {
                    (key or "").strip(): value.strip()
                    for key, value in raw.items()
                    if key is not None and value is not None and value.strip() != ""
                }
                try:
                    rows.append(model.model_validate(cleaned))
                except ValidationError as exc:
                    first = exc.errors()[0]
                    field = ".".join(str(p) for p in first.get("loc", ()))
                    raise SnapshotError(
                        f"invalid value for '{field}': {first.get('msg')}",
                        source=str(path),
                        line=reader.line_num,
                    ) from exc
        return rows
