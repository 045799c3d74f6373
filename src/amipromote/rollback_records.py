"""Rollback audit records.

One JSON file per rollback in a flat directory, named
rollback-<environment>-<YYYYmmdd-HHMMSS>.json. Records are written once and
never modified or deleted by amipromote.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """Raised when rollback records cannot be written or read."""

    pass


@dataclass(frozen=True)
class RollbackRecord:
    """Audit entry for one rollback."""

    timestamp: str
    environment: str
    reason: str
    from_image_id: str
    to_image_id: str
    initiated_by: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollbackRecord":
        return cls(
            timestamp=data["timestamp"],
            environment=data["environment"],
            reason=data["reason"],
            from_image_id=data["from_image_id"],
            to_image_id=data["to_image_id"],
            initiated_by=data.get("initiated_by", "unknown"),
        )


class RollbackRecordStore:
    """Append-only directory of rollback records."""

    FILE_PREFIX = "rollback-"
    MAX_SUFFIX = 100

    def __init__(self, records_dir: Path):
        self.records_dir = Path(records_dir).expanduser()

    def record_path(self, environment: str, when: datetime) -> Path:
        return self.records_dir / f"{self.FILE_PREFIX}{environment}-{when:%Y%m%d-%H%M%S}.json"

    def write(self, record: RollbackRecord, when: datetime) -> Path:
        """Write a record to a new file.

        Two rollbacks of one environment within the same second get a numeric
        suffix instead of overwriting each other.

        Returns:
            Path of the written record

        Raises:
            RecordStoreError: If the record cannot be written
        """
        try:
            self.records_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RecordStoreError(f"Failed to create records directory: {e}") from e

        base = self.record_path(record.environment, when)
        payload = json.dumps(record.to_dict(), indent=2) + "\n"

        for attempt in range(self.MAX_SUFFIX):
            path = base if attempt == 0 else base.with_name(f"{base.stem}-{attempt}.json")
            try:
                # "x" never overwrites an existing record
                with open(path, "x", encoding="utf-8") as f:
                    f.write(payload)
            except FileExistsError:
                continue
            except OSError as e:
                raise RecordStoreError(f"Failed to write rollback record {path}: {e}") from e

            os.chmod(path, 0o600)
            logger.info(f"Rollback record saved: {path}")
            return path

        raise RecordStoreError(f"Too many rollback records named {base.name}")

    def list_records(self, environment: str | None = None) -> list[RollbackRecord]:
        """Load records, oldest first, optionally for one environment.

        Unreadable files are skipped with a warning.
        """
        if not self.records_dir.exists():
            return []

        records = []
        for path in sorted(self.records_dir.glob(f"{self.FILE_PREFIX}*.json")):
            try:
                with open(path, encoding="utf-8") as f:
                    record = RollbackRecord.from_dict(json.load(f))
            except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable rollback record {path}: {e}")
                continue

            if environment is None or record.environment == environment:
                records.append(record)

        return sorted(records, key=lambda r: r.timestamp)


__all__ = ["RecordStoreError", "RollbackRecord", "RollbackRecordStore"]
