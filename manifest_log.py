"""Append-only CSV audit log of individual object copies."""

from __future__ import annotations

import csv
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from relocate_utils import archive_file

MANIFEST_FIELDS = (
    "Source",
    "Destination",
    "Start",
    "End",
    "Md5",
    "Source Size",
    "Bytes Transferred",
    "Result",
    "Description",
)

RESULT_OK = "OK"
RESULT_ERROR = "error"


def source_bucket(url: str) -> str:
    """Return the bucket named by an ``s3://bucket/key`` URL."""
    return url.removeprefix("s3://").split("/", 1)[0]


@dataclass(frozen=True)
class ManifestEntry:
    """One object copy attempt."""

    source: str
    destination: str
    start: str
    end: str
    md5: str = ""
    source_size: int = 0
    bytes_transferred: int = 0
    result: str = RESULT_OK
    description: str = ""

    def as_row(self) -> dict:
        """Return the CSV row for this entry."""
        return {
            "Source": self.source,
            "Destination": self.destination,
            "Start": self.start,
            "End": self.end,
            "Md5": self.md5,
            "Source Size": self.source_size,
            "Bytes Transferred": self.bytes_transferred,
            "Result": self.result,
            "Description": self.description,
        }


class ManifestLog:
    """Records every object copy; successful sources are skipped on later copies.

    Safe to append from several copy worker threads.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._completed: set[str] | None = None

    def _load_completed(self) -> set[str]:
        completed: set[str] = set()
        if not self.path.exists():
            return completed
        with self.path.open(newline="", encoding="utf-8") as handle:
            for row in csv.DictReader(handle):
                if row.get("Result") == RESULT_OK:
                    completed.add(row["Source"])
        return completed

    def is_copied(self, source_url: str) -> bool:
        """Return True when *source_url* was already copied successfully."""
        with self._lock:
            if self._completed is None:
                self._completed = self._load_completed()
            return source_url in self._completed

    def record(self, entry: ManifestEntry) -> None:
        """Append *entry* to the manifest, writing the header for a new file."""
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_header = not self.path.exists() or self.path.stat().st_size == 0
            with self.path.open("a", newline="", encoding="utf-8") as handle:
                writer = csv.DictWriter(handle, fieldnames=MANIFEST_FIELDS)
                if write_header:
                    writer.writeheader()
                writer.writerow(entry.as_row())
            if entry.result == RESULT_OK and self._completed is not None:
                self._completed.add(entry.source)

    def archive(self, keep_buckets: Iterable[str] = ()) -> Path | None:
        """Rename the manifest with the completion marker.

        Rows whose source lies in one of *keep_buckets* are written to a fresh
        manifest, so buckets still mid-relocation keep skipping what they copied.
        """
        keep = set(keep_buckets)
        with self._lock:
            self._completed = None
            carried = [row for row in self._read_rows() if source_bucket(row["Source"]) in keep] if keep else []
            archived = archive_file(self.path)
            if carried:
                with self.path.open("w", newline="", encoding="utf-8") as handle:
                    writer = csv.DictWriter(handle, fieldnames=MANIFEST_FIELDS)
                    writer.writeheader()
                    writer.writerows(carried)
            return archived

    def _read_rows(self) -> list[dict]:
        if not self.path.exists():
            return []
        with self.path.open(newline="", encoding="utf-8") as handle:
            return list(csv.DictReader(handle))
