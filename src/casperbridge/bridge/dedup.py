"""
Replay protection within one relayer run.

One ledger per bridge direction. Membership check and insertion happen
under a single lock, so a source transaction is forwarded at most once
for the lifetime of the process no matter how often it is observed.
The destination verifier's own nonce table stays the cross-restart
source of truth.
"""

import threading
from typing import Dict, List, Optional

from .bridge_types import ProcessedRecord, RecordStatus


class DedupLedger:
    """In-memory set of handled source transaction ids and their records."""

    def __init__(self, name: str = "default"):
        self.name = name
        self._records: Dict[str, ProcessedRecord] = {}
        self._lock = threading.RLock()

    def should_process(self, source_tx_id: str) -> bool:
        """True while ``source_tx_id`` has never been marked."""
        with self._lock:
            return source_tx_id not in self._records

    def mark_processed(self, source_tx_id: str) -> ProcessedRecord:
        """Mark ``source_tx_id`` as handled, returning its record.

        Marking an id twice returns the existing record unchanged.
        """
        with self._lock:
            record = self._records.get(source_tx_id)
            if record is None:
                record = ProcessedRecord(source_tx_id=source_tx_id)
                self._records[source_tx_id] = record
            return record

    def claim(self, source_tx_id: str) -> Optional[ProcessedRecord]:
        """Atomically check and mark.

        Returns a fresh ``PENDING`` record for the first caller and ``None``
        for every later one.
        """
        with self._lock:
            if source_tx_id in self._records:
                return None
            record = ProcessedRecord(source_tx_id=source_tx_id)
            self._records[source_tx_id] = record
            return record

    def get_record(self, source_tx_id: str) -> Optional[ProcessedRecord]:
        with self._lock:
            return self._records.get(source_tx_id)

    def records(self, status: Optional[RecordStatus] = None) -> List[ProcessedRecord]:
        """All records in claim order, optionally filtered by status."""
        with self._lock:
            records = list(self._records.values())
        if status is None:
            return records
        return [record for record in records if record.status is status]

    def counts(self) -> Dict[str, int]:
        """Number of records per status."""
        counts = {status.value: 0 for status in RecordStatus}
        for record in self.records():
            counts[record.status.value] += 1
        return counts

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, source_tx_id: str) -> bool:
        return not self.should_process(source_tx_id)
