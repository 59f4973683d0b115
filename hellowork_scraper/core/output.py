"""
Output sinks.

Records are appended and never rewritten (at-least-once delivery).
"""
import os
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class OutputSink(ABC):
    """Append-only record store."""

    @abstractmethod
    async def push(self, records: List[Dict]):
        """Append a batch of records."""
        pass

    async def close(self):
        pass


class MemorySink(OutputSink):
    """Keeps pushed records in memory, one list entry per push."""

    def __init__(self):
        self.batches: List[List[Dict]] = []

    @property
    def records(self) -> List[Dict]:
        return [record for batch in self.batches for record in batch]

    async def push(self, records: List[Dict]):
        self.batches.append(list(records))


class JsonlDatasetSink(OutputSink):
    """Appends one JSON object per line to a dataset file."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or os.getenv('HELLOWORK_DATASET_PATH', 'storage/dataset.jsonl'))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.count = 0

        logger.info(f"Dataset sink initialized: {self.path}")

    async def push(self, records: List[Dict]):
        if not records:
            return
        with open(self.path, 'a', encoding='utf-8') as f:
            for record in records:
                f.write(json.dumps(record, ensure_ascii=False, default=str))
                f.write('\n')
        self.count += len(records)
        logger.debug(f"Appended {len(records)} records to {self.path}")
