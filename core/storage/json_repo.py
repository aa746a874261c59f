from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel

log = logging.getLogger(__name__)

Record = Dict[str, Any]


def _json_default(o: Any) -> Any:
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    raise TypeError(f"Object of type {o.__class__.__name__} is not JSON serializable")


class JsonRepository:
    """
    One JSON file holding a list of records keyed by `key` (default "_id").

    Writes go through a temp file and os.replace, and are skipped when the
    serialized content is unchanged. A file that no longer parses is copied
    to <name>.corrupt.json and read as an empty list.
    """

    def __init__(self, filepath: Union[str, Path], entity_name: str = "record", key: str = "_id") -> None:
        self.filepath = Path(filepath)
        self.entity_name = entity_name
        self.key = key
        self._lock = threading.RLock()
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        if not self.filepath.exists():
            self._dump([])

    # ---------- file I/O ---------- #

    def _load(self) -> List[Record]:
        try:
            text = self.filepath.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            aside = self.filepath.with_suffix(".corrupt.json")
            shutil.copy2(self.filepath, aside)
            log.error("Corrupt %s store %s, copied to %s", self.entity_name, self.filepath, aside)
            return []
        return data if isinstance(data, list) else []

    def _dump(self, rows: List[Record]) -> None:
        text = json.dumps(rows, ensure_ascii=False, indent=2, default=_json_default)
        if self.filepath.exists() and self.filepath.read_text(encoding="utf-8") == text:
            return
        fd, tmp = tempfile.mkstemp(dir=self.filepath.parent, prefix=self.filepath.stem, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self.filepath)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    @contextmanager
    def _rows(self) -> Iterator[List[Record]]:
        """Load, let the caller mutate the list, write it back."""
        with self._lock:
            rows = self._load()
            yield rows
            self._dump(rows)

    def _position(self, rows: List[Record], obj_id: Any) -> int:
        wanted = str(obj_id)
        return next((i for i, r in enumerate(rows) if str(r.get(self.key)) == wanted), -1)

    # ---------- queries ---------- #

    def list_all(self) -> List[Record]:
        return self._load()

    def get_by_id(self, obj_id: Any) -> Optional[Record]:
        rows = self._load()
        i = self._position(rows, obj_id)
        return rows[i] if i >= 0 else None

    def find_one(self, predicate: Callable[[Record], bool]) -> Optional[Record]:
        return next((r for r in self._load() if predicate(r)), None)

    def next_sequence(self, field: str, prefix: str, width: int = 4) -> str:
        """
        Next '<prefix><n>' after the highest stored value of `field`.
        Nothing is reserved: two callers before a write get the same value.
        """
        numbers = [0]
        for r in self._load():
            value = str(r.get(field) or "")
            tail = value[len(prefix):] if value.startswith(prefix) else ""
            if tail.isdigit():
                numbers.append(int(tail))
        return f"{prefix}{max(numbers) + 1:0{width}d}"

    # ---------- mutations ---------- #

    def add(self, item: Union[BaseModel, Mapping[str, Any]]) -> Record:
        record = item.model_dump() if isinstance(item, BaseModel) else dict(item)
        record.setdefault(self.key, None)
        if not record[self.key]:
            record[self.key] = uuid4().hex
        with self._rows() as rows:
            if self._position(rows, record[self.key]) >= 0:
                raise ValueError(f"{self.entity_name} {record[self.key]} already exists")
            rows.append(record)
        return record

    def update(self, patch: Mapping[str, Any]) -> Record:
        """Shallow merge of `patch` into the stored record with the same key."""
        obj_id = patch.get(self.key)
        if not obj_id:
            raise ValueError(f"Cannot update {self.entity_name} without '{self.key}'")
        with self._rows() as rows:
            i = self._position(rows, obj_id)
            if i < 0:
                raise KeyError(f"{self.entity_name} {obj_id} not found")
            rows[i] = {**rows[i], **patch}
            return rows[i]
