# dnc.py

import json
import logging
import os
import tempfile
import threading
from typing import List

from .contacts import last_ten, normalize_phone

logger = logging.getLogger(__name__)


class DoNotCallList:
    """Append-only set of numbers that must never be dialed or texted again.

    Stored as ``{"phones": [...]}``. Every write replaces the file atomically.
    """

    def __init__(self, path: str):
        self.path = str(path)
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {"phones": []}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        data.setdefault("phones", [])
        return data

    def _write(self, data: dict) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".dnc-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def add(self, phone: str) -> bool:
        """Add a number; returns False if it was already listed."""
        normalized = normalize_phone(phone)
        with self._lock:
            data = self._read()
            if any(last_ten(p) == last_ten(normalized) for p in data["phones"]):
                return False
            data["phones"].append(normalized)
            self._write(data)
        logger.info(f"Added {normalized} to do-not-call list ({len(data['phones'])} total)")
        return True

    def contains(self, phone: str | None) -> bool:
        tail = last_ten(phone)
        if len(tail) < 10:
            return False
        with self._lock:
            phones = self._read()["phones"]
        return any(last_ten(p) == tail for p in phones)

    def phones(self) -> List[str]:
        with self._lock:
            return list(self._read()["phones"])
