# utils/history.py
"""
Saved samples (specs, XML payloads) kept in a small JSON file
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class HistoryStore:
    """Most-recent-first list of saved samples, de-duplicated by content"""

    def __init__(self, path: str, limit: int = 20):
        self.path = Path(path)
        self.limit = limit

    def _read(self) -> List[Dict]:
        if not self.path.exists():
            return []
        try:
            entries = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable history file {self.path}: {e}")
            return []
        return entries if isinstance(entries, list) else []

    def _write(self, entries: List[Dict]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(entries, indent=2, ensure_ascii=False), encoding='utf-8')

    def entries(self, kind: Optional[str] = None) -> List[Dict]:
        return [e for e in self._read() if kind is None or e.get('kind') == kind]

    def is_saved(self, content: str) -> bool:
        normalized = (content or '').strip()
        return any((e.get('content') or '').strip() == normalized for e in self._read())

    def upsert(self, name: str, kind: str, content: str) -> Dict:
        """Save ``content`` at the front, replacing an entry with the same content"""
        normalized = (content or '').strip()
        entry = {
            'name': name,
            'kind': kind,
            'content': normalized,
            'saved_at': datetime.now().isoformat(timespec='seconds')
        }
        others = [e for e in self._read() if (e.get('content') or '').strip() != normalized]
        self._write([entry] + others[:max(self.limit - 1, 0)])
        logger.info(f"Saved {kind} '{name}' to history")
        return entry
