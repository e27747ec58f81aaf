"""
Persistent prompt -> response cache backed by one JSON document.

Keys are the exact prompt text, with no normalization. Writes re-read the document,
update it, and replace it through a temporary file in the same directory so a crash
never leaves a partial file at the canonical path. Concurrent writers from different
processes are last-writer-wins.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger("agentic_wiki.cache")


class ResponseCache:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get(self, prompt: str) -> str | None:
        """Return the cached response for prompt, or None on a miss."""
        return self._read().get(prompt)

    def set(self, prompt: str, response: str) -> None:
        """Store response under prompt. Raises OSError if the document cannot be written."""
        data = self._read()
        data[prompt] = response
        self._write(data)

    def _read(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read cache file %s, treating as empty: %s", self.path, e)
            return {}
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Cache file %s is corrupt, treating as empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Cache file %s does not hold an object, treating as empty", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("Cache updated: %s entries", len(data))
