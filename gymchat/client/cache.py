"""Per-conversation read-through cache persisted as JSON files."""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError

from gymchat.schemas.message import Message


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    conversation_key: str
    messages: List[Message]
    last_written_at: datetime


def _atomic_write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    content = json.dumps(payload, indent=2, sort_keys=True)

    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)


class LocalCache:
    """Key-value store scoped to one signed-in user.

    Conversations are keyed by the peer id. Each save replaces the entry
    wholesale; there is no merging.
    """

    def __init__(self, base_dir: Path, owner_id: str) -> None:
        self._dir = Path(base_dir).expanduser() / owner_id

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def load_value(self, key: str) -> Optional[Any]:
        try:
            return json.loads(self._path(key).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, ValueError):
            logger.warning("Discarding unreadable cache file %s", self._path(key))
            return None

    def save_value(self, key: str, value: Any) -> None:
        _atomic_write_json(self._path(key), value)

    def remove_value(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def load(self, peer_id: str) -> Optional[CacheEntry]:
        data = self.load_value(f"chat_cache_{peer_id}")
        if not isinstance(data, dict) or not isinstance(data.get("messages"), list):
            return None
        try:
            messages = [Message.model_validate(m) for m in data["messages"]]
            written = datetime.fromisoformat(data["last_written_at"])
        except (ValidationError, KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed cache entry for %s", peer_id)
            return None
        return CacheEntry(conversation_key=peer_id, messages=messages, last_written_at=written)

    def save(self, peer_id: str, messages: List[Message]) -> CacheEntry:
        entry = CacheEntry(
            conversation_key=peer_id,
            messages=list(messages),
            last_written_at=datetime.now(timezone.utc),
        )
        self.save_value(
            f"chat_cache_{peer_id}",
            {
                "conversation_key": peer_id,
                "messages": [m.model_dump(mode="json") for m in entry.messages],
                "last_written_at": entry.last_written_at.isoformat(),
            },
        )
        return entry

    def clear(self, peer_id: str) -> None:
        self.remove_value(f"chat_cache_{peer_id}")
