"""Per-browser session identity.

The token is only a correlation key for the webhook; nothing on the server
validates it.
"""

import json
import random
import string
import time
from pathlib import Path
from typing import Dict, Iterator, MutableMapping, Optional, Union

from logger import logger

SESSION_KEY = "chat_session_id"
_BASE36 = string.digits + string.ascii_lowercase


def new_session_id() -> str:
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class FileStorage(MutableMapping[str, str]):
    """String key/value store kept in one JSON file, the local-storage stand-in."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.warning("Storage file is not valid JSON, starting empty", path=str(self.path))
            return {}
        if not isinstance(data, dict):
            logger.warning("Storage file does not hold an object, starting empty", path=str(self.path))
            return {}
        return data

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def __getitem__(self, key: str) -> str:
        return self._load()[key]

    def __setitem__(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def __delitem__(self, key: str) -> None:
        data = self._load()
        del data[key]
        self._save(data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._load())

    def __len__(self) -> int:
        return len(self._load())

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class SessionIdentityProvider:
    def __init__(self, storage: Optional[MutableMapping[str, str]] = None) -> None:
        self.storage = storage if storage is not None else {}

    def get_session_id(self) -> str:
        session_id = self.storage.get(SESSION_KEY)
        if not session_id:
            session_id = new_session_id()
            self.storage[SESSION_KEY] = session_id
        return session_id
