"""
Key-value stores for persisted session state.

Any backend with ``get``/``set``/``delete`` on string keys and JSON text
values can hold session state. Two are provided: an in-process dict and a
directory of JSON files.
"""

import logging
import re
from pathlib import Path
from typing import Optional, Protocol, Union

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class PersistenceError(Exception):
    """A storage backend failed to read, write or delete a key."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryStore:
    """Dict-backed store; contents last as long as the object."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStore:
    """
    One ``<key>.json`` file per key under a directory.

    Characters outside ``[A-Za-z0-9_.-]`` in keys are replaced with ``_`` to
    form the file name. The directory is created on first write.
    """

    def __init__(self, directory: Union[str, Path], *, encoding: str = "utf-8") -> None:
        self.directory = Path(directory)
        self.encoding = encoding

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Could not read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding=self.encoding)
            tmp.replace(path)
        except OSError as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e
        logger.debug("Wrote %d chars to %s", len(value), path)

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not delete {path}: {e}") from e
