"""Key-value stores: an in-memory store, a copy-on-write mirror and a disk store."""

from __future__ import annotations

import hashlib
import sqlite3
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from itertools import takewhile
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union


class KvStoreError(Exception):
    """Raised when a store cannot read or write its data."""


@dataclass(frozen=True)
class Blob:
    """An opaque value held by a store."""

    data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))


@dataclass(frozen=True)
class Put:
    """Write `value` under `key`."""

    key: str
    value: Blob


@dataclass(frozen=True)
class Remove:
    """Delete `key`."""

    key: str


WriteOp = Union[Put, Remove]


def _u64(n: int) -> bytes:
    return struct.pack("<Q", n)


def _encode_pairs(items: Iterable[tuple[str, Blob]]) -> bytes:
    """Length-prefixed little-endian encoding of a list of key/value pairs."""
    items = list(items)
    parts = [_u64(len(items))]
    for key, blob in items:
        raw_key = key.encode("utf-8")
        parts += [_u64(len(raw_key)), raw_key, _u64(len(blob.data)), blob.data]
    return b"".join(parts)


def _sha3_256(data: bytes) -> bytes:
    return hashlib.sha3_256(data).digest()


class KvStore(ABC):
    """A store mapping string keys to blobs."""

    @abstractmethod
    def get(self, key: str) -> Optional[Blob]:
        """Return the blob under `key`, or None."""

    @abstractmethod
    def update(self, ops: Iterable[WriteOp]) -> None:
        """Apply write operations in order."""

    @abstractmethod
    def pairs(self, prefix: str) -> dict[str, Blob]:
        """Return every key/value pair whose key starts with `prefix`."""

    def checksum(self, hash_fn: Optional[Callable[[bytes], Any]] = None) -> Any:
        """Hash the whole content of the store, in key order."""
        payload = _encode_pairs(sorted(self.pairs("").items()))
        return (hash_fn or _sha3_256)(payload)

    def mirror(self) -> "RamMirrorKvStore":
        """Return a copy-on-write view over this store."""
        return RamMirrorKvStore(self)


def _unknown_op(op: object) -> TypeError:
    return TypeError(f"not a write operation: {op!r}")


class RamKvStore(KvStore):
    """A store held in memory."""

    def __init__(self) -> None:
        self._data: dict[str, Blob] = {}

    def get(self, key: str) -> Optional[Blob]:
        return self._data.get(key)

    def update(self, ops: Iterable[WriteOp]) -> None:
        for op in ops:
            match op:
                case Remove(key=key):
                    self._data.pop(key, None)
                case Put(key=key, value=value):
                    self._data[key] = value
                case _:
                    raise _unknown_op(op)

    def pairs(self, prefix: str) -> dict[str, Blob]:
        return {k: v for k, v in self._data.items() if k.startswith(prefix)}


class RamMirrorKvStore(KvStore):
    """Records writes in memory on top of another store, leaving it untouched."""

    def __init__(self, store: KvStore) -> None:
        self._store = store
        self._overwrite: dict[str, Optional[Blob]] = {}

    def get(self, key: str) -> Optional[Blob]:
        if key in self._overwrite:
            return self._overwrite[key]
        return self._store.get(key)

    def update(self, ops: Iterable[WriteOp]) -> None:
        for op in ops:
            match op:
                case Remove(key=key):
                    self._overwrite[key] = None
                case Put(key=key, value=value):
                    self._overwrite[key] = value
                case _:
                    raise _unknown_op(op)

    def pairs(self, prefix: str) -> dict[str, Blob]:
        result = self._store.pairs(prefix)
        for key, value in self._overwrite.items():
            if value is None:
                result.pop(key, None)
            elif key.startswith(prefix):
                result[key] = value
        return result

    def rollback(self) -> list[WriteOp]:
        """Operations that restore the underlying values of every touched key."""
        ops: list[WriteOp] = []
        for key in self._overwrite:
            original = self._store.get(key)
            ops.append(Remove(key) if original is None else Put(key, original))
        return ops

    def to_ops(self) -> list[WriteOp]:
        """Operations that apply the recorded writes to the underlying store."""
        return [
            Remove(key) if value is None else Put(key, value)
            for key, value in self._overwrite.items()
        ]


_DB_FILE = "kv.sqlite3"


class DiskKvStore(KvStore):
    """A store kept in a SQLite file inside the directory `path`."""

    def __init__(self, path: Union[str, Path]) -> None:
        directory = Path(path)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(directory / _DB_FILE)
            with self._conn:
                self._conn.execute(
                    "CREATE TABLE IF NOT EXISTS kv "
                    "(key TEXT PRIMARY KEY, value BLOB NOT NULL)"
                )
        except (OSError, sqlite3.Error) as exc:
            raise KvStoreError(f"io error: {exc}") from exc

    def get(self, key: str) -> Optional[Blob]:
        try:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise KvStoreError("kvstore failure") from exc
        return None if row is None else Blob(row[0])

    def update(self, ops: Iterable[WriteOp]) -> None:
        try:
            with self._conn:
                for op in ops:
                    match op:
                        case Remove(key=key):
                            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                        case Put(key=key, value=value):
                            self._conn.execute(
                                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                                (key, value.data),
                            )
                        case _:
                            raise _unknown_op(op)
        except sqlite3.Error as exc:
            raise KvStoreError("kvstore failure") from exc

    def pairs(self, prefix: str) -> dict[str, Blob]:
        try:
            rows = self._conn.execute(
                "SELECT key, value FROM kv WHERE key >= ? ORDER BY key", (prefix,)
            )
            return {
                key: Blob(value)
                for key, value in takewhile(lambda kv: kv[0].startswith(prefix), rows)
            }
        except sqlite3.Error as exc:
            raise KvStoreError("kvstore failure") from exc

    def close(self) -> None:
        """Close the underlying database."""
        self._conn.close()

    def __enter__(self) -> "DiskKvStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()