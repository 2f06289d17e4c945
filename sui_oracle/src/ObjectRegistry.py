"""ObjectRegistry: Persistent mapping from trading pair to on-chain price object.

The registry is the only thing the oracle consults to decide whether a pair's
price object must be created or updated. It is rewritten to disk after every
mutation, before the mutating call returns, so a restart right after a
successful creation never creates the object a second time.

File format (pretty-printed JSON)::

    {
      "btc/usd": {"object_id": "0x5c1f...", "version": 1042}
    }

A bare object id string per key (``{"BTC/USD": "0x5c1f..."}``) is also
accepted on load, with the version left unknown.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from .LedgerClient import ObjectRef
from .TradingPair import TradingPair

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PATH = "known_price_objects.json"


class RegistryCorruptionError(Exception):
    """Raised when the registry file exists but cannot be trusted."""

    pass


class ObjectRegistry:
    """Pair to ObjectRef mapping backed by a JSON file.

    :ivar path: Location of the registry file.
    """

    def __init__(
        self,
        path: str | Path = DEFAULT_REGISTRY_PATH,
        entries: dict[TradingPair, ObjectRef] | None = None,
    ) -> None:
        """Initialize the registry.

        Use :meth:`load` to read an existing file; the constructor does not
        touch the disk.

        :param path: Registry file path.
        :param entries: Initial entries.
        """
        self.path = Path(path)
        self._entries: dict[TradingPair, ObjectRef] = dict(entries or {})
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: str | Path = DEFAULT_REGISTRY_PATH) -> ObjectRegistry:
        """Load the registry from disk.

        :param path: Registry file path.
        :returns: Loaded registry (empty if the file is absent or unreadable).
        :raises RegistryCorruptionError: If the file exists but is malformed.
        """
        path = Path(path)
        if not path.exists():
            logger.info(f"No registry at {path}, starting empty")
            return cls(path)

        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Registry {path} is unreadable ({e}), starting empty")
            return cls(path)

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise RegistryCorruptionError(f"Registry {path} is not valid JSON: {e}") from e

        entries = cls._parse_entries(data, path)
        logger.info(f"Loaded {len(entries)} registry entries from {path}")
        return cls(path, entries)

    @staticmethod
    def _parse_entries(data: Any, path: Path) -> dict[TradingPair, ObjectRef]:
        """Validate decoded JSON and convert it to registry entries.

        :raises RegistryCorruptionError: On any structural problem.
        """
        if not isinstance(data, dict):
            raise RegistryCorruptionError(f"Registry {path} must contain a JSON object")

        entries: dict[TradingPair, ObjectRef] = {}
        owners: dict[str, TradingPair] = {}
        for key, value in data.items():
            try:
                pair = TradingPair.from_string(key)
            except ValueError as e:
                raise RegistryCorruptionError(f"Registry {path}: {e}") from e

            if isinstance(value, str):
                ref = ObjectRef(object_id=value)
            elif isinstance(value, dict) and isinstance(value.get("object_id"), str):
                version = value.get("version")
                if version is not None and (
                    isinstance(version, bool) or not isinstance(version, int)
                ):
                    raise RegistryCorruptionError(
                        f"Registry {path}: invalid version {version!r} for {key}"
                    )
                ref = ObjectRef(object_id=value["object_id"], version=version)
            else:
                raise RegistryCorruptionError(
                    f"Registry {path}: invalid entry for {key}: {value!r}"
                )

            if not ref.object_id:
                raise RegistryCorruptionError(f"Registry {path}: empty object id for {key}")
            if pair in entries:
                raise RegistryCorruptionError(f"Registry {path}: duplicate pair {pair}")
            if ref.object_id in owners:
                raise RegistryCorruptionError(
                    f"Registry {path}: object {ref.object_id} is shared by "
                    f"{owners[ref.object_id]} and {pair}"
                )
            owners[ref.object_id] = pair
            entries[pair] = ref
        return entries

    def lookup(self, pair: TradingPair) -> ObjectRef | None:
        """Get the stored reference for a pair.

        :param pair: Trading pair.
        :returns: ObjectRef, or None if the pair has no object yet.
        """
        return self._entries.get(pair)

    def record(self, pair: TradingPair, ref: ObjectRef) -> None:
        """Insert or overwrite the reference for a pair and persist.

        :param pair: Trading pair.
        :param ref: Reference confirmed by the chain.
        :raises ValueError: If another pair already holds the same object id.
        :raises OSError: If the registry could not be written.
        """
        with self._lock:
            for other, other_ref in self._entries.items():
                if other != pair and other_ref.object_id == ref.object_id:
                    raise ValueError(
                        f"Object {ref.object_id} is already registered for {other}"
                    )
            updated = dict(self._entries)
            updated[pair] = ref
            self._write(updated)
            self._entries = updated
        logger.debug(f"{pair}: registry set to {ref.object_id} (version={ref.version})")

    def forget(self, pair: TradingPair) -> ObjectRef | None:
        """Remove the reference for a pair and persist.

        :param pair: Trading pair.
        :returns: The removed reference, or None if there was none.
        :raises OSError: If the registry could not be written.
        """
        with self._lock:
            if pair not in self._entries:
                return None
            updated = dict(self._entries)
            removed = updated.pop(pair)
            self._write(updated)
            self._entries = updated
        logger.debug(f"{pair}: registry entry {removed.object_id} removed")
        return removed

    def snapshot(self) -> dict[TradingPair, ObjectRef]:
        """Return a copy of all entries."""
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pair: object) -> bool:
        return pair in self._entries

    def _write(self, entries: dict[TradingPair, ObjectRef]) -> None:
        """Atomically replace the registry file with the given entries."""
        data = {
            str(pair): {"object_id": ref.object_id, "version": ref.version}
            for pair, ref in sorted(entries.items(), key=lambda item: str(item[0]))
        }
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(data, tmp, indent=2)
                tmp.write("\n")
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
