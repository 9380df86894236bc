import json
import logging
import os
import sqlite3
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from ctxtracker.config import CONTEXTS_FILENAME, LOCAL_STORAGE_FILENAME, resolve_home
from ctxtracker.errors import ContextParseError, InvalidInputError
from ctxtracker.models import CURRENT_MARKER, Context, ContextState, default_contexts
from ctxtracker.storage.local_storage import LocalStorage
from ctxtracker.utils.utils import slugify

logger = logging.getLogger(__name__)

CURRENT_CONTEXT_KEY = "currentContext"
PALETTE = ["#FF6B6B", "#4ECDC4", "#FFD93D", "#6C5CE7", "#A8E6CF", "#FF8C42"]

ContextLike = Union[Context, Mapping]
# A parsed Context, or a file entry that could not be parsed and is kept verbatim
Record = Union[Context, Any]


class ContextStore:
    """Tracks the known contexts and which one is current.

    The JSON file is the system of record for the full list. The key-value
    store holds a copy of the current context for fast reads; the two are
    written one after the other and can disagree if the second write fails.
    """

    def __init__(self, storage_path: Path = None, kv: LocalStorage = None):
        """Initialize store with default or custom paths (no I/O happens here)"""
        if storage_path is None:
            storage_path = resolve_home() / CONTEXTS_FILENAME
        self.storage_path = Path(storage_path)
        self.kv = kv if kv is not None else LocalStorage(self.storage_path.parent / LOCAL_STORAGE_FILENAME)

    @property
    def temp_path(self) -> Path:
        return self.storage_path.with_name(self.storage_path.name + ".temp")

    def load_all(self) -> List[Context]:
        """Load all contexts, seeding defaults on first run"""
        return [r for r in self._read_records() if isinstance(r, Context)]

    def save_all(self, contexts: List[ContextLike]):
        """Persist all contexts, verifying the serialized copy before it replaces the file"""
        if isinstance(contexts, (str, bytes)) or not isinstance(contexts, (list, tuple)):
            raise InvalidInputError("Invalid contexts data: expected a list of contexts")
        self._write_records([_coerce(c) for c in contexts])

    def get_current(self) -> Optional[Context]:
        """Return the current context, preferring the key-value copy"""
        cached = self._read_cached_current()
        if cached is not None:
            return cached
        return next((c for c in self.load_all() if c.is_active), None)

    def set_current(self, context: ContextLike) -> Context:
        """Make `context` the current one in both stores.

        The key-value entry is written first so that get_current() sees the
        switch even when rewriting the file fails. That failure is raised
        and the key-value entry is left in place.
        """
        target = replace(_coerce(context), state=ContextState.ACTIVE)
        self._write_cached_current(target)

        try:
            records = self._read_records()
            found = False
            for r in records:
                if isinstance(r, Context):
                    if r.id == target.id:
                        r.activate()
                        found = True
                    else:
                        r.deactivate()
                elif isinstance(r, dict) and r.get("lastActive") == CURRENT_MARKER:
                    r["lastActive"] = ""
            if not found:
                records.append(target)
            self._write_records(records)
        except Exception:
            logger.error("Current context cached as %r but the contexts file was not updated", target.id)
            raise
        logger.debug("Current context is now %r", target.id)
        return target

    def create(self, name: str, color: str = None) -> Context:
        """Create a new inactive context and return it"""
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Context name cannot be empty")

        records = self._read_records()
        existing_ids = {_record_id(r) for r in records}
        base = slugify(name) or "context"
        new_id = base
        suffix = 2
        while new_id in existing_ids:
            new_id = f"{base}-{suffix}"
            suffix += 1

        context = Context(id=new_id, name=name, color=color or PALETTE[len(records) % len(PALETTE)])
        records.append(context)
        self._write_records(records)
        return context

    def find(self, key: str) -> Optional[Context]:
        """Find a context by id, or by name ignoring case"""
        contexts = self.load_all()
        for c in contexts:
            if c.id == key:
                return c
        lowered = key.lower()
        return next((c for c in contexts if c.name.lower() == lowered), None)

    def add_note(self, context_id: str, text: str) -> Context:
        text = (text or "").strip()
        if not text:
            raise InvalidInputError("Note cannot be empty")
        return self._update(context_id, lambda c: c.add_note(text))

    def add_resource(self, context_id: str, resource: str) -> Context:
        resource = (resource or "").strip()
        if not resource:
            raise InvalidInputError("Resource cannot be empty")
        return self._update(context_id, lambda c: c.add_resource(resource))

    def _update(self, context_id: str, mutate: Callable[[Context], None]) -> Context:
        records = self._read_records()
        context = next((r for r in records if isinstance(r, Context) and r.id == context_id), None)
        if context is None:
            raise InvalidInputError(f"Unknown context: {context_id}")
        mutate(context)
        self._write_records(records)

        cached = self._read_cached_current()
        if context.is_active or (cached is not None and cached.id == context.id):
            self._write_cached_current(replace(context, state=ContextState.ACTIVE))
        return context

    def _read_records(self) -> List[Record]:
        """Read the file in order; entries that do not parse are returned as-is"""
        try:
            raw = self.storage_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No contexts file at %s, seeding defaults", self.storage_path)
            contexts = default_contexts()
            self._write_records(contexts)
            return contexts
        except UnicodeDecodeError:
            logger.warning("Contexts file %s is not valid UTF-8, using defaults", self.storage_path)
            return default_contexts()
        except OSError:
            logger.exception("Error loading contexts from %s", self.storage_path)
            raise

        if not raw.strip():
            logger.warning("Contexts file %s is empty, using defaults", self.storage_path)
            return default_contexts()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Contexts file %s is corrupt (%s), using defaults", self.storage_path, exc)
            return default_contexts()

        if not isinstance(data, list):
            logger.warning("Contexts file %s does not hold a list, using defaults", self.storage_path)
            return default_contexts()

        records = []
        for item in data:
            try:
                if not isinstance(item, dict):
                    raise ValueError("not an object")
                records.append(Context.from_dict(item))
            except ValueError as exc:
                logger.warning("Skipping malformed context entry %r: %s", item, exc)
                records.append(item)
        return records

    def _write_records(self, records: List[Record]):
        entries = [r.to_dict() if isinstance(r, Context) else r for r in records]
        payload = json.dumps(entries, indent=2, ensure_ascii=False)

        temp_path = self.temp_path
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(payload, encoding="utf-8")
            try:
                json.loads(temp_path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise ContextParseError(f"Contexts failed verification: {temp_path}") from exc
            os.replace(temp_path, self.storage_path)
        except Exception:
            logger.exception("Error saving contexts to %s", self.storage_path)
            with suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise
        logger.debug("Saved %d contexts to %s", len(entries), self.storage_path)

    def _write_cached_current(self, context: Context):
        self.kv.set_item(CURRENT_CONTEXT_KEY, json.dumps(context.to_dict()))

    def _read_cached_current(self) -> Optional[Context]:
        """Read the key-value copy; any problem counts as a miss"""
        try:
            stored = self.kv.get_item(CURRENT_CONTEXT_KEY)
        except (sqlite3.Error, OSError) as exc:
            logger.warning("Key-value store unavailable (%s), reading contexts file", exc)
            return None
        if not stored:
            return None
        try:
            data = json.loads(stored)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable cached current context")
            return None
        if not isinstance(data, dict):
            return None
        try:
            return Context.from_dict(data)
        except ValueError as exc:
            logger.warning("Ignoring malformed cached current context: %s", exc)
            return None

    def __repr__(self):
        return f"<ContextStore path={self.storage_path}>"


def _record_id(record: Record) -> Optional[str]:
    if isinstance(record, Context):
        return record.id
    if isinstance(record, dict) and isinstance(record.get("id"), str):
        return record["id"]
    return None


def _coerce(context: ContextLike) -> Context:
    """Validate a Context or mapping before any I/O"""
    if isinstance(context, Context):
        data = context.to_dict()
    elif isinstance(context, Mapping):
        data = dict(context)
    else:
        raise InvalidInputError(f"Invalid context data: {context!r}")
    try:
        return Context.from_dict(data)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid context data: {exc}") from exc
