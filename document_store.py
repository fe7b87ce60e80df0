"""
JSON-backed document collections with a pymongo-style surface.

The production deployment talks to a real document database; this module keeps
the same method names (``find``, ``find_one``, ``insert_one``, ``insert_many``,
``update_one``) so the reconciler can run locally and under test against plain
files under ./data. Each collection is one JSON file (a list of documents).
"""
import json
import logging
import os
import tempfile
import threading
import uuid
from collections import namedtuple
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

import portalocker

logger = logging.getLogger(__name__)

UpdateResult = namedtuple('UpdateResult', ['matched_count', 'modified_count'])
InsertOneResult = namedtuple('InsertOneResult', ['inserted_id'])
InsertManyResult = namedtuple('InsertManyResult', ['inserted_ids'])

_MISSING = object()


def _get_path(doc: Dict[str, Any], path: str):
    """Resolve a dotted field path, returning _MISSING when absent."""
    cur: Any = doc
    for part in path.split('.'):
        if not isinstance(cur, dict) or part not in cur:
            return _MISSING
        cur = cur[part]
    return cur


def _match_condition(value, cond) -> bool:
    if isinstance(cond, dict) and cond and all(k.startswith('$') for k in cond):
        for op, arg in cond.items():
            if op == '$exists':
                if (value is not _MISSING) != bool(arg):
                    return False
            elif op == '$ne':
                if value is not _MISSING and value == arg:
                    return False
            elif op == '$eq':
                if value is _MISSING or value != arg:
                    return False
            elif op == '$in':
                if value is _MISSING or value not in arg:
                    return False
            elif op == '$nin':
                if value is not _MISSING and value in arg:
                    return False
            else:
                raise ValueError(f"Unsupported query operator {op}")
        return True
    return value is not _MISSING and value == cond


def matches(doc: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    """Return True if ``doc`` satisfies a (subset of) MongoDB query filter."""
    if not query:
        return True
    for key, cond in query.items():
        if key == '$or':
            if not any(matches(doc, sub) for sub in cond):
                return False
        elif key == '$and':
            if not all(matches(doc, sub) for sub in cond):
                return False
        elif key.startswith('$'):
            raise ValueError(f"Unsupported top-level operator {key}")
        elif not _match_condition(_get_path(doc, key), cond):
            return False
    return True


def _apply_set(doc: Dict[str, Any], fields: Dict[str, Any]) -> bool:
    changed = False
    for path, value in fields.items():
        parts = path.split('.')
        target = doc
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        if target.get(parts[-1], _MISSING) != value:
            target[parts[-1]] = value
            changed = True
    return changed


class JsonCollection:
    """A single collection persisted as ``<data_dir>/<name>.json``."""

    def __init__(self, path: str, name: str):
        self.name = name
        self.path = path
        self._lock_path = path + '.lock'
        self._mutex = threading.Lock()

    # ---- file helpers -------------------------------------------------------
    def _read(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError):
            # Corrupt file; move it aside and start fresh
            logger.error("Collection file %s is unreadable, moving to .bad", self.path)
            try:
                os.replace(self.path, self.path + '.bad')
            except OSError:
                pass
            return []
        return data if isinstance(data, list) else []

    def _write(self, docs: List[Dict[str, Any]]) -> None:
        dirn = os.path.dirname(self.path)
        fd, tmp_path = tempfile.mkstemp(prefix=f'{self.name}_', suffix='.tmp', dir=dirn)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(docs, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    @contextmanager
    def _locked(self):
        """Exclusive lock across threads (mutex) and processes (lock file)."""
        with self._mutex:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            with open(self._lock_path, 'a', encoding='utf-8') as lf:
                portalocker.lock(lf, portalocker.LockFlags.EXCLUSIVE)
                try:
                    yield
                finally:
                    portalocker.unlock(lf)

    # ---- queries ------------------------------------------------------------
    def find(self, query: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self._locked():
            docs = self._read()
        return [doc for doc in docs if matches(doc, query)]

    def find_one(self, query: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        found = self.find(query)
        return found[0] if found else None

    # ---- writes -------------------------------------------------------------
    def insert_one(self, doc: Dict[str, Any]) -> InsertOneResult:
        return InsertOneResult(self.insert_many([doc]).inserted_ids[0])

    def insert_many(self, docs: Iterable[Dict[str, Any]]) -> InsertManyResult:
        new_docs = []
        for doc in docs:
            doc = dict(doc)
            doc.setdefault('_id', uuid.uuid4().hex)
            new_docs.append(doc)
        with self._locked():
            current = self._read()
            current.extend(new_docs)
            self._write(current)
        return InsertManyResult([d['_id'] for d in new_docs])

    def update_one(self, query: Dict[str, Any], update: Dict[str, Any]) -> UpdateResult:
        """Apply a ``{"$set": {...}}`` update to the first matching document."""
        unsupported = set(update) - {'$set'}
        if unsupported:
            raise ValueError(f"Unsupported update operators: {sorted(unsupported)}")
        fields = update.get('$set') or {}
        with self._locked():
            docs = self._read()
            for doc in docs:
                if matches(doc, query):
                    changed = _apply_set(doc, fields)
                    if changed:
                        self._write(docs)
                    return UpdateResult(1, 1 if changed else 0)
        return UpdateResult(0, 0)


class Database:
    """Directory of JSON collections (``<data_dir>/<name>/<collection>.json``)."""

    def __init__(self, data_dir: str, name: str):
        self.name = name
        self.root = os.path.join(data_dir, name)
        self._collections: Dict[str, JsonCollection] = {}
        self._guard = threading.Lock()

    def get_collection(self, name: str) -> JsonCollection:
        with self._guard:
            coll = self._collections.get(name)
            if coll is None:
                coll = JsonCollection(os.path.join(self.root, f"{name}.json"), name)
                self._collections[name] = coll
            return coll
