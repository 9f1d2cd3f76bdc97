"""Local mirror of one remote collection.

The transport feeds ``added``/``changed``/``removed`` notifications into a
:class:`Collection`, which keeps the current documents and fans a delta out
to every registered :class:`Observer`:

    {"added": doc}
    {"changed": {"prev": old_doc, "next": new_doc}}
    {"removed": doc}
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

Delta = Dict[str, Any]


class Observer:
    """A registered change listener on one collection."""

    def __init__(self, collection: "Collection", callback: Callable[[Delta], None]):
        self.collection = collection
        self.callback = callback
        self.stopped = False

    def stop(self) -> None:
        """Stop receiving deltas. Safe to call more than once."""

        if self.stopped:
            return
        self.stopped = True
        self.collection._detach(self)


class Collection:
    """Documents of one named collection, keyed by id."""

    def __init__(self, name: str):
        self.name = name
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._observers: List[Observer] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, id: str) -> bool:
        return id in self._documents

    def get(self, id: str) -> Optional[Dict[str, Any]]:
        doc = self._documents.get(id)
        if doc is None:
            return None
        return copy.deepcopy(doc)

    def documents(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(doc) for doc in self._documents.values()]

    # --- observers ---
    def on_change(self, callback: Callable[[Delta], None]) -> Observer:
        if not callable(callback):
            raise TypeError("callback must be callable")

        observer = Observer(self, callback)
        with self._lock:
            self._observers.append(observer)
        return observer

    @property
    def observers(self) -> int:
        return len(self._observers)

    def _detach(self, observer: Observer) -> None:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass

    def _propagate(self, delta: Delta) -> None:
        for observer in tuple(self._observers):
            if observer.stopped:
                continue
            try:
                observer.callback(delta)
            except Exception:
                logger.exception("observer on %r raised an exception", self.name)

    # --- updates from the transport ---
    def added(self, id: str, fields: Optional[Dict[str, Any]] = None) -> None:
        doc = dict(fields or {})
        doc["id"] = id

        with self._lock:
            self._documents[id] = doc
            self._propagate({"added": copy.deepcopy(doc)})

    def changed(self, id: str, fields: Optional[Dict[str, Any]] = None, cleared: Iterable[str] = ()) -> None:
        with self._lock:
            prev = self._documents.get(id)
            if prev is None:
                # A change for an unknown document is treated as an add.
                self.added(id, fields)
                return

            doc = dict(prev)
            doc.update(fields or {})
            for key in cleared:
                doc.pop(key, None)
            doc["id"] = id

            self._documents[id] = doc
            delta = {"changed": {"prev": copy.deepcopy(prev), "next": copy.deepcopy(doc)}}
            self._propagate(delta)

    def removed(self, id: str) -> None:
        with self._lock:
            doc = self._documents.pop(id, None)
            if doc is None:
                return
            self._propagate({"removed": doc})

    def clear(self) -> None:
        """Drop every document without notifying observers."""

        with self._lock:
            self._documents.clear()
