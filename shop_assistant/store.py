import copy
import threading
from typing import Any, Callable, Dict, Hashable, List, Optional


class KeyedStore:
    """In-process keyed store, one dict per namespace.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store. ``update`` and ``delete`` run under the
    store lock and are the atomic primitives the cart and conversation
    code rely on.
    """

    def __init__(self):
        # {namespace: {key: value}}, insertion ordered
        self._data: Dict[str, Dict[Hashable, Any]] = {}
        self._lock = threading.RLock()

    def get(self, namespace: str, key: Hashable) -> Optional[Any]:
        with self._lock:
            value = self._data.get(namespace, {}).get(key)
            return copy.deepcopy(value)

    def put(self, namespace: str, key: Hashable, value: Any) -> None:
        with self._lock:
            self._data.setdefault(namespace, {})[key] = copy.deepcopy(value)

    def update(self, namespace: str, key: Hashable, fn: Callable[[Any], Any]) -> Optional[Any]:
        """Replace the value at ``key`` with ``fn(value)``. Returns None if absent."""
        with self._lock:
            bucket = self._data.get(namespace, {})
            if key not in bucket:
                return None
            new_value = fn(copy.deepcopy(bucket[key]))
            bucket[key] = copy.deepcopy(new_value)
            return copy.deepcopy(new_value)

    def upsert(self, namespace: str, key: Hashable, create: Callable[[], Any],
               fn: Callable[[Any], Any]) -> Any:
        """Atomically apply ``fn`` to the existing value, or to ``create()``."""
        with self._lock:
            bucket = self._data.setdefault(namespace, {})
            current = copy.deepcopy(bucket[key]) if key in bucket else create()
            new_value = fn(current)
            bucket[key] = copy.deepcopy(new_value)
            return copy.deepcopy(new_value)

    def delete(self, namespace: str, key: Hashable) -> bool:
        """Delete if present. Returns whether anything was removed."""
        with self._lock:
            bucket = self._data.get(namespace, {})
            if key not in bucket:
                return False
            del bucket[key]
            return True

    def values(self, namespace: str, where: Optional[Callable[[Any], bool]] = None) -> List[Any]:
        with self._lock:
            items = list(self._data.get(namespace, {}).values())
            if where is not None:
                items = [v for v in items if where(v)]
            return copy.deepcopy(items)

    def keys(self, namespace: str) -> List[Hashable]:
        with self._lock:
            return list(self._data.get(namespace, {}).keys())

    def count(self, namespace: str) -> int:
        with self._lock:
            return len(self._data.get(namespace, {}))
