import weakref
from collections import defaultdict
from types import MethodType
from typing import Callable, DefaultDict, List, Optional, Union

Listener = Union[Callable[..., None], weakref.WeakMethod]


def _resolve(listener: Listener) -> Optional[Callable[..., None]]:
    if isinstance(listener, weakref.WeakMethod):
        return listener()
    return listener


class EventBus:
    """Pub/sub used by the ledger and services to notify screens.

    Bound methods are held weakly so a closed screen does not keep
    receiving table updates; plain functions and lambdas are held strongly.
    """

    __slots__ = ("_subs",)

    def __init__(self) -> None:
        self._subs: DefaultDict[str, List[Listener]] = defaultdict(list)

    def subscribe(self, event_name: str, callback: Callable[..., None]) -> None:
        ref = weakref.WeakMethod(callback) if isinstance(callback, MethodType) else callback
        self._subs[event_name].append(ref)

    def unsubscribe(self, event_name: str, callback: Callable[..., None]) -> None:
        self._subs[event_name] = [
            ref
            for ref in self._subs.get(event_name, [])
            if _resolve(ref) not in (None, callback)
        ]

    def emit(self, event_name: str, *args, **kwargs) -> None:
        # iterate a snapshot; (un)subscribes made by a listener land in the live list
        try:
            for ref in list(self._subs.get(event_name, ())):
                if ref not in self._subs.get(event_name, ()):
                    continue
                fn = _resolve(ref)
                if fn is not None:
                    fn(*args, **kwargs)
        finally:
            current = self._subs.get(event_name)
            if current:
                self._subs[event_name] = [ref for ref in current if _resolve(ref) is not None]


bus = EventBus()
