import threading
from typing import Type, Callable, List, Dict, Any
from vconvert.domain.events import Event

Handler = Callable[[Any], None]

class EventBus:
    """Synchronous publish/subscribe.

    Handlers registered for a base event class also receive its subclasses.
    Publishing is safe from worker threads; handlers run on the publishing
    thread, one publish at a time.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Handler]] = {}
        self._lock = threading.RLock()

    def subscribe(self, event_type: Type[Event], callback: Handler):
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: Type[Event], callback: Handler):
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if callback in handlers:
                handlers.remove(callback)

    def publish(self, event: Event):
        with self._lock:
            for event_type in type(event).__mro__:
                for callback in list(self._subscribers.get(event_type, ())):
                    callback(event)
