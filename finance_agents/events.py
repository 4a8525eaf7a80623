import logging
from datetime import datetime
from typing import Callable, Dict, List, NamedTuple, Optional

from finance_agents.services import AnalysisService

__all__ = ['event_bus', 'TRANSACTIONS_CHANGED', 'AGENT_RUN_COMPLETED', 'Event', 'EventBus',
           'live_analysis_handler', 'register_default_handlers']

logger = logging.getLogger(__name__)


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Event, dict], dict]]] = {}

    def subscribe(self, name: str, handler: Callable[[Event, dict], dict]) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def publish(self, name: str, payload: dict) -> List[dict]:
        handlers = self._subscribers.get(name, [])
        if not handlers:
            return []

        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)
        logger.debug("publishing %s to %d handler(s)", name, len(handlers))
        return [handler(event, payload) for handler in handlers]

    def unsubscribe(self, name: str, handler: Callable[[Event, dict], dict]) -> None:
        if handler in self._subscribers.get(name, []):
            self._subscribers[name].remove(handler)


TRANSACTIONS_CHANGED = "TRANSACTIONS_CHANGED"
AGENT_RUN_COMPLETED = "AGENT_RUN_COMPLETED"

event_bus = EventBus()


def live_analysis_handler(service: AnalysisService) -> Callable[[Event, dict], dict]:
    """Re-run live analysis on ``payload["snapshot"]`` whenever transactions change."""
    def _handler(event: Event, payload: dict) -> dict:
        snapshot = payload.get("snapshot")
        if snapshot is None:
            return {}
        return service.report(snapshot, now=payload.get("now"))

    return _handler


def register_default_handlers(bus: EventBus = event_bus, service: Optional[AnalysisService] = None) -> None:
    bus.subscribe(TRANSACTIONS_CHANGED, live_analysis_handler(service or AnalysisService()))


register_default_handlers()
