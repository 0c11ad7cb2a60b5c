"""Login/logout notifications for interested listeners."""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Union

from .storage import StoredProfile

logger = logging.getLogger(__name__)


class ClientLoginEvents(str, Enum):
    LOGIN = "clientlogin.Login"
    LOGOUT = "clientlogin.Logout"


@dataclass(frozen=True)
class ClientLoginEvent:
    type: ClientLoginEvents
    profile: StoredProfile
    table_name: str = "clientlogin_profiles"


Listener = Callable[[ClientLoginEvent], Union[None, Awaitable[None]]]


class EventNotifier:
    """
    Dispatches login events to registered listeners.

    A failing listener is logged and skipped; it never aborts a login.
    """

    def __init__(self, debug_mode: bool = False):
        self.debug_mode = debug_mode
        self._listeners: Dict[ClientLoginEvents, List[Listener]] = {}

    def add_listener(self, event_type: ClientLoginEvents, listener: Listener) -> None:
        self._listeners.setdefault(ClientLoginEvents(event_type), []).append(listener)

    def remove_listener(self, event_type: ClientLoginEvents, listener: Listener) -> None:
        listeners = self._listeners.get(ClientLoginEvents(event_type), [])
        if listener in listeners:
            listeners.remove(listener)

    def has_listeners(self, event_type: ClientLoginEvents) -> bool:
        return bool(self._listeners.get(ClientLoginEvents(event_type)))

    async def dispatch(self, event_type: ClientLoginEvents, profile: StoredProfile) -> int:
        """
        Deliver an event to every listener.

        Returns:
            Number of listeners that handled the event without error
        """
        event_type = ClientLoginEvents(event_type)
        if not self.has_listeners(event_type):
            return 0

        event = ClientLoginEvent(type=event_type, profile=profile)
        delivered = 0
        for listener in list(self._listeners[event_type]):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.critical(
                    f"ClientLogin event dispatcher had an error in {event_type.value} listener: {e}",
                    exc_info=self.debug_mode,
                )
        return delivered
