"""
Message Bus

Central hub for routing commands and events to their handlers.
Implements the Mediator pattern for decoupling components.

Event delivery is at-least-once: the same event may be published again
(e.g. a re-delivered webhook replays a transition that was already
recorded). Handlers registered with ``idempotent=True`` are shielded from
duplicates by remembering the event ids they have already seen.
"""

from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Dict, List, Type
from uuid import UUID
import logging

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class _SeenEvents:
    """Bounded memory of (handler, event_id) pairs already delivered."""

    def __init__(self, capacity: int = 10_000):
        self._capacity = capacity
        self._seen: 'OrderedDict[tuple[str, UUID], None]' = OrderedDict()
        self._lock = Lock()

    def check_and_mark(self, handler_name: str, event_id: UUID) -> bool:
        key = (handler_name, event_id)
        with self._lock:
            if key in self._seen:
                return False
            self._seen[key] = None
            if len(self._seen) > self._capacity:
                self._seen.popitem(last=False)
            return True


class MessageBus:
    """
    Message bus for commands and events

    Commands: One handler per command (1:1)
    Events: Multiple handlers per event (1:N)
    """

    def __init__(self):
        self._event_handlers: Dict[Type[DomainEvent], List[Callable]] = {}
        self._idempotent: set[Callable] = set()
        self._command_handlers: Dict[Type, Callable] = {}
        self._seen = _SeenEvents()

    def register_event_handler(
        self,
        event_type: Type[DomainEvent],
        handler: Callable[[DomainEvent], None],
        idempotent: bool = False,
    ):
        """
        Register an event handler

        Multiple handlers can be registered for the same event type.
        """
        self._event_handlers.setdefault(event_type, []).append(handler)
        if idempotent:
            self._idempotent.add(handler)
        logger.debug(f"Registered event handler for {event_type.__name__}")

    def register_command_handler(
        self,
        command_type: Type,
        handler: Callable[[Any], Any]
    ):
        """
        Register a command handler

        Only one handler can be registered per command type.
        """
        if command_type in self._command_handlers:
            raise ValueError(
                f"Handler for {command_type.__name__} is already registered. "
                "Commands can have only one handler."
            )
        self._command_handlers[command_type] = handler
        logger.debug(f"Registered command handler for {command_type.__name__}")

    def handle_command(self, command: Any) -> Any:
        """
        Handle a command

        Returns the result from the command handler.
        Raises ValueError if no handler is registered.
        """
        command_type = type(command)
        handler = self._command_handlers.get(command_type)

        if not handler:
            raise ValueError(
                f"No handler registered for command {command_type.__name__}"
            )

        logger.info(f"Handling command: {command_type.__name__}")
        try:
            result = handler(command)
            logger.debug(f"Command {command_type.__name__} handled successfully")
            return result
        except Exception as e:
            logger.error(f"Error handling command {command_type.__name__}: {e}")
            raise

    def publish_events(self, events: List[DomainEvent]):
        """
        Publish domain events

        All registered handlers for each event type will be called.
        Errors in handlers are logged but don't stop other handlers.
        """
        for event in events:
            event_type = type(event)
            handlers = self._event_handlers.get(event_type, [])

            if not handlers:
                logger.debug(f"No handlers registered for event {event_type.__name__}")
                continue

            logger.info(f"Publishing event: {event_type.__name__} (ID: {event.event_id})")

            for handler in handlers:
                name = getattr(handler, '__qualname__', repr(handler))
                if handler in self._idempotent and not self._seen.check_and_mark(name, event.event_id):
                    logger.debug(f"Skipping duplicate {event_type.__name__} for {name}")
                    continue
                try:
                    handler(event)
                    logger.debug(f"Event {event_type.__name__} handled by {name}")
                except Exception as e:
                    logger.error(
                        f"Error in event handler {name} "
                        f"for event {event_type.__name__}: {e}",
                        exc_info=True
                    )
                    # Don't raise - other handlers should still run
