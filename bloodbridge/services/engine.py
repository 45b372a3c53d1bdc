from fastapi import Request

from bloodbridge.database.store import EntityStore
from bloodbridge.services.delivery import NotificationDispatcher
from bloodbridge.services.lifecycle import RequestLifecycleController


class NotificationEngine:
    """Store, dispatcher and lifecycle controller wired together."""

    def __init__(self, session_factory, gateway):
        self.store = EntityStore(session_factory)
        self.gateway = gateway
        self.dispatcher = NotificationDispatcher(self.store, gateway)
        self.controller = RequestLifecycleController(self.store, self.dispatcher)
        self.store.subscribe(self.controller.handle_write)


def get_engine(request: Request) -> NotificationEngine:
    """FastAPI dependency: the engine built on app startup."""
    return request.app.state.engine
