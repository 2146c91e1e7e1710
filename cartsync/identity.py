"""
Session identity feed.

The auth layer publishes identity changes here; the cart store listens.
The same identity may be delivered more than once.
"""
from typing import Awaitable, Callable, List, Protocol

from cartsync.models import SessionIdentity

IdentityListener = Callable[[SessionIdentity], Awaitable[None]]


class IdentityFeed:
    """In-process Identity implementation"""

    def __init__(self, initial: SessionIdentity = SessionIdentity.anonymous()):
        self.current = initial
        self._listeners: List[IdentityListener] = []

    def on_change(self, callback: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe function"""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def publish(self, identity: SessionIdentity) -> None:
        """Deliver an identity event to every listener, in registration order"""
        self.current = identity
        for listener in list(self._listeners):
            await listener(identity)


class Identity(Protocol):
    """What the cart store needs from the auth layer"""

    current: SessionIdentity

    def on_change(self, callback: IdentityListener) -> Callable[[], None]:
        ...
