"""Process-wide connectivity state.

Combines the host's network signal with the error channel of the Record
subscription. UI code reads it to decide whether to block mutations and
show a "connection lost" state. Nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable

from loguru import logger

import shiftlog.backends.base as base
import shiftlog.errors as errors

OnConnectivity = Callable[["ConnectivityState"], None]


@dataclass(frozen=True)
class ConnectivityState:
    is_network_reachable: bool = True
    backend_error: str = ""

    @property
    def is_blocked(self) -> bool:
        """True while mutations should be held back."""
        return not self.is_network_reachable or bool(self.backend_error)


class ConnectivityMonitor:
    """Tracks ConnectivityState and notifies listeners on every transition."""

    def __init__(self) -> None:
        self._state = ConnectivityState()
        self._listeners: list[OnConnectivity] = []

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def is_blocked(self) -> bool:
        return self._state.is_blocked

    def set_network_reachable(self, reachable: bool) -> None:
        """Feed the host's online/offline signal.

        Nothing in this package probes the network. The embedding UI owns
        that signal and must call this on every change; until it does the
        network is assumed reachable and only backend errors block writes.
        """
        self._update(replace(self._state, is_network_reachable=reachable))

    def report_backend_error(self, message: str) -> None:
        """Feed the Record subscription's error channel ("" means recovered)."""
        self._update(replace(self._state, backend_error=message))

    def require_writable(self, operation: str) -> None:
        """Raise ConnectivityError if mutations are currently blocked."""
        state = self._state
        if not state.is_network_reachable:
            raise errors.ConnectivityError(operation, "network is unreachable")
        if state.backend_error:
            raise errors.ConnectivityError(operation, state.backend_error)

    def subscribe(self, listener: OnConnectivity) -> base.Subscription:
        """Register a listener; it fires now and on every state change."""
        self._listeners.append(listener)
        listener(self._state)

        def cancel() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return base.Subscription(cancel)

    def _update(self, state: ConnectivityState) -> None:
        if state == self._state:
            return
        self._state = state
        if state.is_blocked:
            logger.warning(
                f"Connectivity lost (network={'up' if state.is_network_reachable else 'down'}"
                f", backend='{state.backend_error}')"
            )
        else:
            logger.info("Connectivity restored")
        for listener in list(self._listeners):
            listener(state)
