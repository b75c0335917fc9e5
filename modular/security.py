"""
Execution identity for module startup.

Components run as the privileged system user regardless of who started the
application. The previous identity is always restored afterwards.
"""

import logging
import threading
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

SYSTEM_USER_NAME = "System"


class AuthenticationContext:
    """Holds the principal that work is currently performed as."""

    def __init__(
        self,
        initial_user: Optional[str] = None,
        system_user: str = SYSTEM_USER_NAME,
        logger: Optional[logging.Logger] = None,
    ):
        self.system_user = system_user
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._current_user = initial_user
        self._lock = threading.RLock()

    def get_current_authentication(self) -> Optional[str]:
        with self._lock:
            return self._current_user

    def set_current_authentication(self, user: Optional[str]) -> None:
        with self._lock:
            self._current_user = user

    def set_system_user_as_current_user(self) -> None:
        self.set_current_authentication(self.system_user)

    def is_system_user(self) -> bool:
        return self.get_current_authentication() == self.system_user

    def run_as_system(self, work: Callable[[], T]) -> T:
        """Run ``work`` as the system user, then restore the previous user."""
        previous = self.get_current_authentication()
        self.set_system_user_as_current_user()
        self.logger.debug(
            f"Running as '{self.system_user}' (previous user: {previous})"
        )
        try:
            return work()
        finally:
            self.set_current_authentication(previous)
