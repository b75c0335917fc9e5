"""
Transaction boundary around a unit of registry work.
"""

import logging
from typing import Callable, Optional, TypeVar

from modular.registry_service import RegistryService

T = TypeVar("T")


class TransactionService:
    """Runs work inside a new registry transaction."""

    def __init__(
        self,
        registry_service: RegistryService,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry_service = registry_service
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def run_in_isolated_transaction(self, work: Callable[[], T]) -> T:
        """
        Execute ``work`` in its own transaction.

        Every registry write made by ``work`` is committed before this call
        returns, or rolled back if ``work`` raises. The exception is re-raised.
        """
        try:
            with self.registry_service.transaction():
                return work()
        except Exception as e:
            self.logger.debug(f"Transaction rolled back: {e}")
            raise
