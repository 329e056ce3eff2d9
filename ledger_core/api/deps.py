"""
Dependency wiring for the API layer
"""

import threading
from typing import Optional

from fastapi import Depends

from ..config import LedgerConfig, get_config
from ..ledger import LedgerEngine
from ..storage import StorageInterface, create_storage


class LedgerSystem:
    """Ledger components built from configuration"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[LedgerConfig] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config)
        self.engine = LedgerEngine(self.storage)

    def close(self) -> None:
        self.storage.close()


_system: Optional[LedgerSystem] = None
_system_lock = threading.Lock()


def get_ledger_system() -> LedgerSystem:
    """Process-wide ledger system, created on first use"""
    global _system
    with _system_lock:
        if _system is None:
            _system = LedgerSystem()
        return _system


def get_engine(system: LedgerSystem = Depends(get_ledger_system)) -> LedgerEngine:
    return system.engine


def get_settings(system: LedgerSystem = Depends(get_ledger_system)) -> LedgerConfig:
    return system.config
