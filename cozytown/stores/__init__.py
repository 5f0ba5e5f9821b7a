from .base import Contribution, Store
from .memory import MemoryStore

__all__ = ["Contribution", "Store", "MemoryStore"]
