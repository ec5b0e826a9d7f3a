from .database import Database, StoreUnavailableError

__all__ = ["Database", "StoreUnavailableError"]
