from typing import Optional

from pinas.config import config
from pinas.db.manager import DatabaseManager

_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Process wide DatabaseManager for the configured database URL."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(config.database_url)
        _db_manager.init_schema()
    return _db_manager
