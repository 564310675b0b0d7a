from bbms.core.config import Settings, settings
from bbms.core.database import Base, create_session_factory, init_db

__all__ = ["Base", "Settings", "create_session_factory", "init_db", "settings"]
