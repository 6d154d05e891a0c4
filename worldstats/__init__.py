from .config import Settings, get_settings
from .server import AppContext, ServerFactory, create_app

__all__ = ["AppContext", "ServerFactory", "Settings", "create_app", "get_settings"]
