from .app import create_app
from .config import Config

__all__ = ["Config", "create_app"]
