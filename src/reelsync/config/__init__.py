from .config import AppSettings, RunMode

__all__ = [
    "AppSettings",
    "RunMode",
]
