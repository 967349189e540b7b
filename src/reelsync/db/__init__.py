from .asset_db import AssetDatabase
from .sqlalchemy_core import SqlalchemyCore

__all__ = [
    "AssetDatabase",
    "SqlalchemyCore",
]
