from .adapter import IAdapter
from .query_options import FindOptions

__all__ = ["FindOptions", "IAdapter"]
