from .pds_repository import PdsRepository

__all__ = ["PdsRepository"]
