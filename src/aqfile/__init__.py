from typing import Optional

import httpx

from .client import AqfileClient, UploadResult
from .config import Settings, load_settings
from .repositories.pds_repository import PdsRepository

from .exceptions import *

__version__ = "0.3.0"


def create_client(settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None) -> AqfileClient:
    """
    Factory for a configured AqfileClient.

    :param settings: Resolved settings. Loaded from CLI-less sources
                     (environment, config file, defaults) when omitted.
    :param http_client: Optional pre-built ``httpx.AsyncClient`` (tests pass one
                        with a mock transport).
    """
    if settings is None:
        settings = load_settings()

    pds_repo = PdsRepository(settings.service, client=http_client)
    return AqfileClient(settings=settings, pds_repo=pds_repo)


__all__ = [
    "AqfileClient", "UploadResult", "create_client", "Settings", "load_settings", "PdsRepository",
    "AqfileError", "ValidationError", "AuthError", "NotFoundError", "NetworkError",
    "UploadError", "FileSystemError", "ConfigError", "__version__",
]
