"""nephro-client: async API client for a hemodialysis care platform."""

from nephro_client.client import NephroClient
from nephro_client.config import AppSettings
from nephro_client.exceptions import (
    AuthenticationExpired,
    InvalidPayload,
    LoginFailed,
    NephroError,
    NetworkError,
    NotLoggedIn,
    PersistenceError,
    RefreshFailed,
    RemoteError,
)
from nephro_client.gateway import RequestGateway
from nephro_client.normalizer import NormalizedList, denormalize_record, normalize_list, normalize_record
from nephro_client.pipeline import RequestDescriptor
from nephro_client.session import Session, SessionManager

__version__ = "0.1.0"

__all__ = [
    "AppSettings",
    "AuthenticationExpired",
    "InvalidPayload",
    "LoginFailed",
    "NephroClient",
    "NephroError",
    "NetworkError",
    "NormalizedList",
    "NotLoggedIn",
    "PersistenceError",
    "RefreshFailed",
    "RemoteError",
    "RequestDescriptor",
    "RequestGateway",
    "Session",
    "SessionManager",
    "denormalize_record",
    "normalize_list",
    "normalize_record",
]
