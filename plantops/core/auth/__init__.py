from plantops.core.auth.authenticator import AuthCheck, Authenticator, AuthSource, LoginResult
from plantops.core.auth.fallback import FallbackCredentialTable, is_local_token
from plantops.core.auth.remote import RemoteAuthClient, RemoteAuthResult

__all__ = [
    "AuthCheck",
    "AuthSource",
    "Authenticator",
    "FallbackCredentialTable",
    "LoginResult",
    "RemoteAuthClient",
    "RemoteAuthResult",
    "is_local_token",
]
