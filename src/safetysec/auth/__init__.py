"""
Authentication core for SafetySec.

Provides the user/role model, the auth repository over identity and
document services, the auth use cases and the observable auth state.
"""

from .models import (
    USERS_COLLECTION,
    RoleParseError,
    User,
    UserDocument,
    UserRole,
    parse_role,
)
from .results import AuthResult, Error, Loading, Success
from .observable import MutableState, ObservableState, Subscription
from .services import (
    DocumentStore,
    DocumentStoreError,
    IdentityError,
    IdentityProvider,
    IdentitySession,
    ServiceError,
)
from .repository import AuthRepository, DefaultAuthRepository
from .usecases import GetCurrentUserUseCase, LoginUseCase, LogoutUseCase, RegisterUseCase
from .state import AuthState, AuthStateContainer
from .database import Account, UserDatabase
from .jwt_handler import JWTHandler, SessionClaims, load_or_create_secret
from .token_store import TokenStore
from .local_provider import LocalDocumentStore, LocalIdentityProvider

__all__ = [
    # Models
    "USERS_COLLECTION",
    "RoleParseError",
    "User",
    "UserDocument",
    "UserRole",
    "parse_role",
    # Results
    "AuthResult",
    "Error",
    "Loading",
    "Success",
    # Observables
    "MutableState",
    "ObservableState",
    "Subscription",
    # Service boundaries
    "DocumentStore",
    "DocumentStoreError",
    "IdentityError",
    "IdentityProvider",
    "IdentitySession",
    "ServiceError",
    # Repository and use cases
    "AuthRepository",
    "DefaultAuthRepository",
    "GetCurrentUserUseCase",
    "LoginUseCase",
    "LogoutUseCase",
    "RegisterUseCase",
    # State
    "AuthState",
    "AuthStateContainer",
    # Local backend
    "Account",
    "UserDatabase",
    "JWTHandler",
    "SessionClaims",
    "load_or_create_secret",
    "TokenStore",
    "LocalDocumentStore",
    "LocalIdentityProvider",
]
