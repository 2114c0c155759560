"""Backend package for the combat tracker."""

from .config import BackendSettings, load_settings
from .errors import ConflictError, ExpiredError, NotFoundError, TrackerError, UnauthorizedError, ValidationError
from .roles import ClientCredentials, Role, resolve_role
from .security import generate_join_code, generate_token, hash_token, verify_token
from .store import CombatStore, InMemoryCombatStore, PostgresCombatStore, create_store
from .tracker import CombatTracker

__all__ = [
    "BackendSettings",
    "ClientCredentials",
    "CombatStore",
    "CombatTracker",
    "ConflictError",
    "create_store",
    "ExpiredError",
    "generate_join_code",
    "generate_token",
    "hash_token",
    "InMemoryCombatStore",
    "load_settings",
    "NotFoundError",
    "PostgresCombatStore",
    "resolve_role",
    "Role",
    "TrackerError",
    "UnauthorizedError",
    "ValidationError",
    "verify_token",
]
