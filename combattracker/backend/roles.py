"""Role resolution for DM and player tokens."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from combattracker.backend.models import CombatantRecord, SessionRecord
from combattracker.backend.security import verify_token


class Role(str, Enum):
    DM = "dm"
    PLAYER = "player"


def is_dm(session: SessionRecord | None, token: str | None, server_salt: str) -> bool:
    if session is None:
        return False
    return verify_token(token, session.dm_token_hash, server_salt)


def is_owning_player(combatant: CombatantRecord | None, token: str | None, server_salt: str) -> bool:
    if combatant is None:
        return False
    return verify_token(token, combatant.player_token_hash, server_salt)


def resolve_role(
    session: SessionRecord | None,
    token: str | None,
    server_salt: str,
    combatants: list[CombatantRecord] | tuple[CombatantRecord, ...] = (),
) -> Role | None:
    """Return the role a token holds for a session.

    The DM token wins. Otherwise the token is a player token when it matches
    one of the given combatants of that session.
    """
    if is_dm(session, token, server_salt):
        return Role.DM
    if session is None:
        return None
    for combatant in combatants:
        if combatant.session_id == session.id and is_owning_player(combatant, token, server_salt):
            return Role.PLAYER
    return None


@dataclass
class ClientCredentials:
    """The single role token a client holds.

    Holding a DM token and a player token at the same time is not allowed:
    setting either one drops the other.
    """

    dm_token: str | None = None
    player_token: str | None = None

    @property
    def role(self) -> Role | None:
        if self.dm_token:
            return Role.DM
        if self.player_token:
            return Role.PLAYER
        return None

    @property
    def token(self) -> str | None:
        return self.dm_token or self.player_token

    def set_dm_token(self, token: str | None) -> None:
        if token:
            self.dm_token = token
            self.player_token = None
        else:
            self.dm_token = None

    def set_player_token(self, token: str | None) -> None:
        if token:
            self.player_token = token
            self.dm_token = None
        else:
            self.player_token = None

    def clear(self) -> None:
        self.dm_token = None
        self.player_token = None
