"""Builders for freshly created session and combatant records."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import uuid

from combattracker.backend.models import CombatantRecord, CustomAction, NewCombatant, SessionRecord
from combattracker.backend.security import hash_token


DEFAULT_SESSION_TTL = timedelta(hours=24)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_initial_session(
    code: str,
    dm_token_hash: str,
    now: datetime,
    ttl: timedelta = DEFAULT_SESSION_TTL,
    campaign_id: str | None = None,
) -> SessionRecord:
    """Return a new active session on round 1, turn index 0."""
    return SessionRecord(
        id=str(uuid.uuid4()),
        code=code,
        dm_token_hash=dm_token_hash,
        created_at=now,
        expires_at=now + ttl,
        round=1,
        current_turn_index=0,
        is_active=True,
        campaign_id=campaign_id,
    )


def build_initial_combatant(
    session_id: str,
    data: NewCombatant,
    order_index: int,
    now: datetime,
    server_salt: str,
) -> CombatantRecord:
    """Return a combatant with every action-economy resource available."""
    current_hp = data.current_hp if data.current_hp is not None else data.max_hp
    player_token_hash = hash_token(data.player_token, server_salt) if data.player_token else None
    custom_actions = tuple(
        CustomAction(
            id=str(uuid.uuid4()),
            name=action.name,
            max_uses=action.max_uses,
            current_uses=action.max_uses,
            reset_on=action.reset_on,
        )
        for action in data.custom_actions
    )
    return CombatantRecord(
        id=str(uuid.uuid4()),
        session_id=session_id,
        name=data.name,
        initiative=data.initiative,
        created_at=now,
        order_index=order_index,
        max_hp=data.max_hp,
        current_hp=current_hp,
        is_player=data.is_player,
        player_token_hash=player_token_hash,
        action_available=True,
        bonus_action_available=True,
        reaction_available=True,
        movement_available=True,
        custom_actions=custom_actions,
        notes=data.notes,
        conditions=tuple(data.conditions),
    )
