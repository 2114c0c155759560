from datetime import datetime, timedelta, timezone

from combattracker.backend.models import NewCombatant, NewCustomAction
from combattracker.backend.security import verify_token
from combattracker.backend.state import build_initial_combatant, build_initial_session

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_build_initial_session_sets_defaults() -> None:
    session = build_initial_session(code="AB12CD", dm_token_hash="hash", now=NOW)

    assert session.id
    assert session.code == "AB12CD"
    assert session.round == 1
    assert session.current_turn_index == 0
    assert session.is_active is True
    assert session.created_at == NOW
    assert session.expires_at == NOW + timedelta(hours=24)


def test_build_initial_combatant_makes_every_resource_available() -> None:
    combatant = build_initial_combatant(
        session_id="s1",
        data=NewCombatant(
            name="Ogre",
            initiative=8,
            max_hp=59,
            custom_actions=(NewCustomAction(name="Multiattack", max_uses=2, reset_on="turn"),),
        ),
        order_index=3,
        now=NOW,
        server_salt="salt",
    )

    assert combatant.order_index == 3
    assert combatant.current_hp == 59
    assert combatant.action_available
    assert combatant.bonus_action_available
    assert combatant.reaction_available
    assert combatant.movement_available
    assert combatant.claimed is False
    assert combatant.custom_actions[0].current_uses == 2
    assert combatant.custom_actions[0].reset_on == "turn"


def test_build_initial_combatant_keeps_explicit_current_hp_and_hashes_player_token() -> None:
    combatant = build_initial_combatant(
        session_id="s1",
        data=NewCombatant(name="Aria", initiative=14, max_hp=30, current_hp=0, is_player=True, player_token="p-1"),
        order_index=0,
        now=NOW,
        server_salt="salt",
    )

    assert combatant.current_hp == 0
    assert combatant.claimed is True
    assert verify_token("p-1", combatant.player_token_hash, "salt")
