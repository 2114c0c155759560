from datetime import datetime, timedelta, timezone

import pytest

from combattracker.backend.errors import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from combattracker.backend.models import NewCombatant, NewCustomAction
from combattracker.backend.roles import Role
from combattracker.backend.store import InMemoryCombatStore
from combattracker.backend.tracker import CombatTracker


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryCombatStore:
    return InMemoryCombatStore()


@pytest.fixture
def tracker(store: InMemoryCombatStore, clock: FakeClock) -> CombatTracker:
    return CombatTracker(store=store, server_salt="salt", clock=clock)


def test_create_session_returns_active_session_and_dm_token(tracker: CombatTracker, clock: FakeClock) -> None:
    created = tracker.create_session()

    assert created.dm_token
    assert len(created.session.code) == 6
    assert created.session.round == 1
    assert created.session.current_turn_index == 0
    assert created.session.is_active is True
    assert created.session.expires_at == clock.now + timedelta(hours=24)
    assert tracker.verify_dm_token(created.session.id, created.dm_token) is True
    assert tracker.verify_dm_token(created.session.id, "someone-else") is False


def test_join_session_is_case_insensitive(tracker: CombatTracker) -> None:
    created = tracker.create_session()

    joined = tracker.join_session(created.session.code.lower())

    assert joined.id == created.session.id


def test_join_session_unknown_code_is_not_found(tracker: CombatTracker) -> None:
    with pytest.raises(NotFoundError, match="not found or expired"):
        tracker.join_session("ZZZZZZ")


def test_join_expired_session_deactivates_it_then_reports_not_found(
    tracker: CombatTracker, store: InMemoryCombatStore, clock: FakeClock
) -> None:
    created = tracker.create_session()
    clock.advance(hours=24, seconds=1)

    with pytest.raises(ExpiredError):
        tracker.join_session(created.session.code)

    assert store.get_session(created.session.id).is_active is False
    with pytest.raises(NotFoundError):
        tracker.join_session(created.session.code)


def test_join_session_at_exact_expiry_instant_still_succeeds(tracker: CombatTracker, clock: FakeClock) -> None:
    created = tracker.create_session()
    clock.advance(hours=24)

    assert tracker.join_session(created.session.code).id == created.session.id


def test_end_session_with_wrong_token_leaves_session_active(
    tracker: CombatTracker, store: InMemoryCombatStore
) -> None:
    created = tracker.create_session()

    with pytest.raises(UnauthorizedError):
        tracker.end_session(created.session.id, "not-the-dm")

    assert store.get_session(created.session.id).is_active is True


def test_end_session_deactivates_without_deleting_combatants(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    tracker.add_combatant(created.session.id, NewCombatant(name="Orc", initiative=12), created.dm_token)

    ended = tracker.end_session(created.session.id, created.dm_token)

    assert ended.is_active is False
    assert len(tracker.get_combatants(created.session.id)) == 1
    with pytest.raises(NotFoundError):
        tracker.join_session(created.session.code)
    with pytest.raises(NotFoundError):
        tracker.get_session(created.session.id)


def test_update_session_patches_only_supplied_fields(tracker: CombatTracker) -> None:
    created = tracker.create_session()

    updated = tracker.update_session(created.session.id, round=3)

    assert updated.round == 3
    assert updated.current_turn_index == 0
    assert updated.is_active is True


def test_update_session_unknown_id_is_not_found(tracker: CombatTracker) -> None:
    with pytest.raises(NotFoundError):
        tracker.update_session("missing", round=2)


def test_dm_gated_calls_on_missing_session_are_unauthorized(tracker: CombatTracker) -> None:
    with pytest.raises(UnauthorizedError):
        tracker.advance_turn("missing-session", "any-token")
    with pytest.raises(UnauthorizedError):
        tracker.end_session("missing-session", "any-token")


def test_create_session_records_campaign(tracker: CombatTracker, store: InMemoryCombatStore) -> None:
    created = tracker.create_session(campaign_id="camp-1")

    assert created.session.campaign_id == "camp-1"
    assert store.count_campaign_sessions("camp-1") == 1

def test_add_combatant_assigns_order_index_sequentially(tracker: CombatTracker) -> None:
    created = tracker.create_session()

    first = tracker.add_combatant(created.session.id, NewCombatant(name="Orc", initiative=12), created.dm_token)
    second = tracker.add_combatant(created.session.id, NewCombatant(name="Goblin", initiative=18), created.dm_token)

    assert first.order_index == 0
    assert second.order_index == 1


def test_add_combatant_requires_dm_token(tracker: CombatTracker) -> None:
    created = tracker.create_session()

    with pytest.raises(UnauthorizedError):
        tracker.add_combatant(created.session.id, NewCombatant(name="Orc", initiative=12), "player")
    with pytest.raises(UnauthorizedError):
        tracker.add_combatant("missing-session", NewCombatant(name="Orc", initiative=12), created.dm_token)


def test_add_combatant_validates_input(tracker: CombatTracker) -> None:
    created = tracker.create_session()

    with pytest.raises(ValidationError):
        tracker.add_combatant(created.session.id, NewCombatant(name="  ", initiative=3), created.dm_token)
    with pytest.raises(ValidationError):
        tracker.add_combatant(
            created.session.id,
            NewCombatant(name="Lich", initiative=3, custom_actions=(NewCustomAction("Paralyze", 1, "rest"),)),
            created.dm_token,
        )


def test_add_combatant_defaults_current_hp_to_max_hp(tracker: CombatTracker) -> None:
    created = tracker.create_session()

    combatant = tracker.add_combatant(
        created.session.id, NewCombatant(name="Troll", initiative=7, max_hp=84), created.dm_token
    )

    assert combatant.current_hp == 84
    assert combatant.custom_actions == ()


def test_combatants_stay_ordered_after_adds_and_removes(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    session_id = created.session.id
    added = [
        tracker.add_combatant(session_id, NewCombatant(name=name, initiative=initiative), created.dm_token)
        for name, initiative in [("A", 10), ("B", 15), ("C", 10), ("D", 20), ("E", 15)]
    ]
    tracker.remove_combatant(added[1].id, created.dm_token)
    tracker.add_combatant(session_id, NewCombatant(name="F", initiative=10), created.dm_token)

    ordered = tracker.get_combatants(session_id)

    assert [c.name for c in ordered] == ["D", "E", "A", "C", "F"]
    keys = [(-c.initiative, c.order_index) for c in ordered]
    assert keys == sorted(keys)


def test_remove_combatant_errors(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    orc = tracker.add_combatant(created.session.id, NewCombatant(name="Orc", initiative=12), created.dm_token)

    with pytest.raises(NotFoundError):
        tracker.remove_combatant("missing", created.dm_token)
    with pytest.raises(UnauthorizedError):
        tracker.remove_combatant(orc.id, "wrong")

    assert [c.id for c in tracker.get_combatants(created.session.id)] == [orc.id]


def test_update_combatant_actions_accepts_owning_player_token(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    hero = tracker.add_combatant(
        created.session.id,
        NewCombatant(name="Aria", initiative=16, is_player=True, player_token="player-1"),
        created.dm_token,
    )

    updated = tracker.update_combatant_actions(hero.id, {"action_available": False}, "player-1")

    assert updated.action_available is False
    assert updated.bonus_action_available is True


def test_update_combatant_actions_accepts_dm_and_rejects_strangers(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    hero = tracker.add_combatant(
        created.session.id,
        NewCombatant(name="Aria", initiative=16, is_player=True, player_token="player-1"),
        created.dm_token,
    )
    orc = tracker.add_combatant(created.session.id, NewCombatant(name="Orc", initiative=12), created.dm_token)

    updated = tracker.update_combatant_actions(orc.id, {"reaction_available": False}, created.dm_token)
    assert updated.reaction_available is False

    with pytest.raises(UnauthorizedError):
        tracker.update_combatant_actions(hero.id, {"action_available": False}, "stranger")
    with pytest.raises(UnauthorizedError):
        tracker.update_combatant_actions(orc.id, {"action_available": False}, "player-1")


def test_update_combatant_actions_missing_combatant(tracker: CombatTracker) -> None:
    with pytest.raises(NotFoundError):
        tracker.update_combatant_actions("missing", {"action_available": False}, "token")


def _spend_everything(tracker: CombatTracker, session_id: str, dm_token: str) -> None:
    for combatant in tracker.get_combatants(session_id):
        tracker.update_combatant_actions(
            combatant.id,
            {
                "action_available": False,
                "bonus_action_available": False,
                "reaction_available": False,
                "movement_available": False,
            },
            dm_token,
        )


def test_turn_reset_leaves_reactions_untouched(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    session_id = created.session.id
    tracker.add_combatant(session_id, NewCombatant(name="Orc", initiative=12), created.dm_token)
    tracker.add_combatant(session_id, NewCombatant(name="Goblin", initiative=18), created.dm_token)
    _spend_everything(tracker, session_id, created.dm_token)

    combatants = tracker.reset_combatant_actions(session_id, "turn", created.dm_token)

    for combatant in combatants:
        assert combatant.action_available is True
        assert combatant.bonus_action_available is True
        assert combatant.movement_available is True
        assert combatant.reaction_available is False


def test_round_reset_restores_all_flags(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    session_id = created.session.id
    tracker.add_combatant(session_id, NewCombatant(name="Orc", initiative=12), created.dm_token)
    _spend_everything(tracker, session_id, created.dm_token)

    combatants = tracker.reset_combatant_actions(session_id, "round", created.dm_token)

    assert all(
        c.action_available and c.bonus_action_available and c.reaction_available and c.movement_available
        for c in combatants
    )


def test_reset_requires_dm_and_known_type(tracker: CombatTracker) -> None:
    created = tracker.create_session()

    with pytest.raises(UnauthorizedError):
        tracker.reset_combatant_actions(created.session.id, "turn", "player")
    with pytest.raises(ValidationError):
        tracker.reset_combatant_actions(created.session.id, "encounter", created.dm_token)


def test_resets_recharge_custom_actions_by_trigger(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    dragon = tracker.add_combatant(
        created.session.id,
        NewCombatant(
            name="Dragon",
            initiative=21,
            custom_actions=(
                NewCustomAction("Legendary Action", 3, "turn"),
                NewCustomAction("Lair Action", 1, "round"),
                NewCustomAction("Frightful Presence", 1, "manual"),
            ),
        ),
        created.dm_token,
    )
    for action in dragon.custom_actions:
        tracker.use_custom_action(dragon.id, action.id, created.dm_token)

    after_turn = tracker.reset_combatant_actions(created.session.id, "turn", created.dm_token)[0]
    assert [a.current_uses for a in after_turn.custom_actions] == [3, 0, 0]

    after_round = tracker.reset_combatant_actions(created.session.id, "round", created.dm_token)[0]
    assert [a.current_uses for a in after_round.custom_actions] == [3, 1, 0]


def test_use_custom_action_by_owner_and_exhaustion(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    hero = tracker.add_combatant(
        created.session.id,
        NewCombatant(
            name="Fighter",
            initiative=11,
            is_player=True,
            player_token="player-1",
            custom_actions=(NewCustomAction("Action Surge", 1, "manual"),),
        ),
        created.dm_token,
    )
    surge_id = hero.custom_actions[0].id

    spent = tracker.use_custom_action(hero.id, surge_id, "player-1")

    assert spent.custom_actions[0].current_uses == 0
    with pytest.raises(ValidationError):
        tracker.use_custom_action(hero.id, surge_id, "player-1")
    with pytest.raises(UnauthorizedError):
        tracker.use_custom_action(hero.id, surge_id, "stranger")


def test_advance_turn_steps_and_wraps_rounds(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    session_id = created.session.id
    tracker.add_combatant(session_id, NewCombatant(name="Orc", initiative=12), created.dm_token)
    tracker.add_combatant(session_id, NewCombatant(name="Goblin", initiative=18), created.dm_token)
    _spend_everything(tracker, session_id, created.dm_token)

    stepped = tracker.advance_turn(session_id, created.dm_token)
    assert (stepped.round, stepped.current_turn_index) == (1, 1)
    assert all(not c.reaction_available and c.action_available for c in tracker.get_combatants(session_id))

    wrapped = tracker.advance_turn(session_id, created.dm_token)
    assert (wrapped.round, wrapped.current_turn_index) == (2, 0)
    assert all(c.reaction_available for c in tracker.get_combatants(session_id))


def test_advance_turn_with_empty_roster_and_wrong_token(tracker: CombatTracker) -> None:
    created = tracker.create_session()

    unchanged = tracker.advance_turn(created.session.id, created.dm_token)

    assert (unchanged.round, unchanged.current_turn_index) == (1, 0)
    with pytest.raises(UnauthorizedError):
        tracker.advance_turn(created.session.id, "player")


def test_claim_combatant_binds_player_token_once(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    hero = tracker.add_combatant(
        created.session.id, NewCombatant(name="Aria", initiative=16, is_player=True), created.dm_token
    )
    orc = tracker.add_combatant(created.session.id, NewCombatant(name="Orc", initiative=12), created.dm_token)

    claimed = tracker.claim_combatant(hero.id, "player-1")

    assert claimed.claimed is True
    assert tracker.claim_combatant(hero.id, "player-1").id == hero.id
    with pytest.raises(ConflictError):
        tracker.claim_combatant(hero.id, "player-2")
    with pytest.raises(ValidationError):
        tracker.claim_combatant(orc.id, "player-1")
    assert tracker.update_combatant_actions(hero.id, {"movement_available": False}, "player-1").movement_available is False


def test_update_combatant_is_dm_only_and_limited_to_editable_fields(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    orc = tracker.add_combatant(
        created.session.id, NewCombatant(name="Orc", initiative=12, max_hp=15), created.dm_token
    )

    updated = tracker.update_combatant(
        orc.id, {"current_hp": 4, "conditions": ["prone"], "notes": "bloodied"}, created.dm_token
    )

    assert updated.current_hp == 4
    assert updated.conditions == ("prone",)
    assert updated.notes == "bloodied"
    with pytest.raises(UnauthorizedError):
        tracker.update_combatant(orc.id, {"current_hp": 0}, "player")
    with pytest.raises(ValidationError):
        tracker.update_combatant(orc.id, {"order_index": 9}, created.dm_token)
    with pytest.raises(ValidationError):
        tracker.update_combatant(orc.id, {"name": ""}, created.dm_token)


def test_resolve_role_for_dm_player_and_stranger(tracker: CombatTracker) -> None:
    created = tracker.create_session()
    hero = tracker.add_combatant(
        created.session.id,
        NewCombatant(name="Aria", initiative=16, is_player=True, player_token="player-1"),
        created.dm_token,
    )
    session_id = created.session.id

    assert tracker.resolve_role(session_id, created.dm_token) is Role.DM
    assert tracker.resolve_role(session_id, "player-1") is Role.PLAYER
    assert tracker.resolve_role(session_id, "player-1", combatant_id=hero.id) is Role.PLAYER
    assert tracker.resolve_role(session_id, "stranger") is None


def test_verify_dm_token_by_code(tracker: CombatTracker) -> None:
    created = tracker.create_session()

    assert tracker.verify_dm_token_by_code(created.session.code.lower(), created.dm_token) is True
    assert tracker.verify_dm_token_by_code(created.session.code, "player") is False
    assert tracker.verify_dm_token_by_code("ZZZZZZ", created.dm_token) is False


def test_end_to_end_combat_flow(
    tracker: CombatTracker, store: InMemoryCombatStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("combattracker.backend.tracker.generate_join_code", lambda: "AB12CD")
    monkeypatch.setattr("combattracker.backend.tracker.generate_token", lambda: "t1")

    created = tracker.create_session()
    assert created.session.code == "AB12CD"
    assert created.dm_token == "t1"
    session_id = created.session.id

    orc = tracker.add_combatant(session_id, NewCombatant(name="Orc", initiative=12), "t1")
    goblin = tracker.add_combatant(session_id, NewCombatant(name="Goblin", initiative=18), "t1")
    tracker.update_combatant_actions(orc.id, {"reaction_available": False, "movement_available": False}, "t1")

    ordered = tracker.get_combatants(session_id)
    assert [(c.name, c.initiative) for c in ordered] == [("Goblin", 18), ("Orc", 12)]

    after_reset = {c.id: c for c in tracker.reset_combatant_actions(session_id, "turn", "t1")}
    for combatant in after_reset.values():
        assert combatant.movement_available and combatant.action_available and combatant.bonus_action_available
    assert after_reset[orc.id].reaction_available is False
    assert after_reset[goblin.id].reaction_available is True

    joined = tracker.join_session("ab12cd")
    assert joined == store.get_session(session_id)
