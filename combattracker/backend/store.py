"""Persistence interfaces and implementations for tracker data."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Protocol

from combattracker.backend.models import (
    ACTION_FLAGS,
    CampaignRecord,
    CombatantRecord,
    CustomAction,
    MonsterFilters,
    MonsterRecord,
    PlayerRecord,
    SessionRecord,
)


SESSION_PATCH_COLUMNS = ("round", "current_turn_index", "is_active")
COMBATANT_PATCH_COLUMNS = ACTION_FLAGS + (
    "name",
    "initiative",
    "max_hp",
    "current_hp",
    "notes",
    "conditions",
    "custom_actions",
    "player_token_hash",
)
CAMPAIGN_PATCH_COLUMNS = ("title", "description", "settings", "updated_at")
MONSTER_PATCH_COLUMNS = ("name", "type", "size", "challenge_rating", "armor_class", "hit_points", "source")
MONSTER_OPTION_COLUMNS = ("type", "source")


class CombatStore(Protocol):
    def insert_session(self, session: SessionRecord) -> SessionRecord:
        """Persist a new session row."""

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Return a session regardless of its active flag."""

    def find_active_session(self, code: str) -> SessionRecord | None:
        """Return the active session carrying a join code."""

    def update_session(self, session_id: str, changes: dict[str, Any]) -> SessionRecord | None:
        """Patch session columns and return the updated row."""

    def insert_combatant(self, combatant: CombatantRecord) -> CombatantRecord:
        """Persist a new combatant row."""

    def get_combatant(self, combatant_id: str) -> CombatantRecord | None:
        """Return a single combatant."""

    def list_combatants(self, session_id: str) -> list[CombatantRecord]:
        """Return combatants ordered by initiative desc, order index asc."""

    def max_order_index(self, session_id: str) -> int | None:
        """Return the highest order index in a session, None when empty."""

    def update_combatant(self, combatant_id: str, changes: dict[str, Any]) -> CombatantRecord | None:
        """Patch combatant columns and return the updated row."""

    def update_session_combatants(self, session_id: str, changes: dict[str, Any]) -> int:
        """Patch every combatant of a session, returning the affected count."""

    def delete_combatant(self, combatant_id: str) -> bool:
        """Delete a combatant, returning whether a row was removed."""

    def insert_campaign(self, campaign: CampaignRecord) -> CampaignRecord:
        """Persist a new campaign row."""

    def list_campaigns(self, user_id: str) -> list[CampaignRecord]:
        """Return a user's campaigns, most recently updated first."""

    def get_campaign(self, campaign_id: str, user_id: str) -> CampaignRecord | None:
        """Return a campaign owned by the user."""

    def update_campaign(self, campaign_id: str, user_id: str, changes: dict[str, Any]) -> CampaignRecord | None:
        """Patch a campaign owned by the user."""

    def delete_campaign(self, campaign_id: str, user_id: str) -> bool:
        """Delete a campaign owned by the user."""

    def count_campaign_sessions(self, campaign_id: str) -> int:
        """Return how many sessions were opened for a campaign."""

    def insert_player(self, player: PlayerRecord) -> PlayerRecord:
        """Persist a new player row."""

    def list_players(self, campaign_id: str) -> list[PlayerRecord]:
        """Return a campaign's players ordered by name."""

    def count_players(self, campaign_id: str) -> int:
        """Return how many players belong to a campaign."""

    def delete_player(self, player_id: str, campaign_id: str) -> bool:
        """Delete a player of the campaign."""

    def insert_monster(self, monster: MonsterRecord) -> MonsterRecord:
        """Persist a new monster row."""

    def list_monsters(self, filters: MonsterFilters) -> list[MonsterRecord]:
        """Return monsters matching the filters ordered by name."""

    def get_monster(self, monster_id: str) -> MonsterRecord | None:
        """Return a single monster."""

    def update_monster(self, monster_id: str, user_id: str, changes: dict[str, Any]) -> MonsterRecord | None:
        """Patch a monster created by the user."""

    def delete_monster(self, monster_id: str, user_id: str) -> bool:
        """Delete a monster created by the user."""

    def distinct_monster_values(self, column: str) -> list[str]:
        """Return sorted non-null distinct values of a monster column."""


def _check_columns(changes: dict[str, Any], allowed: Iterable[str]) -> None:
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise ValueError(f"Unsupported columns: {', '.join(unknown)}")


def _combatant_sort_key(combatant: CombatantRecord) -> tuple[int, int]:
    return (-combatant.initiative, combatant.order_index)


def _monster_matches(monster: MonsterRecord, filters: MonsterFilters) -> bool:
    if filters.type and monster.type != filters.type:
        return False
    if filters.challenge_rating_min is not None:
        if monster.challenge_rating is None or monster.challenge_rating < filters.challenge_rating_min:
            return False
    if filters.challenge_rating_max is not None:
        if monster.challenge_rating is None or monster.challenge_rating > filters.challenge_rating_max:
            return False
    if filters.is_homebrew is not None and monster.is_homebrew != filters.is_homebrew:
        return False
    if filters.source and monster.source != filters.source:
        return False
    return True


class InMemoryCombatStore:
    def __init__(self) -> None:
        self._sessions: dict[str, SessionRecord] = {}
        self._combatants: dict[str, CombatantRecord] = {}
        self._campaigns: dict[str, CampaignRecord] = {}
        self._players: dict[str, PlayerRecord] = {}
        self._monsters: dict[str, MonsterRecord] = {}

    def insert_session(self, session: SessionRecord) -> SessionRecord:
        self._sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> SessionRecord | None:
        return self._sessions.get(session_id)

    def find_active_session(self, code: str) -> SessionRecord | None:
        matches = [s for s in self._sessions.values() if s.code == code and s.is_active]
        if not matches:
            return None
        return max(matches, key=lambda s: s.created_at)

    def update_session(self, session_id: str, changes: dict[str, Any]) -> SessionRecord | None:
        _check_columns(changes, SESSION_PATCH_COLUMNS)
        session = self._sessions.get(session_id)
        if session is None:
            return None
        updated = replace(session, **changes)
        self._sessions[session_id] = updated
        return updated

    def insert_combatant(self, combatant: CombatantRecord) -> CombatantRecord:
        self._combatants[combatant.id] = combatant
        return combatant

    def get_combatant(self, combatant_id: str) -> CombatantRecord | None:
        return self._combatants.get(combatant_id)

    def list_combatants(self, session_id: str) -> list[CombatantRecord]:
        combatants = [c for c in self._combatants.values() if c.session_id == session_id]
        return sorted(combatants, key=_combatant_sort_key)

    def max_order_index(self, session_id: str) -> int | None:
        indices = [c.order_index for c in self._combatants.values() if c.session_id == session_id]
        return max(indices) if indices else None

    def update_combatant(self, combatant_id: str, changes: dict[str, Any]) -> CombatantRecord | None:
        _check_columns(changes, COMBATANT_PATCH_COLUMNS)
        combatant = self._combatants.get(combatant_id)
        if combatant is None:
            return None
        updated = replace(combatant, **changes)
        self._combatants[combatant_id] = updated
        return updated

    def update_session_combatants(self, session_id: str, changes: dict[str, Any]) -> int:
        _check_columns(changes, COMBATANT_PATCH_COLUMNS)
        count = 0
        for combatant_id, combatant in list(self._combatants.items()):
            if combatant.session_id != session_id:
                continue
            self._combatants[combatant_id] = replace(combatant, **changes)
            count += 1
        return count

    def delete_combatant(self, combatant_id: str) -> bool:
        return self._combatants.pop(combatant_id, None) is not None

    def insert_campaign(self, campaign: CampaignRecord) -> CampaignRecord:
        self._campaigns[campaign.id] = campaign
        return campaign

    def list_campaigns(self, user_id: str) -> list[CampaignRecord]:
        campaigns = [c for c in self._campaigns.values() if c.user_id == user_id]
        return sorted(campaigns, key=lambda c: c.updated_at, reverse=True)

    def get_campaign(self, campaign_id: str, user_id: str) -> CampaignRecord | None:
        campaign = self._campaigns.get(campaign_id)
        if campaign is None or campaign.user_id != user_id:
            return None
        return campaign

    def update_campaign(self, campaign_id: str, user_id: str, changes: dict[str, Any]) -> CampaignRecord | None:
        _check_columns(changes, CAMPAIGN_PATCH_COLUMNS)
        campaign = self.get_campaign(campaign_id, user_id)
        if campaign is None:
            return None
        updated = replace(campaign, **changes)
        self._campaigns[campaign_id] = updated
        return updated

    def delete_campaign(self, campaign_id: str, user_id: str) -> bool:
        if self.get_campaign(campaign_id, user_id) is None:
            return False
        del self._campaigns[campaign_id]
        for player_id in [p.id for p in self._players.values() if p.campaign_id == campaign_id]:
            del self._players[player_id]
        for session_id, session in list(self._sessions.items()):
            if session.campaign_id == campaign_id:
                self._sessions[session_id] = replace(session, campaign_id=None)
        return True

    def count_campaign_sessions(self, campaign_id: str) -> int:
        return sum(1 for s in self._sessions.values() if s.campaign_id == campaign_id)

    def insert_player(self, player: PlayerRecord) -> PlayerRecord:
        self._players[player.id] = player
        return player

    def list_players(self, campaign_id: str) -> list[PlayerRecord]:
        players = [p for p in self._players.values() if p.campaign_id == campaign_id]
        return sorted(players, key=lambda p: p.name)

    def count_players(self, campaign_id: str) -> int:
        return sum(1 for p in self._players.values() if p.campaign_id == campaign_id)

    def delete_player(self, player_id: str, campaign_id: str) -> bool:
        player = self._players.get(player_id)
        if player is None or player.campaign_id != campaign_id:
            return False
        del self._players[player_id]
        return True

    def insert_monster(self, monster: MonsterRecord) -> MonsterRecord:
        self._monsters[monster.id] = monster
        return monster

    def list_monsters(self, filters: MonsterFilters) -> list[MonsterRecord]:
        monsters = [m for m in self._monsters.values() if _monster_matches(m, filters)]
        return sorted(monsters, key=lambda m: m.name)

    def get_monster(self, monster_id: str) -> MonsterRecord | None:
        return self._monsters.get(monster_id)

    def update_monster(self, monster_id: str, user_id: str, changes: dict[str, Any]) -> MonsterRecord | None:
        _check_columns(changes, MONSTER_PATCH_COLUMNS)
        monster = self._monsters.get(monster_id)
        if monster is None or monster.created_by != user_id:
            return None
        updated = replace(monster, **changes)
        self._monsters[monster_id] = updated
        return updated

    def delete_monster(self, monster_id: str, user_id: str) -> bool:
        monster = self._monsters.get(monster_id)
        if monster is None or monster.created_by != user_id:
            return False
        del self._monsters[monster_id]
        return True

    def distinct_monster_values(self, column: str) -> list[str]:
        _check_columns({column: None}, MONSTER_OPTION_COLUMNS)
        values = {getattr(m, column) for m in self._monsters.values()}
        return sorted(value for value in values if value)


def _session_from_row(row: dict[str, Any]) -> SessionRecord:
    return SessionRecord(
        id=str(row["id"]),
        code=row["code"],
        dm_token_hash=row["dm_token_hash"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        round=int(row["round"]),
        current_turn_index=int(row["current_turn_index"]),
        is_active=bool(row["is_active"]),
        campaign_id=row.get("campaign_id"),
    )


def _combatant_from_row(row: dict[str, Any]) -> CombatantRecord:
    return CombatantRecord(
        id=str(row["id"]),
        session_id=str(row["session_id"]),
        name=row["name"],
        initiative=int(row["initiative"]),
        created_at=row["created_at"],
        order_index=int(row["order_index"]),
        max_hp=row["max_hp"],
        current_hp=row["current_hp"],
        is_player=bool(row["is_player"]),
        player_token_hash=row["player_token_hash"],
        action_available=bool(row["action_available"]),
        bonus_action_available=bool(row["bonus_action_available"]),
        reaction_available=bool(row["reaction_available"]),
        movement_available=bool(row["movement_available"]),
        custom_actions=tuple(CustomAction.from_dict(item) for item in row["custom_actions"] or []),
        notes=row["notes"],
        conditions=tuple(row["conditions"] or ()),
    )


def _campaign_from_row(row: dict[str, Any]) -> CampaignRecord:
    return CampaignRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        title=row["title"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        description=row["description"],
        settings=dict(row["settings"] or {}),
    )


def _player_from_row(row: dict[str, Any]) -> PlayerRecord:
    return PlayerRecord(
        id=str(row["id"]),
        campaign_id=str(row["campaign_id"]),
        name=row["name"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        max_hp=int(row["max_hp"]),
        current_hp=int(row["current_hp"]),
        ac=int(row["ac"]),
        initiative_bonus=int(row["initiative_bonus"]),
        level=int(row["level"]),
        ability_scores=dict(row["ability_scores"] or {}),
        notes=row["notes"],
    )


def _monster_from_row(row: dict[str, Any]) -> MonsterRecord:
    challenge_rating = row["challenge_rating"]
    return MonsterRecord(
        id=str(row["id"]),
        name=row["name"],
        created_at=row["created_at"],
        type=row["type"],
        size=row["size"],
        challenge_rating=float(challenge_rating) if challenge_rating is not None else None,
        armor_class=row["armor_class"],
        hit_points=row["hit_points"],
        source=row["source"],
        is_homebrew=bool(row["is_homebrew"]),
        created_by=row["created_by"],
    )


def _to_db_value(column: str, value: Any) -> Any:
    if column == "custom_actions":
        from psycopg.types.json import Jsonb

        return Jsonb([action.to_dict() for action in value])
    if column in ("settings", "ability_scores"):
        from psycopg.types.json import Jsonb

        return Jsonb(value)
    if column == "conditions":
        return list(value)
    return value


@dataclass
class PostgresCombatStore:
    database_url: str

    def _connect(self) -> Any:
        import psycopg
        from psycopg.rows import dict_row

        return psycopg.connect(self.database_url, row_factory=dict_row)

    def _update_query(self, table: str, changes: dict[str, Any], where: tuple[str, ...], returning: bool = True) -> Any:
        from psycopg import sql

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
        )
        conditions = sql.SQL(" AND ").join(sql.SQL("{} = %s").format(sql.Identifier(column)) for column in where)
        query = sql.SQL("UPDATE {} SET {} WHERE {}").format(sql.Identifier(table), assignments, conditions)
        if returning:
            query = query + sql.SQL(" RETURNING *")
        return query

    def _fetch_one(self, query: Any, params: tuple[Any, ...], commit: bool = False) -> dict[str, Any] | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                row = cur.fetchone()
            if commit:
                conn.commit()
        return row

    def _fetch_all(self, query: Any, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return list(cur.fetchall())

    def _execute(self, query: Any, params: tuple[Any, ...]) -> int:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                rowcount = cur.rowcount
            conn.commit()
        return rowcount

    def _count(self, query: Any, params: tuple[Any, ...]) -> int:
        row = self._fetch_one(query, params)
        return int(row["count"]) if row is not None else 0

    def _patch(
        self,
        table: str,
        changes: dict[str, Any],
        allowed: tuple[str, ...],
        where: dict[str, Any],
    ) -> dict[str, Any] | None:
        _check_columns(changes, allowed)
        if not changes:
            conditions = " AND ".join(f"{column} = %s" for column in where)
            return self._fetch_one(f"SELECT * FROM {table} WHERE {conditions}", tuple(where.values()))
        query = self._update_query(table, changes, tuple(where))
        params = tuple(_to_db_value(column, value) for column, value in changes.items()) + tuple(where.values())
        return self._fetch_one(query, params, commit=True)

    def insert_session(self, session: SessionRecord) -> SessionRecord:
        self._execute(
            """
            INSERT INTO sessions (
                id, code, dm_token_hash, created_at, expires_at, round, current_turn_index, is_active, campaign_id
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                session.id,
                session.code,
                session.dm_token_hash,
                session.created_at,
                session.expires_at,
                session.round,
                session.current_turn_index,
                session.is_active,
                session.campaign_id,
            ),
        )
        return session

    def get_session(self, session_id: str) -> SessionRecord | None:
        row = self._fetch_one("SELECT * FROM sessions WHERE id = %s", (session_id,))
        return _session_from_row(row) if row is not None else None

    def find_active_session(self, code: str) -> SessionRecord | None:
        row = self._fetch_one(
            """
            SELECT * FROM sessions
            WHERE code = %s AND is_active = TRUE
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (code,),
        )
        return _session_from_row(row) if row is not None else None

    def update_session(self, session_id: str, changes: dict[str, Any]) -> SessionRecord | None:
        row = self._patch("sessions", changes, SESSION_PATCH_COLUMNS, {"id": session_id})
        return _session_from_row(row) if row is not None else None

    def insert_combatant(self, combatant: CombatantRecord) -> CombatantRecord:
        self._execute(
            """
            INSERT INTO combatants (
                id, session_id, name, initiative, max_hp, current_hp, is_player, player_token_hash,
                action_available, bonus_action_available, reaction_available, movement_available,
                custom_actions, notes, conditions, created_at, order_index
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                combatant.id,
                combatant.session_id,
                combatant.name,
                combatant.initiative,
                combatant.max_hp,
                combatant.current_hp,
                combatant.is_player,
                combatant.player_token_hash,
                combatant.action_available,
                combatant.bonus_action_available,
                combatant.reaction_available,
                combatant.movement_available,
                _to_db_value("custom_actions", combatant.custom_actions),
                combatant.notes,
                _to_db_value("conditions", combatant.conditions),
                combatant.created_at,
                combatant.order_index,
            ),
        )
        return combatant

    def get_combatant(self, combatant_id: str) -> CombatantRecord | None:
        row = self._fetch_one("SELECT * FROM combatants WHERE id = %s", (combatant_id,))
        return _combatant_from_row(row) if row is not None else None

    def list_combatants(self, session_id: str) -> list[CombatantRecord]:
        rows = self._fetch_all(
            """
            SELECT * FROM combatants
            WHERE session_id = %s
            ORDER BY initiative DESC, order_index ASC
            """,
            (session_id,),
        )
        return [_combatant_from_row(row) for row in rows]

    def max_order_index(self, session_id: str) -> int | None:
        row = self._fetch_one(
            "SELECT MAX(order_index) AS max_order_index FROM combatants WHERE session_id = %s",
            (session_id,),
        )
        if row is None or row["max_order_index"] is None:
            return None
        return int(row["max_order_index"])

    def update_combatant(self, combatant_id: str, changes: dict[str, Any]) -> CombatantRecord | None:
        row = self._patch("combatants", changes, COMBATANT_PATCH_COLUMNS, {"id": combatant_id})
        return _combatant_from_row(row) if row is not None else None

    def update_session_combatants(self, session_id: str, changes: dict[str, Any]) -> int:
        _check_columns(changes, COMBATANT_PATCH_COLUMNS)
        if not changes:
            return 0
        query = self._update_query("combatants", changes, ("session_id",), returning=False)
        params = tuple(_to_db_value(column, value) for column, value in changes.items()) + (session_id,)
        return self._execute(query, params)

    def delete_combatant(self, combatant_id: str) -> bool:
        return self._execute("DELETE FROM combatants WHERE id = %s", (combatant_id,)) > 0

    def insert_campaign(self, campaign: CampaignRecord) -> CampaignRecord:
        self._execute(
            """
            INSERT INTO campaigns (id, user_id, title, description, settings, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                campaign.id,
                campaign.user_id,
                campaign.title,
                campaign.description,
                _to_db_value("settings", campaign.settings),
                campaign.created_at,
                campaign.updated_at,
            ),
        )
        return campaign

    def list_campaigns(self, user_id: str) -> list[CampaignRecord]:
        rows = self._fetch_all(
            "SELECT * FROM campaigns WHERE user_id = %s ORDER BY updated_at DESC",
            (user_id,),
        )
        return [_campaign_from_row(row) for row in rows]

    def get_campaign(self, campaign_id: str, user_id: str) -> CampaignRecord | None:
        row = self._fetch_one(
            "SELECT * FROM campaigns WHERE id = %s AND user_id = %s",
            (campaign_id, user_id),
        )
        return _campaign_from_row(row) if row is not None else None

    def update_campaign(self, campaign_id: str, user_id: str, changes: dict[str, Any]) -> CampaignRecord | None:
        row = self._patch("campaigns", changes, CAMPAIGN_PATCH_COLUMNS, {"id": campaign_id, "user_id": user_id})
        return _campaign_from_row(row) if row is not None else None

    def delete_campaign(self, campaign_id: str, user_id: str) -> bool:
        deleted = self._execute(
            "DELETE FROM campaigns WHERE id = %s AND user_id = %s",
            (campaign_id, user_id),
        )
        return deleted > 0

    def count_campaign_sessions(self, campaign_id: str) -> int:
        return self._count("SELECT count(*) AS count FROM sessions WHERE campaign_id = %s", (campaign_id,))

    def insert_player(self, player: PlayerRecord) -> PlayerRecord:
        self._execute(
            """
            INSERT INTO players (
                id, campaign_id, name, max_hp, current_hp, ac, initiative_bonus, level,
                ability_scores, notes, created_at, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                player.id,
                player.campaign_id,
                player.name,
                player.max_hp,
                player.current_hp,
                player.ac,
                player.initiative_bonus,
                player.level,
                _to_db_value("ability_scores", player.ability_scores),
                player.notes,
                player.created_at,
                player.updated_at,
            ),
        )
        return player

    def list_players(self, campaign_id: str) -> list[PlayerRecord]:
        rows = self._fetch_all(
            "SELECT * FROM players WHERE campaign_id = %s ORDER BY name ASC",
            (campaign_id,),
        )
        return [_player_from_row(row) for row in rows]

    def count_players(self, campaign_id: str) -> int:
        return self._count("SELECT count(*) AS count FROM players WHERE campaign_id = %s", (campaign_id,))

    def delete_player(self, player_id: str, campaign_id: str) -> bool:
        deleted = self._execute(
            "DELETE FROM players WHERE id = %s AND campaign_id = %s",
            (player_id, campaign_id),
        )
        return deleted > 0

    def insert_monster(self, monster: MonsterRecord) -> MonsterRecord:
        self._execute(
            """
            INSERT INTO monsters (
                id, name, type, size, challenge_rating, armor_class, hit_points,
                source, is_homebrew, created_by, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                monster.id,
                monster.name,
                monster.type,
                monster.size,
                monster.challenge_rating,
                monster.armor_class,
                monster.hit_points,
                monster.source,
                monster.is_homebrew,
                monster.created_by,
                monster.created_at,
            ),
        )
        return monster

    def list_monsters(self, filters: MonsterFilters) -> list[MonsterRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if filters.type:
            clauses.append("type = %s")
            params.append(filters.type)
        if filters.challenge_rating_min is not None:
            clauses.append("challenge_rating >= %s")
            params.append(filters.challenge_rating_min)
        if filters.challenge_rating_max is not None:
            clauses.append("challenge_rating <= %s")
            params.append(filters.challenge_rating_max)
        if filters.is_homebrew is not None:
            clauses.append("is_homebrew = %s")
            params.append(filters.is_homebrew)
        if filters.source:
            clauses.append("source = %s")
            params.append(filters.source)

        query = "SELECT * FROM monsters"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY name ASC"
        return [_monster_from_row(row) for row in self._fetch_all(query, tuple(params))]

    def get_monster(self, monster_id: str) -> MonsterRecord | None:
        row = self._fetch_one("SELECT * FROM monsters WHERE id = %s", (monster_id,))
        return _monster_from_row(row) if row is not None else None

    def update_monster(self, monster_id: str, user_id: str, changes: dict[str, Any]) -> MonsterRecord | None:
        row = self._patch("monsters", changes, MONSTER_PATCH_COLUMNS, {"id": monster_id, "created_by": user_id})
        return _monster_from_row(row) if row is not None else None

    def delete_monster(self, monster_id: str, user_id: str) -> bool:
        deleted = self._execute(
            "DELETE FROM monsters WHERE id = %s AND created_by = %s",
            (monster_id, user_id),
        )
        return deleted > 0

    def distinct_monster_values(self, column: str) -> list[str]:
        _check_columns({column: None}, MONSTER_OPTION_COLUMNS)
        rows = self._fetch_all(
            f"SELECT DISTINCT {column} AS value FROM monsters WHERE {column} IS NOT NULL ORDER BY value",
            (),
        )
        return [row["value"] for row in rows if row["value"]]


def create_store(database_url: str | None) -> CombatStore:
    if database_url:
        return PostgresCombatStore(database_url=database_url)
    return InMemoryCombatStore()
