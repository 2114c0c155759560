"""Domain records for sessions, combatants and reference data."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


ACTION_FLAGS = (
    "action_available",
    "bonus_action_available",
    "reaction_available",
    "movement_available",
)

RESET_TRIGGERS = ("turn", "round", "manual")


@dataclass(frozen=True)
class SessionRecord:
    id: str
    code: str
    dm_token_hash: str
    created_at: datetime
    expires_at: datetime
    round: int = 1
    current_turn_index: int = 0
    is_active: bool = True
    campaign_id: str | None = None


@dataclass(frozen=True)
class CreatedSession:
    session: SessionRecord
    dm_token: str


@dataclass(frozen=True)
class CustomAction:
    id: str
    name: str
    max_uses: int
    current_uses: int
    reset_on: str = "manual"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "max_uses": self.max_uses,
            "current_uses": self.current_uses,
            "reset_on": self.reset_on,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CustomAction":
        return cls(
            id=str(payload["id"]),
            name=str(payload["name"]),
            max_uses=int(payload["max_uses"]),
            current_uses=int(payload.get("current_uses", payload["max_uses"])),
            reset_on=str(payload.get("reset_on", "manual")),
        )


@dataclass(frozen=True)
class CombatantRecord:
    id: str
    session_id: str
    name: str
    initiative: int
    created_at: datetime
    order_index: int
    max_hp: int | None = None
    current_hp: int | None = None
    is_player: bool = False
    player_token_hash: str | None = None
    action_available: bool = True
    bonus_action_available: bool = True
    reaction_available: bool = True
    movement_available: bool = True
    custom_actions: tuple[CustomAction, ...] = ()
    notes: str | None = None
    conditions: tuple[str, ...] = ()

    @property
    def claimed(self) -> bool:
        return self.player_token_hash is not None


@dataclass(frozen=True)
class NewCustomAction:
    name: str
    max_uses: int
    reset_on: str = "manual"


@dataclass(frozen=True)
class NewCombatant:
    """Input for adding a combatant; ``current_hp`` falls back to ``max_hp``."""

    name: str
    initiative: int
    max_hp: int | None = None
    current_hp: int | None = None
    is_player: bool = False
    player_token: str | None = None
    notes: str | None = None
    conditions: tuple[str, ...] = ()
    custom_actions: tuple[NewCustomAction, ...] = ()


@dataclass(frozen=True)
class CampaignRecord:
    id: str
    user_id: str
    title: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PlayerRecord:
    id: str
    campaign_id: str
    name: str
    created_at: datetime
    updated_at: datetime
    max_hp: int = 0
    current_hp: int = 0
    ac: int = 10
    initiative_bonus: int = 0
    level: int = 1
    ability_scores: dict[str, Any] = field(default_factory=dict)
    notes: str | None = None


@dataclass(frozen=True)
class CampaignStats:
    player_count: int
    encounter_count: int


@dataclass(frozen=True)
class MonsterRecord:
    id: str
    name: str
    created_at: datetime
    type: str | None = None
    size: str | None = None
    challenge_rating: float | None = None
    armor_class: int | None = None
    hit_points: int | None = None
    source: str | None = None
    is_homebrew: bool = False
    created_by: str | None = None


@dataclass(frozen=True)
class MonsterFilters:
    type: str | None = None
    challenge_rating_min: float | None = None
    challenge_rating_max: float | None = None
    is_homebrew: bool | None = None
    source: str | None = None
