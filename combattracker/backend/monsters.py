"""Monster reference data and homebrew creatures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Any, Callable
import uuid

from combattracker.backend.errors import NotFoundError, ValidationError
from combattracker.backend.models import MonsterFilters, MonsterRecord
from combattracker.backend.state import utc_now
from combattracker.backend.store import MONSTER_PATCH_COLUMNS, CombatStore


logger = logging.getLogger(__name__)

HOMEBREW_SOURCE = "Homebrew"


@dataclass(frozen=True)
class MonsterFilterOptions:
    types: list[str]
    sources: list[str]


@dataclass
class MonsterService:
    store: CombatStore
    clock: Callable[[], datetime] = field(default=utc_now)

    def list_monsters(self, filters: MonsterFilters | None = None) -> list[MonsterRecord]:
        return self.store.list_monsters(filters or MonsterFilters())

    def get_monster(self, monster_id: str) -> MonsterRecord:
        monster = self.store.get_monster(monster_id)
        if monster is None:
            raise NotFoundError("Monster not found")
        return monster

    def create_monster(self, user_id: str, name: str, **attributes: Any) -> MonsterRecord:
        """Create a homebrew monster owned by ``user_id``.

        Homebrew entries always carry the ``Homebrew`` source regardless of
        what the caller supplied.
        """
        if not name.strip():
            raise ValidationError("Monster name is required")
        self._check_fields(attributes)
        attributes.pop("source", None)
        monster = MonsterRecord(
            id=str(uuid.uuid4()),
            name=name,
            created_at=self.clock(),
            source=HOMEBREW_SOURCE,
            is_homebrew=True,
            created_by=user_id,
            **attributes,
        )
        monster = self.store.insert_monster(monster)
        logger.info("Created homebrew monster %s for user %s", monster.id, user_id)
        return monster

    def update_monster(self, monster_id: str, user_id: str, changes: dict[str, Any]) -> MonsterRecord:
        self._check_fields(changes)
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Monster name is required")
        monster = self.store.update_monster(monster_id, user_id, changes)
        if monster is None:
            raise NotFoundError("Monster not found")
        return monster

    def delete_monster(self, monster_id: str, user_id: str) -> None:
        if not self.store.delete_monster(monster_id, user_id):
            raise NotFoundError("Monster not found")
        logger.info("Deleted monster %s for user %s", monster_id, user_id)

    def get_filter_options(self) -> MonsterFilterOptions:
        return MonsterFilterOptions(
            types=self.store.distinct_monster_values("type"),
            sources=self.store.distinct_monster_values("source"),
        )

    def _check_fields(self, changes: dict[str, Any]) -> None:
        unknown = sorted(set(changes) - set(MONSTER_PATCH_COLUMNS))
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}")
