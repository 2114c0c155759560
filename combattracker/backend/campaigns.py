"""Campaign bookkeeping for authenticated users."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Any, Callable
import uuid

from combattracker.backend.errors import NotFoundError, ValidationError
from combattracker.backend.models import CampaignRecord, CampaignStats, PlayerRecord
from combattracker.backend.state import utc_now
from combattracker.backend.store import CombatStore


logger = logging.getLogger(__name__)

CAMPAIGN_EDITABLE_FIELDS = ("title", "description", "settings")
PLAYER_FIELDS = ("max_hp", "current_hp", "ac", "initiative_bonus", "level", "ability_scores", "notes")


@dataclass
class CampaignService:
    store: CombatStore
    clock: Callable[[], datetime] = field(default=utc_now)

    def list_campaigns(self, user_id: str) -> list[CampaignRecord]:
        return self.store.list_campaigns(user_id)

    def get_campaign(self, campaign_id: str, user_id: str) -> CampaignRecord:
        campaign = self.store.get_campaign(campaign_id, user_id)
        if campaign is None:
            raise NotFoundError("Campaign not found")
        return campaign

    def create_campaign(
        self,
        user_id: str,
        title: str,
        description: str | None = None,
        settings: dict[str, Any] | None = None,
    ) -> CampaignRecord:
        if not title.strip():
            raise ValidationError("Campaign title is required")
        now = self.clock()
        campaign = CampaignRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            created_at=now,
            updated_at=now,
            description=description or None,
            settings=dict(settings or {}),
        )
        campaign = self.store.insert_campaign(campaign)
        logger.info("Created campaign %s for user %s", campaign.id, user_id)
        return campaign

    def update_campaign(self, campaign_id: str, user_id: str, changes: dict[str, Any]) -> CampaignRecord:
        unknown = sorted(set(changes) - set(CAMPAIGN_EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}")
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValidationError("Campaign title is required")
        if "settings" in changes and not isinstance(changes["settings"], dict):
            raise ValidationError("Campaign settings must be an object")

        patch = dict(changes)
        patch["updated_at"] = self.clock()
        campaign = self.store.update_campaign(campaign_id, user_id, patch)
        if campaign is None:
            raise NotFoundError("Campaign not found")
        return campaign

    def delete_campaign(self, campaign_id: str, user_id: str) -> None:
        if not self.store.delete_campaign(campaign_id, user_id):
            raise NotFoundError("Campaign not found")
        logger.info("Deleted campaign %s for user %s", campaign_id, user_id)

    def get_campaign_stats(self, campaign_id: str, user_id: str) -> CampaignStats:
        """Count the players and encounter sessions recorded for a campaign."""
        self.get_campaign(campaign_id, user_id)
        return CampaignStats(
            player_count=self.store.count_players(campaign_id),
            encounter_count=self.store.count_campaign_sessions(campaign_id),
        )

    # Players

    def list_players(self, campaign_id: str, user_id: str) -> list[PlayerRecord]:
        self.get_campaign(campaign_id, user_id)
        return self.store.list_players(campaign_id)

    def add_player(self, campaign_id: str, user_id: str, name: str, **attributes: Any) -> PlayerRecord:
        self.get_campaign(campaign_id, user_id)
        if not (name or "").strip():
            raise ValidationError("Player name is required")
        unknown = sorted(set(attributes) - set(PLAYER_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown player fields: {', '.join(unknown)}")

        values = {key: value for key, value in attributes.items() if value is not None}
        if "current_hp" not in values and "max_hp" in values:
            values["current_hp"] = values["max_hp"]
        now = self.clock()
        player = PlayerRecord(
            id=str(uuid.uuid4()),
            campaign_id=campaign_id,
            name=name,
            created_at=now,
            updated_at=now,
            **values,
        )
        player = self.store.insert_player(player)
        logger.info("Added player %s to campaign %s", player.id, campaign_id)
        return player

    def remove_player(self, campaign_id: str, user_id: str, player_id: str) -> None:
        self.get_campaign(campaign_id, user_id)
        if not self.store.delete_player(player_id, campaign_id):
            raise NotFoundError("Player not found")
        logger.info("Removed player %s from campaign %s", player_id, campaign_id)
