"""Combat session service: lifecycle, roster and action economy."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any, Callable

from combattracker.backend.engine import (
    next_turn,
    recharge_custom_actions,
    reset_flags,
    spend_custom_action,
    validate_action_flags,
    validate_reset_trigger,
)
from combattracker.backend.errors import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from combattracker.backend.models import CombatantRecord, CreatedSession, NewCombatant, SessionRecord
from combattracker.backend.roles import Role, is_dm, is_owning_player, resolve_role
from combattracker.backend.security import generate_join_code, generate_token, hash_token, normalize_join_code
from combattracker.backend.state import DEFAULT_SESSION_TTL, build_initial_combatant, build_initial_session, utc_now
from combattracker.backend.store import CombatStore


logger = logging.getLogger(__name__)

COMBATANT_EDITABLE_FIELDS = ("name", "initiative", "max_hp", "current_hp", "notes", "conditions")


@dataclass
class CombatTracker:
    """Token-gated operations over sessions and their combatants.

    Every mutating call takes the caller's token explicitly. DM-gated calls
    compare it against the session's DM token; action-economy calls also
    accept the player token bound to the combatant being changed.
    """

    store: CombatStore
    server_salt: str
    session_ttl: timedelta = DEFAULT_SESSION_TTL
    clock: Callable[[], datetime] = field(default=utc_now)

    # Session lifecycle

    def create_session(self, campaign_id: str | None = None) -> CreatedSession:
        """Open a session, optionally recorded as an encounter of a campaign."""
        dm_token = generate_token()
        session = build_initial_session(
            code=generate_join_code(),
            dm_token_hash=hash_token(dm_token, self.server_salt),
            now=self.clock(),
            ttl=self.session_ttl,
            campaign_id=campaign_id,
        )
        session = self.store.insert_session(session)
        logger.info("Created session %s with code %s", session.id, session.code)
        return CreatedSession(session=session, dm_token=dm_token)

    def join_session(self, code: str) -> SessionRecord:
        """Look up an active session by join code, expiring it if overdue."""
        session = self.store.find_active_session(normalize_join_code(code))
        if session is None:
            raise NotFoundError("Session not found or expired")

        if self.clock() > session.expires_at:
            self.store.update_session(session.id, {"is_active": False})
            logger.info("Session %s expired on join attempt", session.id)
            raise ExpiredError("Session has expired")

        return session

    def get_session(self, session_id: str) -> SessionRecord:
        session = self.store.get_session(session_id)
        if session is None or not session.is_active:
            raise NotFoundError("Session not found or expired")
        return session

    def verify_dm_token(self, session_id: str, token: str | None) -> bool:
        return is_dm(self.store.get_session(session_id), token, self.server_salt)

    def verify_dm_token_by_code(self, code: str, token: str | None) -> bool:
        session = self.store.find_active_session(normalize_join_code(code))
        return is_dm(session, token, self.server_salt)

    def end_session(self, session_id: str, dm_token: str) -> SessionRecord:
        self._require_dm(session_id, dm_token)
        session = self.store.update_session(session_id, {"is_active": False})
        if session is None:
            raise NotFoundError("Session not found")
        logger.info("Ended session %s", session_id)
        return session

    def update_session(
        self,
        session_id: str,
        round: int | None = None,
        current_turn_index: int | None = None,
        is_active: bool | None = None,
    ) -> SessionRecord:
        """Patch session progress fields; callers authorise beforehand."""
        changes: dict[str, Any] = {}
        if round is not None:
            changes["round"] = round
        if current_turn_index is not None:
            changes["current_turn_index"] = current_turn_index
        if is_active is not None:
            changes["is_active"] = is_active

        session = self.store.update_session(session_id, changes)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    def advance_turn(self, session_id: str, dm_token: str) -> SessionRecord:
        """Move to the next combatant and reset the action economy.

        Wrapping past the last combatant starts a new round and triggers a
        round reset; any other step triggers a turn reset.
        """
        session = self._require_dm(session_id, dm_token)
        combatants = self.store.list_combatants(session_id)
        advance = next_turn(session.round, session.current_turn_index, len(combatants))
        if advance.reset_type is None:
            return session

        session = self.update_session(
            session_id,
            round=advance.round,
            current_turn_index=advance.current_turn_index,
        )
        self._apply_reset(session_id, advance.reset_type)
        logger.info(
            "Session %s advanced to round %s turn %s",
            session_id,
            session.round,
            session.current_turn_index,
        )
        return session

    def resolve_role(self, session_id: str, token: str | None, combatant_id: str | None = None) -> Role | None:
        session = self.store.get_session(session_id)
        if combatant_id is not None:
            combatant = self.store.get_combatant(combatant_id)
            combatants = [combatant] if combatant is not None else []
        else:
            combatants = self.store.list_combatants(session_id)
        return resolve_role(session, token, self.server_salt, combatants)

    # Combatant roster

    def get_combatants(self, session_id: str) -> list[CombatantRecord]:
        return self.store.list_combatants(session_id)

    def add_combatant(self, session_id: str, data: NewCombatant, dm_token: str) -> CombatantRecord:
        self._require_dm(session_id, dm_token)
        if not data.name.strip():
            raise ValidationError("Combatant name is required")
        for action in data.custom_actions:
            validate_reset_trigger(action.reset_on)

        # Read-then-write: concurrent inserts may share an order index.
        max_index = self.store.max_order_index(session_id)
        order_index = 0 if max_index is None else max_index + 1

        combatant = build_initial_combatant(
            session_id=session_id,
            data=data,
            order_index=order_index,
            now=self.clock(),
            server_salt=self.server_salt,
        )
        combatant = self.store.insert_combatant(combatant)
        logger.info("Added combatant %s (%s) to session %s", combatant.id, combatant.name, session_id)
        return combatant

    def remove_combatant(self, combatant_id: str, dm_token: str) -> None:
        combatant = self._require_combatant(combatant_id)
        self._require_dm(combatant.session_id, dm_token)
        self.store.delete_combatant(combatant_id)
        logger.info("Removed combatant %s from session %s", combatant_id, combatant.session_id)

    def update_combatant(self, combatant_id: str, changes: dict[str, Any], dm_token: str) -> CombatantRecord:
        combatant = self._require_combatant(combatant_id)
        self._require_dm(combatant.session_id, dm_token)

        unknown = sorted(set(changes) - set(COMBATANT_EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}")
        if "initiative" in changes and changes["initiative"] is None:
            raise ValidationError("Initiative is required")
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Combatant name is required")
        patch = dict(changes)
        if "conditions" in patch:
            patch["conditions"] = tuple(patch["conditions"] or ())

        return self._save_combatant(combatant_id, patch)

    def claim_combatant(self, combatant_id: str, player_token: str) -> CombatantRecord:
        """Bind a player token to an unclaimed player combatant."""
        combatant = self._require_combatant(combatant_id)
        if not combatant.is_player:
            raise ValidationError("Only player combatants can be claimed")
        if is_owning_player(combatant, player_token, self.server_salt):
            return combatant
        if combatant.claimed:
            raise ConflictError("Combatant already claimed")

        claimed = self._save_combatant(
            combatant_id,
            {"player_token_hash": hash_token(player_token, self.server_salt)},
        )
        logger.info("Combatant %s claimed by a player", combatant_id)
        return claimed

    # Action economy

    def update_combatant_actions(self, combatant_id: str, flags: dict[str, Any], token: str) -> CombatantRecord:
        combatant = self._require_combatant(combatant_id)
        self._require_dm_or_owner(combatant, token)
        patch = validate_action_flags(flags)
        if not patch:
            return combatant
        return self._save_combatant(combatant_id, patch)

    def use_custom_action(self, combatant_id: str, action_id: str, token: str) -> CombatantRecord:
        combatant = self._require_combatant(combatant_id)
        self._require_dm_or_owner(combatant, token)
        actions = spend_custom_action(combatant.custom_actions, action_id)
        return self._save_combatant(combatant_id, {"custom_actions": actions})

    def reset_combatant_actions(self, session_id: str, reset_type: str, dm_token: str) -> list[CombatantRecord]:
        """Reset the action economy of every combatant in the session.

        ``turn`` restores action, bonus action and movement. ``round`` also
        restores reactions.
        """
        self._require_dm(session_id, dm_token)
        self._apply_reset(session_id, reset_type)
        return self.store.list_combatants(session_id)

    # Internals

    def _apply_reset(self, session_id: str, reset_type: str) -> None:
        flags = reset_flags(reset_type)
        count = self.store.update_session_combatants(session_id, flags)
        for combatant in self.store.list_combatants(session_id):
            recharged = recharge_custom_actions(combatant.custom_actions, reset_type)
            if recharged != combatant.custom_actions:
                self.store.update_combatant(combatant.id, {"custom_actions": recharged})
        logger.info("Applied %s reset to %s combatants in session %s", reset_type, count, session_id)

    def _require_dm(self, session_id: str, token: str | None) -> SessionRecord:
        session = self.store.get_session(session_id)
        if session is None or not is_dm(session, token, self.server_salt):
            logger.warning("Rejected DM token for session %s", session_id)
            raise UnauthorizedError("Unauthorized: Invalid DM token")
        return session

    def _require_dm_or_owner(self, combatant: CombatantRecord, token: str | None) -> None:
        if is_owning_player(combatant, token, self.server_salt):
            return
        if is_dm(self.store.get_session(combatant.session_id), token, self.server_salt):
            return
        logger.warning("Rejected token for combatant %s", combatant.id)
        raise UnauthorizedError("Unauthorized: Invalid token")

    def _require_combatant(self, combatant_id: str) -> CombatantRecord:
        combatant = self.store.get_combatant(combatant_id)
        if combatant is None:
            raise NotFoundError("Combatant not found")
        return combatant

    def _save_combatant(self, combatant_id: str, changes: dict[str, Any]) -> CombatantRecord:
        combatant = self.store.update_combatant(combatant_id, changes)
        if combatant is None:
            raise NotFoundError("Combatant not found")
        return combatant
