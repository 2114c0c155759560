"""Pure helpers for turn progression and the action economy."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from combattracker.backend.errors import NotFoundError, ValidationError
from combattracker.backend.models import ACTION_FLAGS, RESET_TRIGGERS, CustomAction


# Reactions are a round-level resource; the other three refresh every turn.
TURN_RESET_FLAGS = ("action_available", "bonus_action_available", "movement_available")
ROUND_RESET_FLAGS = ACTION_FLAGS

RESET_TYPES = ("turn", "round")


@dataclass(frozen=True)
class TurnAdvance:
    round: int
    current_turn_index: int
    reset_type: str | None


def reset_flags(reset_type: str) -> dict[str, bool]:
    """Return the flag patch applied to every combatant for a reset."""
    if reset_type == "turn":
        return {flag: True for flag in TURN_RESET_FLAGS}
    if reset_type == "round":
        return {flag: True for flag in ROUND_RESET_FLAGS}
    raise ValidationError(f"Unknown reset type: {reset_type!r}")


def recharge_custom_actions(actions: tuple[CustomAction, ...], reset_type: str) -> tuple[CustomAction, ...]:
    """Refill uses of custom actions whose trigger is covered by the reset.

    A round boundary is also a turn boundary, so ``round`` recharges both.
    Manual actions are never recharged here.
    """
    triggers = {"turn"} if reset_type == "turn" else {"turn", "round"}
    return tuple(
        replace(action, current_uses=action.max_uses) if action.reset_on in triggers else action
        for action in actions
    )


def spend_custom_action(actions: tuple[CustomAction, ...], action_id: str) -> tuple[CustomAction, ...]:
    spent: list[CustomAction] = []
    found = False
    for action in actions:
        if action.id == action_id:
            found = True
            if action.current_uses <= 0:
                raise ValidationError(f"No uses of {action.name!r} remaining")
            action = replace(action, current_uses=action.current_uses - 1)
        spent.append(action)
    if not found:
        raise NotFoundError("Custom action not found")
    return tuple(spent)


def validate_action_flags(flags: dict[str, Any]) -> dict[str, bool]:
    unknown = sorted(set(flags) - set(ACTION_FLAGS))
    if unknown:
        raise ValidationError(f"Unknown action flags: {', '.join(unknown)}")
    for name, value in flags.items():
        if not isinstance(value, bool):
            raise ValidationError(f"Action flag {name} must be a boolean")
    return dict(flags)


def validate_reset_trigger(reset_on: str) -> str:
    if reset_on not in RESET_TRIGGERS:
        raise ValidationError(f"Unknown reset trigger: {reset_on!r}")
    return reset_on


def next_turn(round_number: int, turn_index: int, combatant_count: int) -> TurnAdvance:
    """Step to the next combatant, wrapping into a new round after the last.

    An index left past the end of a shrunken roster counts as a wrap.
    """
    if combatant_count <= 0:
        return TurnAdvance(round=round_number, current_turn_index=turn_index, reset_type=None)

    new_turn_index = turn_index + 1
    if new_turn_index >= combatant_count:
        return TurnAdvance(round=round_number + 1, current_turn_index=0, reset_type="round")
    return TurnAdvance(round=round_number, current_turn_index=new_turn_index, reset_type="turn")
