from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Iterable, Literal

DICE_PATTERN = re.compile(r"^\s*(\d*)d(\d+)([+-]\d+)?\s*$", re.IGNORECASE)
INTEGER_PATTERN = re.compile(r"^\s*-?\d+\s*$")

RollMode = Literal["normal", "advantage", "disadvantage"]


@dataclass
class SessionState:
    seed: int | None = None
    turn_log: list[dict] = field(default_factory=list)
    rng: random.Random = field(init=False)

    def __post_init__(self) -> None:
        self.rng = random.Random(self.seed)


@dataclass(frozen=True)
class DiceRoll:
    rolls: list[int]
    modifier: int
    total: int


@dataclass(frozen=True)
class D20Roll:
    natural: int
    rolls: list[int]
    modifier: int
    total: int

    @property
    def critical(self) -> bool:
        return self.natural == 20

    @property
    def fumble(self) -> bool:
        return self.natural == 1


@dataclass(frozen=True)
class SavingThrowResult:
    roll: D20Roll
    dc: int
    success: bool


def _log_roll(
    session: SessionState,
    *,
    formula: str,
    result: int,
    rolls: Iterable[int],
    modifier: int,
    label: str | None,
) -> None:
    session.turn_log.append(
        {
            "formula": formula,
            "result": result,
            "rolls": list(rolls),
            "modifier": modifier,
            "label": label,
        }
    )


def _format_formula(count: int, sides: int, modifier: int) -> str:
    if modifier:
        return f"{count}d{sides}{modifier:+d}"
    return f"{count}d{sides}"


def roll_dice(
    session: SessionState,
    count: int,
    sides: int,
    modifier: int = 0,
    *,
    label: str | None = None,
) -> DiceRoll:
    if count <= 0 or sides <= 0:
        raise ValueError(f"Invalid dice: {count}d{sides}")
    rolls = [session.rng.randint(1, sides) for _ in range(count)]
    total = sum(rolls) + modifier
    _log_roll(
        session,
        formula=_format_formula(count, sides, modifier),
        result=total,
        rolls=rolls,
        modifier=modifier,
        label=label,
    )
    return DiceRoll(rolls=rolls, modifier=modifier, total=total)


def roll_d20(session: SessionState, *, label: str | None = None) -> int:
    return roll_dice(session, 1, 20, label=label).total


def roll(session: SessionState, dice_str: str, *, label: str | None = None) -> int:
    if INTEGER_PATTERN.match(dice_str):
        result = int(dice_str)
        _log_roll(
            session,
            formula=str(result),
            result=result,
            rolls=[],
            modifier=0,
            label=label,
        )
        return result

    match = DICE_PATTERN.match(dice_str)
    if not match:
        raise ValueError(f"Invalid dice string: {dice_str}")

    count_text, sides_text, modifier_text = match.groups()
    count = int(count_text) if count_text else 1
    sides = int(sides_text)
    modifier = int(modifier_text) if modifier_text else 0

    if count <= 0 or sides <= 0:
        raise ValueError(f"Invalid dice string: {dice_str}")

    return roll_dice(session, count, sides, modifier, label=label).total


def roll_d20_with_mode(
    session: SessionState,
    modifier: int = 0,
    *,
    mode: RollMode = "normal",
    label: str | None = None,
) -> D20Roll:
    if mode == "normal":
        rolls = [session.rng.randint(1, 20)]
        natural = rolls[0]
    else:
        rolls = [session.rng.randint(1, 20), session.rng.randint(1, 20)]
        natural = max(rolls) if mode == "advantage" else min(rolls)
    total = natural + modifier
    _log_roll(
        session,
        formula=f"1d20{modifier:+d}" + ("" if mode == "normal" else f" ({mode})"),
        result=total,
        rolls=rolls,
        modifier=modifier,
        label=label,
    )
    return D20Roll(natural=natural, rolls=rolls, modifier=modifier, total=total)


def roll_with_advantage(session: SessionState, modifier: int = 0) -> D20Roll:
    return roll_d20_with_mode(session, modifier, mode="advantage")


def roll_with_disadvantage(session: SessionState, modifier: int = 0) -> D20Roll:
    return roll_d20_with_mode(session, modifier, mode="disadvantage")


def combine_modes(advantage: bool, disadvantage: bool) -> RollMode:
    if advantage and not disadvantage:
        return "advantage"
    if disadvantage and not advantage:
        return "disadvantage"
    return "normal"


def roll_ability_check(
    session: SessionState,
    modifier: int,
    *,
    mode: RollMode = "normal",
    label: str | None = None,
) -> D20Roll:
    return roll_d20_with_mode(session, modifier, mode=mode, label=label or "ability_check")


def roll_initiative(
    session: SessionState,
    dex_modifier: int,
    *,
    mode: RollMode = "normal",
) -> int:
    return roll_d20_with_mode(session, dex_modifier, mode=mode, label="initiative").total


def roll_saving_throw(
    session: SessionState,
    modifier: int,
    dc: int,
    *,
    mode: RollMode = "normal",
) -> SavingThrowResult:
    result = roll_d20_with_mode(session, modifier, mode=mode, label="saving_throw")
    return SavingThrowResult(roll=result, dc=dc, success=result.total >= dc)


def roll_damage(
    session: SessionState,
    count: int,
    sides: int,
    modifier: int = 0,
    *,
    critical: bool = False,
    label: str | None = None,
) -> DiceRoll:
    dice_count = count * 2 if critical else count
    return roll_dice(session, dice_count, sides, modifier, label=label or "damage")


def roll_ability_score(session: SessionState) -> int:
    rolls = sorted(session.rng.randint(1, 6) for _ in range(4))
    total = sum(rolls[1:])
    _log_roll(
        session,
        formula="4d6kh3",
        result=total,
        rolls=rolls,
        modifier=0,
        label="ability_score",
    )
    return total


def generate_ability_scores(session: SessionState) -> list[int]:
    return [roll_ability_score(session) for _ in range(6)]
