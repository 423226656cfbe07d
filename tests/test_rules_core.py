import pytest

from rules.core import (
    SessionState,
    combine_modes,
    generate_ability_scores,
    roll,
    roll_d20,
    roll_damage,
    roll_dice,
    roll_initiative,
    roll_saving_throw,
    roll_with_advantage,
    roll_with_disadvantage,
)


def test_deterministic_rolls_with_seed() -> None:
    first = SessionState(seed=1234)
    second = SessionState(seed=1234)

    assert roll_d20(first) == roll_d20(second)
    assert roll(first, "2d6+3") == roll(second, "2d6+3")
    assert roll(first, "1d8-1") == roll(second, "1d8-1")


def test_roll_logging() -> None:
    session = SessionState(seed=42)

    d20_result = roll_d20(session, label="initiative")
    dice_result = roll(session, "2d4+1", label="damage")

    assert len(session.turn_log) == 2
    first, second = session.turn_log

    assert first["formula"] == "1d20"
    assert first["result"] == d20_result
    assert first["label"] == "initiative"

    assert second["formula"] == "2d4+1"
    assert second["result"] == dice_result
    assert second["label"] == "damage"


def test_roll_accepts_flat_numbers_and_rejects_garbage() -> None:
    session = SessionState(seed=3)

    assert roll(session, "7") == 7
    assert roll(session, "-2") == -2
    with pytest.raises(ValueError):
        roll(session, "d")
    with pytest.raises(ValueError):
        roll_dice(session, 0, 6)


def test_roll_dice_stays_in_range() -> None:
    session = SessionState(seed=9)
    for _ in range(50):
        result = roll_dice(session, 3, 6, 2)
        assert len(result.rolls) == 3
        assert all(1 <= value <= 6 for value in result.rolls)
        assert result.total == sum(result.rolls) + 2


def test_advantage_keeps_higher_and_disadvantage_keeps_lower() -> None:
    session = SessionState(seed=11)
    for _ in range(20):
        high = roll_with_advantage(session, 1)
        low = roll_with_disadvantage(session, 1)
        assert high.natural == max(high.rolls)
        assert high.total == high.natural + 1
        assert low.natural == min(low.rolls)
        assert len(low.rolls) == 2


def test_combine_modes_cancels_out() -> None:
    assert combine_modes(True, False) == "advantage"
    assert combine_modes(False, True) == "disadvantage"
    assert combine_modes(True, True) == "normal"
    assert combine_modes(False, False) == "normal"


def test_critical_damage_doubles_dice() -> None:
    session = SessionState(seed=5)

    normal = roll_damage(session, 2, 6, 3)
    critical = roll_damage(session, 2, 6, 3, critical=True)

    assert len(normal.rolls) == 2
    assert len(critical.rolls) == 4
    assert critical.total == sum(critical.rolls) + 3
    assert session.turn_log[-1]["formula"] == "4d6+3"


def test_saving_throw_compares_against_dc() -> None:
    session = SessionState(seed=21)

    easy = roll_saving_throw(session, 30, 10)
    impossible = roll_saving_throw(session, 0, 40)

    assert easy.success is True
    assert impossible.success is False
    assert session.turn_log[-1]["label"] == "saving_throw"


def test_initiative_adds_dex_modifier() -> None:
    session = SessionState(seed=8)
    total = roll_initiative(session, 3)
    entry = session.turn_log[-1]
    assert entry["label"] == "initiative"
    assert total == entry["rolls"][0] + 3


def test_generate_ability_scores_drops_lowest_die() -> None:
    session = SessionState(seed=2)
    scores = generate_ability_scores(session)

    assert len(scores) == 6
    assert all(3 <= score <= 18 for score in scores)
    for entry, score in zip(session.turn_log, scores):
        assert entry["formula"] == "4d6kh3"
        assert score == sum(sorted(entry["rolls"])[1:])
