from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal

from domain import Character
from rules.character import ability_modifier, derive_stats
from rules.conditions import apply_condition, attack_modifiers, remove_condition, tick_conditions
from rules.core import SessionState, combine_modes, roll_d20_with_mode, roll_damage, roll_initiative

AttackType = Literal["melee", "ranged", "force"]
CombatOutcome = Literal["victory", "defeat"]

ATTACK_PROFILES = {
    "melee": (8, "strength"),
    "ranged": (6, "dexterity"),
    "force": (10, "wisdom"),
}
DEFAULT_DAMAGE_BONUS = 2


class CombatError(ValueError):
    pass


@dataclass
class Combatant:
    id: str
    name: str
    hp: int
    max_hp: int
    armor_class: int
    initiative: int = 0
    initiative_bonus: int = 0
    is_player: bool = False
    conditions: dict = field(default_factory=dict)
    ability_scores: dict[str, int] | None = None
    attack_bonus: int = 0
    damage_bonus: int | None = None
    speed: int = 30


@dataclass(frozen=True)
class AttackResult:
    attacker_id: str
    target_id: str
    attack_type: str
    attack_roll: int
    attack_total: int
    target_ac: int
    hit: bool
    crit: bool
    damage: int
    hp_before: int
    hp_after: int


def combatant_from_character(character: Character) -> Combatant:
    stats = derive_stats(character)
    return Combatant(
        id=character.id,
        name=character.name,
        hp=character.current_hp,
        max_hp=character.max_hp,
        armor_class=stats.armor_class,
        initiative_bonus=stats.initiative,
        is_player=True,
        ability_scores=character.ability_scores.model_dump(),
    )


def initiative_order(
    session: SessionState,
    combatants: Iterable[Combatant],
) -> list[tuple[Combatant, int]]:
    rolled = [
        (combatant, roll_initiative(session, combatant.initiative_bonus))
        for combatant in combatants
    ]
    return sorted(rolled, key=lambda item: item[1], reverse=True)


def attack_modifier(combatant: Combatant, attack_type: str) -> int:
    _, ability = ATTACK_PROFILES[attack_type]
    if combatant.is_player and combatant.ability_scores:
        return ability_modifier(combatant.ability_scores.get(ability, 10)) + combatant.attack_bonus
    return combatant.attack_bonus


def damage_modifier(combatant: Combatant, attack_type: str) -> int:
    _, ability = ATTACK_PROFILES[attack_type]
    if combatant.is_player and combatant.ability_scores:
        return ability_modifier(combatant.ability_scores.get(ability, 10))
    if combatant.damage_bonus is None:
        return DEFAULT_DAMAGE_BONUS
    return combatant.damage_bonus


class CombatTracker:
    def __init__(self, session: SessionState | None = None) -> None:
        self.session = session or SessionState()
        self.in_combat = False
        self.combatants: list[Combatant] = []
        self.current_turn = 0
        self.round = 1
        self.log: list[str] = []
        self.outcome: CombatOutcome | None = None

    @property
    def status(self) -> str:
        return "active" if self.in_combat else "idle"

    @property
    def current_combatant(self) -> Combatant | None:
        if not self.in_combat or not self.combatants:
            return None
        return self.combatants[self.current_turn]

    def get(self, combatant_id: str) -> Combatant:
        for combatant in self.combatants:
            if combatant.id == combatant_id:
                return combatant
        raise CombatError(f"Unknown combatant: {combatant_id}")

    def add_combatant(self, combatant: Combatant) -> None:
        if any(existing.id == combatant.id for existing in self.combatants):
            raise CombatError(f"Combatant already present: {combatant.id}")
        if not self.in_combat:
            self.combatants.append(combatant)
            return
        current = self.current_combatant
        self.combatants.append(combatant)
        self.combatants.sort(key=lambda item: item.initiative, reverse=True)
        self.current_turn = self.combatants.index(current)
        self.log.append(f"{combatant.name} joins the fight.")

    def remove_combatant(self, combatant_id: str) -> Combatant:
        combatant = self.get(combatant_id)
        index = self.combatants.index(combatant)
        self.combatants.remove(combatant)
        if self.in_combat:
            if not self.combatants:
                self.end_combat()
                return combatant
            if index < self.current_turn:
                self.current_turn -= 1
            self.current_turn %= len(self.combatants)
        return combatant

    def start_combat(self, *, roll: bool = True) -> list[Combatant]:
        if self.in_combat:
            raise CombatError("Combat is already active.")
        if not self.combatants:
            raise CombatError("Cannot start combat without combatants.")

        if roll:
            ordered = []
            for combatant, initiative in initiative_order(self.session, self.combatants):
                combatant.initiative = initiative
                ordered.append(combatant)
            self.combatants = ordered
        else:
            self.combatants.sort(key=lambda item: item.initiative, reverse=True)

        self.in_combat = True
        self.current_turn = 0
        self.round = 1
        self.outcome = None
        self.log = ["Combat initiated! Roll for initiative!"]
        return list(self.combatants)

    def initiate_combat(
        self,
        player: Character,
        enemies: Iterable[Combatant],
    ) -> list[Combatant]:
        if self.in_combat:
            raise CombatError("Combat is already active.")
        self.combatants = [combatant_from_character(player)]
        for enemy in enemies:
            enemy.is_player = False
            self.add_combatant(enemy)
        return self.start_combat()

    def next_turn(self) -> Combatant:
        self._require_active()
        ending = self.combatants[self.current_turn]
        ending.conditions, expired = tick_conditions(ending.conditions)
        for name in expired:
            self.log.append(f"{ending.name} is no longer {name.lower()}.")

        self.current_turn = (self.current_turn + 1) % len(self.combatants)
        if self.current_turn == 0:
            self.round += 1
            self.log.append(f"Round {self.round} begins!")
        else:
            self.log.append(f"{self.combatants[self.current_turn].name}'s turn")
        return self.combatants[self.current_turn]

    def end_combat(self) -> None:
        self.in_combat = False
        self.combatants = []
        self.current_turn = 0
        self.round = 1

    def apply_damage(self, target_id: str, amount: int) -> int:
        target = self.get(target_id)
        target.hp = max(0, target.hp - max(0, amount))
        if target.hp == 0:
            self.log.append(f"{target.name} is defeated!")
            self._check_outcome()
        return target.hp

    def heal(self, target_id: str, amount: int) -> int:
        target = self.get(target_id)
        target.hp = min(target.max_hp, target.hp + max(0, amount))
        self.log.append(f"{target.name} recovers {amount} hit points.")
        return target.hp

    def add_condition(
        self,
        target_id: str,
        name: str,
        *,
        duration: int | None = None,
    ) -> dict:
        target = self.get(target_id)
        target.conditions = apply_condition(target.conditions, name, duration=duration)
        return target.conditions

    def remove_condition(self, target_id: str, name: str) -> dict:
        target = self.get(target_id)
        target.conditions = remove_condition(target.conditions, name)
        return target.conditions

    def damage_roll(
        self,
        attacker: Combatant,
        attack_type: AttackType,
        *,
        critical: bool = False,
    ) -> int:
        sides, _ = ATTACK_PROFILES[attack_type]
        result = roll_damage(
            self.session,
            1,
            sides,
            damage_modifier(attacker, attack_type),
            critical=critical,
        )
        return max(0, result.total)

    def resolve_attack(
        self,
        target_id: str,
        *,
        attack_type: AttackType = "melee",
        attacker_id: str | None = None,
        attack_roll_override: int | None = None,
    ) -> AttackResult:
        self._require_active()
        if attack_type not in ATTACK_PROFILES:
            raise CombatError(f"Unknown attack type: {attack_type}")
        attacker = self.get(attacker_id) if attacker_id else self.combatants[self.current_turn]
        target = self.get(target_id)

        modifier = attack_modifier(attacker, attack_type)
        if attack_roll_override is None:
            advantage, disadvantage = attack_modifiers(attacker.conditions, target.conditions)
            natural = roll_d20_with_mode(
                self.session,
                modifier,
                mode=combine_modes(advantage, disadvantage),
                label="attack",
            ).natural
        else:
            natural = attack_roll_override
        attack_total = natural + modifier
        crit = natural == 20
        hit = crit or attack_total >= target.armor_class

        hp_before = target.hp
        damage = 0
        if hit:
            damage = self.damage_roll(attacker, attack_type, critical=crit)
            if crit:
                self.log.append(
                    f"{attacker.name} attacks {target.name} with a critical hit for {damage} damage!"
                )
            else:
                self.log.append(f"{attacker.name} attacks {target.name} and hits for {damage} damage.")
            self.apply_damage(target.id, damage)
        else:
            self.log.append(f"{attacker.name} attacks {target.name} but misses.")

        return AttackResult(
            attacker_id=attacker.id,
            target_id=target.id,
            attack_type=attack_type,
            attack_roll=natural,
            attack_total=attack_total,
            target_ac=target.armor_class,
            hit=hit,
            crit=crit,
            damage=damage,
            hp_before=hp_before,
            hp_after=target.hp,
        )

    def _require_active(self) -> None:
        if not self.in_combat:
            raise CombatError("No active combat.")

    def _check_outcome(self) -> None:
        if not self.in_combat:
            return
        enemies = [combatant for combatant in self.combatants if not combatant.is_player]
        players = [combatant for combatant in self.combatants if combatant.is_player]
        if enemies and all(combatant.hp == 0 for combatant in enemies):
            self.outcome = "victory"
            self.log.append("Victory! All enemies defeated.")
            self.end_combat()
        elif players and all(combatant.hp == 0 for combatant in players):
            self.outcome = "defeat"
            self.log.append("Defeat! You have been defeated.")
            self.end_combat()
