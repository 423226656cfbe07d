from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from domain import Character

WORD_SPLIT = re.compile(r"\W+")
SENTENCE_SPLIT = re.compile(r"[.!?]+")
PERSON_PATTERN = re.compile(r"\b[A-Z][a-z]+(?: [A-Z][a-z]+)+\b")
RELATIONSHIP_NAME_PATTERN = re.compile(r"\b[A-Z][a-z]+(?:\s[A-Z][a-z]+)*\b")
MAX_PLOT_HOOKS = 5

POSITIVE_TERMS = frozenset(
    [
        "happy",
        "joyful",
        "passionate",
        "excited",
        "hope",
        "love",
        "friend",
        "trust",
        "loyal",
        "honor",
        "good",
        "peace",
        "harmony",
        "light",
        "protect",
        "save",
        "help",
    ]
)
NEGATIVE_TERMS = frozenset(
    [
        "sad",
        "angry",
        "hate",
        "fear",
        "despise",
        "revenge",
        "enemy",
        "kill",
        "destroy",
        "dark",
        "evil",
        "pain",
        "suffering",
        "loss",
        "betrayal",
        "death",
    ]
)


@dataclass(frozen=True)
class KeywordRule:
    """A named signal that fires when any of its phrases appears in the text."""

    name: str
    phrases: tuple[str, ...]
    pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        alternation = "|".join(re.escape(phrase) for phrase in self.phrases)
        object.__setattr__(self, "pattern", re.compile(alternation, re.IGNORECASE))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None

    def find_all(self, text: str) -> list[str]:
        return [match.group(0) for match in self.pattern.finditer(text)]


def _rules(table: dict[str, tuple[str, ...]]) -> tuple[KeywordRule, ...]:
    return tuple(KeywordRule(name, phrases) for name, phrases in table.items())


THEME_RULES = _rules(
    {
        "redemption": ("redemption", "redeem", "second chance", "forgiveness"),
        "revenge": ("revenge", "vengeance", "avenge", "payback"),
        "justice": ("justice", "fair", "right wrongs", "law"),
        "power": ("power", "control", "dominance", "rule", "strength"),
        "freedom": ("freedom", "liberty", "independence", "escape", "free"),
        "discovery": ("discover", "exploration", "find", "learn", "knowledge"),
        "family": ("family", "father", "mother", "brother", "sister", "parent", "son", "daughter"),
        "duty": ("duty", "responsibility", "obligation", "honor", "loyal"),
        "survival": ("survival", "survive", "stay alive", "escape", "fled"),
        "wealth": ("wealth", "money", "rich", "credits", "fortune", "treasure"),
    }
)

MOTIVATION_RULES = _rules(
    {
        "revenge": ("revenge", "avenge", "get back at", "make them pay"),
        "protection": ("protect", "defend", "save", "shield", "guard"),
        "discovery": ("discover", "find", "search", "seek", "learn"),
        "wealth": ("money", "wealth", "rich", "credits", "payment"),
        "power": ("power", "strength", "control", "force", "influence"),
        "redemption": ("redemption", "redeem", "forgiveness", "atone"),
        "freedom": ("freedom", "escape", "liberty", "free"),
        "duty": ("duty", "obligation", "must", "order", "commanded"),
        "justice": ("justice", "right wrongs", "fair", "law"),
        "family": ("family", "father", "mother", "brother", "sister"),
    }
)

TRAIT_RULES = _rules(
    {
        "brave": ("brave", "courageous", "fearless", "bold"),
        "cautious": ("cautious", "careful", "wary", "vigilant"),
        "arrogant": ("arrogant", "proud", "ego", "overconfident"),
        "compassionate": ("compassionate", "kind", "caring", "generous"),
        "ruthless": ("ruthless", "merciless", "brutal", "cruel"),
        "curious": ("curious", "inquisitive", "questioning"),
        "honorable": ("honorable", "honor", "principled", "integrity"),
        "deceptive": ("deceptive", "lie", "manipulative", "cunning"),
        "humorous": ("humor", "funny", "joke", "witty", "sarcastic"),
        "serious": ("serious", "stern", "solemn", "grave"),
    }
)

VALUE_RULES = _rules(
    {
        "freedom": ("freedom", "liberty", "independence"),
        "loyalty": ("loyalty", "loyal", "commitment", "dedication"),
        "knowledge": ("knowledge", "wisdom", "learning", "truth"),
        "family": ("family", "kin", "blood", "relatives"),
        "tradition": ("tradition", "heritage", "custom"),
        "power": ("power", "strength", "dominance", "control"),
        "wealth": ("wealth", "money", "riches", "fortune", "credits"),
        "justice": ("justice", "fairness", "equality", "rights"),
        "honor": ("honor", "reputation", "respect", "dignity"),
        "adventure": ("adventure", "thrill", "excitement", "danger"),
    }
)

FEAR_RULES = _rules(
    {
        "failure": ("fail", "disappoint", "shame"),
        "death": ("death", "die", "mortality"),
        "loss": ("loss", "lose", "lost", "gone"),
        "betrayal": ("betrayal", "betrayed", "treachery"),
        "humiliation": ("humiliation", "embarrass", "ridicule", "mock"),
        "powerlessness": ("powerless", "weak", "helpless", "vulnerable"),
        "isolation": ("alone", "lonely", "abandoned", "isolation"),
        "rejection": ("reject", "cast out", "exile"),
        "darkness": ("darkness", "dark side", "corruption", "temptation"),
        "past": ("haunted", "regret", "mistakes"),
    }
)

ORGANIZATION_RULE = KeywordRule(
    "organizations",
    (
        "new republic",
        "first order",
        "trade federation",
        "jedi order",
        "galactic senate",
        "hutt cartel",
        "black sun",
        "empire",
        "rebellion",
        "republic",
        "alliance",
        "sith",
        "mandalorians",
    ),
)

LOCATION_RULE = KeywordRule(
    "locations",
    (
        "tatooine",
        "coruscant",
        "naboo",
        "hoth",
        "endor",
        "dagobah",
        "yavin",
        "bespin",
        "mustafar",
        "kashyyyk",
        "corellia",
        "ryloth",
        "mandalore",
        "cantina",
        "temple",
        "station",
        "academy",
    ),
)

RELATIONSHIP_RULES = _rules(
    {
        "allies": (
            "friend",
            "ally",
            "comrade",
            "partner",
            "companion",
            "helped",
            "trusted",
            "loyal",
            "supported",
            "protected",
        ),
        "enemies": (
            "enemy",
            "nemesis",
            "rival",
            "foe",
            "adversary",
            "betrayed",
            "hunted",
            "killed",
            "destroyed",
            "hate",
        ),
        "mentors": (
            "mentor",
            "teacher",
            "master",
            "trained",
            "taught",
            "guide",
            "instructor",
            "elder",
            "learn from",
        ),
    }
)

THEME_HOOKS = {
    "revenge": "An opportunity arises to confront someone who wronged {name} in the past.",
    "discovery": "A mysterious artifact is discovered that connects to {name}'s quest for knowledge.",
    "redemption": "{name} encounters someone from their past who offers a chance to right a previous wrong.",
    "family": "News arrives about a long-lost family member of {name} who needs help.",
}

CLASS_HOOKS = {
    "consular": "A disturbance in the Force points to a situation that requires {name}'s unique abilities.",
    "guardian": "A disturbance in the Force points to a situation that requires {name}'s unique abilities.",
    "sentinel": "A disturbance in the Force points to a situation that requires {name}'s unique abilities.",
    "engineer": "A complex technical problem emerges that only {name}'s expertise can solve.",
    "scholar": "An ancient text is discovered that references knowledge {name} has been seeking.",
    "scout": "Intelligence arrives about a secret location that {name} would be uniquely qualified to infiltrate.",
    "operative": "Intelligence arrives about a secret location that {name} would be uniquely qualified to infiltrate.",
}

GENERIC_HOOKS = (
    "A mysterious stranger recognizes {name} and offers information about their past.",
    "{name} receives a cryptic message leading to an unexpected adventure.",
    "An old acquaintance of {name} appears with a lucrative but dangerous opportunity.",
)


@dataclass(frozen=True)
class NarrativeAnalysis:
    main_themes: list[str] = field(default_factory=list)
    sentiment_score: float = 0.0
    people: list[str] = field(default_factory=list)
    organizations: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)
    motivations: list[str] = field(default_factory=list)
    traits: list[str] = field(default_factory=list)
    values: list[str] = field(default_factory=list)
    fears: list[str] = field(default_factory=list)
    allies: list[str] = field(default_factory=list)
    enemies: list[str] = field(default_factory=list)
    mentors: list[str] = field(default_factory=list)
    plot_hooks: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any(
            [
                self.main_themes,
                self.people,
                self.organizations,
                self.locations,
                self.motivations,
                self.traits,
                self.values,
                self.fears,
                self.allies,
                self.enemies,
                self.mentors,
            ]
        )

    def to_dict(self) -> dict:
        return {
            "mainThemes": list(self.main_themes),
            "sentimentScore": self.sentiment_score,
            "entities": {
                "people": list(self.people),
                "organizations": list(self.organizations),
                "locations": list(self.locations),
            },
            "motivations": list(self.motivations),
            "personality": {
                "traits": list(self.traits),
                "values": list(self.values),
                "fears": list(self.fears),
            },
            "relationshipHints": {
                "allies": list(self.allies),
                "enemies": list(self.enemies),
                "mentors": list(self.mentors),
            },
            "plotHooks": list(self.plot_hooks),
        }


def narrative_sources(character: Character) -> list[str]:
    fields = (
        character.backstory,
        character.notes,
        character.personality_traits,
        character.bonds,
        character.ideals,
        character.flaws,
    )
    return [text.strip() for text in fields if text and text.strip()]


def has_narrative(character: Character) -> bool:
    return bool(narrative_sources(character))


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            result.append(value)
    return result


def _matching(rules: Iterable[KeywordRule], text: str) -> list[str]:
    return [rule.name for rule in rules if rule.matches(text)]


def sentiment_score(text: str) -> float:
    words = [word for word in WORD_SPLIT.split(text.lower()) if word]
    positive = sum(1 for word in words if word in POSITIVE_TERMS)
    negative = sum(1 for word in words if word in NEGATIVE_TERMS)
    total = positive + negative
    if total == 0:
        return 0.0
    return (positive - negative) / total


def relationship_hints(text: str) -> dict[str, list[str]]:
    hints: dict[str, list[str]] = {rule.name: [] for rule in RELATIONSHIP_RULES}
    for sentence in SENTENCE_SPLIT.split(text):
        names = RELATIONSHIP_NAME_PATTERN.findall(sentence.strip())
        if not names:
            continue
        for rule in RELATIONSHIP_RULES:
            if rule.matches(sentence):
                hints[rule.name].extend(names)
    return {name: _unique(values) for name, values in hints.items()}


class NarrativeProcessor:
    def analyze(self, character: Character) -> NarrativeAnalysis:
        text = " ".join(narrative_sources(character))
        if not text:
            return NarrativeAnalysis()

        relationships = relationship_hints(text)
        analysis = NarrativeAnalysis(
            main_themes=_matching(THEME_RULES, text),
            sentiment_score=sentiment_score(text),
            people=_unique(PERSON_PATTERN.findall(text)),
            organizations=_unique(ORGANIZATION_RULE.find_all(text)),
            locations=_unique(LOCATION_RULE.find_all(text)),
            motivations=_matching(MOTIVATION_RULES, text),
            traits=_matching(TRAIT_RULES, text),
            values=_matching(VALUE_RULES, text),
            fears=_matching(FEAR_RULES, text),
            allies=relationships["allies"],
            enemies=relationships["enemies"],
            mentors=relationships["mentors"],
        )
        if analysis.is_empty:
            return NarrativeAnalysis(sentiment_score=analysis.sentiment_score)
        return NarrativeAnalysis(
            **{**analysis.__dict__, "plot_hooks": self.plot_hooks(character, analysis)}
        )

    def plot_hooks(self, character: Character, analysis: NarrativeAnalysis) -> list[str]:
        name = character.name
        hooks = [
            THEME_HOOKS[theme].format(name=name)
            for theme in analysis.main_themes
            if theme in THEME_HOOKS
        ]
        if analysis.people:
            hooks.append(f"{analysis.people[0]} sends an urgent message requesting {name}'s assistance.")
        if analysis.organizations:
            hooks.append(
                f"The {analysis.organizations[0]} offers a mission that aligns with {name}'s goals."
            )
        if analysis.locations:
            hooks.append(
                f"Disturbing news emerges from {analysis.locations[0]} that draws {name}'s attention."
            )
        class_hook = CLASS_HOOKS.get(character.class_name.strip().lower())
        if class_hook:
            hooks.append(class_hook.format(name=name))
        if len(hooks) < 3:
            hooks.extend(hook.format(name=name) for hook in GENERIC_HOOKS)
        return hooks[:MAX_PLOT_HOOKS]


def process_character_narrative(character: Character) -> NarrativeAnalysis:
    return NarrativeProcessor().analyze(character)
