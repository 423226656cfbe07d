from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from gm_os.debrief import DebriefCompiler
from gm_os.events import EventBus
from gm_os.narrative import NarrativeProcessor
from gm_os.reconciler import ResponseReconciler
from remote.client import ApiClient
from rules.combat import CombatTracker
from rules.core import SessionState
from rules.maps import now_ms
from stores.campaign import CampaignStore
from stores.character import CharacterStore
from stores.map import MapStore
from stores.persistence import LocalCache, MemoryBackend


@dataclass
class GameContext:
    session: SessionState
    events: EventBus
    cache: LocalCache
    characters: CharacterStore
    campaigns: CampaignStore
    maps: MapStore
    combat: CombatTracker
    debriefs: DebriefCompiler
    reconciler: ResponseReconciler


def build_context(
    *,
    api: ApiClient | None = None,
    cache: LocalCache | None = None,
    seed: int | None = None,
    clock: Callable[[], int] = now_ms,
) -> GameContext:
    session = SessionState(seed=seed)
    events = EventBus()
    if cache is None:
        cache = LocalCache(MemoryBackend(), clock=clock)
    characters = CharacterStore(api, cache=cache, clock=clock)
    campaigns = CampaignStore(api, cache=cache, clock=clock)
    debriefs = DebriefCompiler(
        api,
        events=events,
        cache=cache,
        processor=NarrativeProcessor(),
        clock=clock,
    )
    return GameContext(
        session=session,
        events=events,
        cache=cache,
        characters=characters,
        campaigns=campaigns,
        maps=MapStore(campaigns),
        combat=CombatTracker(session),
        debriefs=debriefs,
        reconciler=ResponseReconciler(characters, campaigns, debriefs=debriefs, events=events),
    )
