from gm_os.context import build_context
from gm_os.events import RESPONSE_RECONCILED, SHOW_GM_REPORT


def test_context_wires_the_debrief_loop() -> None:
    context = build_context(seed=11, clock=lambda: 5)
    shown = []
    context.events.subscribe(SHOW_GM_REPORT, shown.append)

    context.characters.create_character({"id": "c1", "name": "Kira", "maxHp": 9, "currentHp": 9})
    context.characters.set_active_character("c1")
    context.campaigns.set_campaign({"id": "camp-1", "name": "Outer Rim"})
    debrief = context.debriefs.compile(
        context.characters.active, context.campaigns.require()
    )
    outcome = context.reconciler.reconcile(
        'The cantina falls silent.\n---SYSTEM_DATA_FOLLOWS---\n{"character": {"currentHp": 4}}',
        debrief_id=debrief.id,
    )

    assert shown[0]["id"] == debrief.id
    assert outcome.ok is True
    assert context.characters.active.current_hp == 4
    assert context.cache.get("character", "c1")["currentHp"] == 4
    assert context.cache.get("debrief", debrief.id)["response"]["narrative"] == (
        "The cantina falls silent."
    )
    assert context.events.history[-1][0] == RESPONSE_RECONCILED
    assert context.maps.current_location() is None
    assert context.combat.in_combat is False
