from __future__ import annotations

import pytest


def make_preset(*entries: dict, order: list[str] | None = None, disabled: tuple[str, ...] = (), squash: bool = False, wrapped: bool = False) -> dict:
    """Build a preset from prompt entries; order defaults to the entries' own order."""
    prompts = []
    for entry in entries:
        prompt = {"name": entry["identifier"].title(), "enabled": True, "role": "system", "injection_position": 0}
        prompt.update(entry)
        prompts.append(prompt)
    identifiers = order if order is not None else [p["identifier"] for p in prompts]
    records = [{"identifier": i, "enabled": i not in disabled} for i in identifiers]
    return {
        "prompts": prompts,
        "prompt_order": [{"character_id": 100001, "order": records}] if wrapped else records,
        "squash_system_messages": squash,
    }


def fixed_tokens(count: int):
    return lambda _text: count


@pytest.fixture
def clean_preset() -> dict:
    return make_preset(
        {"identifier": "main", "name": "Main Prompt", "content": "You are {{char}}, talking with {{user}}. " * 120},
        {"identifier": "charDescription", "name": "Char Description", "content": "A weathered ship captain. " * 40},
        {"identifier": "scenario", "name": "Scenario", "content": "A storm is coming in over the harbor."},
        {"identifier": "chatHistory", "name": "Chat History", "content": ""},
        {"identifier": "jailbreak", "name": "Post-History Instructions", "content": "Stay in character."},
        squash=True,
    )
