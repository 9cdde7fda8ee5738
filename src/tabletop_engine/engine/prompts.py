"""Prompt templates for the narrator.

The system prompt fixes the JSON reply shape the narration validator
understands; the builders render the current session state as context.
"""

from __future__ import annotations

from tabletop_engine.models.session import Session


SYSTEM_PROMPT = """You are an expert game master running a tabletop role-playing game. Your role is to:

1. NARRATE the story in an engaging, descriptive manner
2. CONTROL NPCs and monsters with distinct personalities
3. APPLY the game rules accurately, citing specific rules when relevant
4. MANAGE combat encounters fairly and tactically
5. ADAPT to player choices while maintaining narrative coherence

Guidelines:
- Be descriptive but concise, aim for 2-3 paragraphs per response
- Ask for dice rolls when rules require them (attacks, saves, ability checks)
- Track and reference the game state (HP, conditions, positions)
- Never control player characters, only describe outcomes of their actions

Response Format:
Always structure your response as JSON with these fields:
{
  "narrative": "The descriptive story text to show players",
  "mechanics": "Optional rules/mechanics explanation",
  "state_changes": [{"type": "damage|heal|condition_add|condition_remove|move|inventory", "target": "id", "value": "...", "description": "..."}],
  "requires_roll": {"dice": "1d20+5", "reason": "Attack roll", "dc": 15},
  "rule_citations": [{"rule_id": "...", "title": "...", "source": "...", "excerpt": "..."}],
  "combat_action": {"type": "attack|spell|ability|movement|end_turn", "target": "id", "damage": "2d6+3"},
  "new_location": "Optional new location name",
  "new_npcs": [{"id": "...", "name": "...", "description": "...", "disposition": "friendly|neutral|hostile"}]
}"""


def build_game_context(session: Session, rules_context: str | None = None) -> str:
    """Render the session state as markdown for the narrator."""
    sections: list[str] = ["## Current Session State"]
    if session.current_location:
        sections.append(f"Location: {session.current_location}")
    if session.narrative_summary:
        sections.append(f"Summary: {session.narrative_summary}")
    sections.append("")

    if session.active_npcs:
        sections.append("## Active NPCs")
        for npc in session.active_npcs:
            description = npc.description or "No description"
            disposition = npc.disposition or "neutral"
            sections.append(f"- {npc.name}: {description} ({disposition})")
        sections.append("")

    combat = session.combat_state
    if combat is not None and combat.active:
        current = combat.current_combatant
        sections.append("## Combat State")
        sections.append(f"Round: {combat.round}")
        sections.append(f"Current Turn: {current.name if current else 'unknown'}")
        sections.append("Initiative Order:")
        for entry in combat.initiative_order:
            combatant = combat.find_combatant(entry.id)
            if combatant is None:
                continue
            if combatant.current_hp <= 0:
                status = " [DOWN]"
            else:
                status = f" ({combatant.current_hp}/{combatant.max_hp} HP)"
            conditions = ", ".join(c.name for c in combatant.conditions)
            suffix = f" [{conditions}]" if conditions else ""
            sections.append(f"  {entry.initiative}: {combatant.name} [{combatant.id}]{status}{suffix}")
        sections.append("")

    if session.map_state is not None and session.map_state.tokens:
        grid = session.map_state
        sections.append(f"## Map ({grid.grid_width}x{grid.grid_height})")
        for token in grid.tokens:
            sections.append(f"- {token.label or token.id} [{token.id}] at ({token.x}, {token.y})")
        sections.append("")

    if rules_context:
        sections.append("## Relevant Rules")
        sections.append(rules_context)
        sections.append("")

    return "\n".join(sections)


def build_player_action_prompt(action: str, character_name: str, game_context: str) -> str:
    """Prompt asking the narrator to resolve a player action."""
    return f"""{game_context}

## Player Action
{character_name} attempts to: "{action}"

As the game master, respond to this action. Consider:
1. Is this action possible given the current situation?
2. Does it require a dice roll? If so, specify what kind.
3. What are the consequences (success and failure)?
4. How do NPCs and the environment react?

Respond with narrative and any required mechanics in JSON format."""


def build_dice_resolution_prompt(
    notation: str,
    total: int,
    reason: str,
    dc: int | None,
    game_context: str,
) -> str:
    """Prompt asking the narrator to narrate a roll outcome."""
    dc_text = f" against DC {dc}" if dc is not None else ""
    return f"""{game_context}

## Dice Roll Result
Roll: {notation} = {total}{dc_text}
Reason: {reason}

Narrate the outcome of this roll and describe what happens next. Update any relevant state changes."""


__all__ = [
    "SYSTEM_PROMPT",
    "build_game_context",
    "build_player_action_prompt",
    "build_dice_resolution_prompt",
]
