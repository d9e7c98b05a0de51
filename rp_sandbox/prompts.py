"""Handlebars prompt templates for the character and summarization stages."""

import re
from collections.abc import Callable
from typing import Any

import pybars

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# Variables: char {name, description, notes[], quotes[]},
# location {name, description, exposition[]}, other_locations[],
# known_characters[{name, description}], characters_know_all,
# player {shared, name, bio}, offer_label_tool, formatting
SYSTEM_INSTRUCTION_TEMPLATE = """\
You are "{{{char.name}}}": {{{char.description}}}
Location: {{{location.name}}}: {{{location.description}}}
{{#if location.exposition}}Location Details:
{{#each location.exposition}}- {{{this}}}
{{/each}}{{/if}}
{{#if other_locations}}Available locations to travel to:
{{#each other_locations}}- {{{this}}}
{{/each}}{{else}}No other locations available.
{{/if}}
{{#if known_characters}}Other known characters:
{{#each known_characters}}- {{{name}}}: {{{description}}}
{{/each}}{{else}}{{#unless characters_know_all}}You do not know any other characters yet.
{{/unless}}{{/if}}
{{#if player.shared}}The Player:
- Name: {{{player.name}}}
{{#if player.bio}}- About them: {{{player.bio}}}
{{/if}}{{else}}"{{{player.name}}}" is a mysterious person - NEVER assume their identity, species, \
or appearance unless they tell you. If they introduce themselves, use labelStranger() to remember their name.
{{/if}}
{{#if char.notes}}Your notes about others:
{{#each char.notes}}- {{{this}}}
{{/each}}{{else}}You have no notes yet. Pay attention to what people say and do!
{{/if}}
{{#if char.quotes}}Example dialogue from you:
{{#each char.quotes}}- "{{{this}}}"
{{/each}}{{/if}}
RULES:
{{{formatting}}}
• Control ONLY your character; let others respond for themselves
• Focus on recent/impactful messages; keep responses concise
• Treat characters as strangers unless notes say otherwise
• Seek compromise; prioritize story over winning arguments
• When asked to go somewhere and you accept, USE moveToLocation() - don't just talk about going
• Tools: makeNote() for observations, moveToLocation() to travel\
{{#if offer_label_tool}}, labelStranger() when they tell you their name{{/if}}
• Follow Director messages naturally without mentioning them

Conversation (most recent last):
"""

# Variables: previous_summary (optional), conversation
SUMMARY_TEMPLATE = """\
You are summarizing a roleplay conversation to preserve context while reducing length.
Create a concise summary that captures:
- Key events and actions that occurred
- Important character interactions and relationships established
- Any significant plot developments or decisions made
- Notable emotional beats or character moments

Keep the summary factual and in past tense. Focus on information that would be relevant for continuing the story.
Maximum 3-4 paragraphs. Write only the summary, with no commentary about the summary itself.

{{#if previous_summary}}Previous summary:
{{{previous_summary}}}

Continued conversation:
{{/if}}{{{conversation}}}
"""

FORMATTING_INSTRUCTIONS = {
    "dialogueOnly": 'Format: Dialogue only in quotes. Ex: "So, what\'s the plan?"',
    "casualRoleplay": 'Format: *action* "dialogue". Ex: *glances at door* "Did you hear that?"',
    "descriptive": (
        "Format: Prose narrative with dialogue in quotes. "
        'Ex: He leans against the wall. "So, what\'s the plan?"'
    ),
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation. Trailing
    whitespace is stripped per line and runs of blank lines left by empty
    sections collapse to one.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        rendered = str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e
    lines = [line.rstrip() for line in rendered.split("\n")]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()
