"""
Pattern table for line classification and narration boundaries.

All noise/tool/approval heuristics live here as data so the classifier and
aggregator stay free of literal strings. Bump PATTERN_TABLE_VERSION whenever a
rule changes meaning so debug logs can be correlated with the rule set in use.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, Pattern, Tuple

PATTERN_TABLE_VERSION = "4"

_I = re.IGNORECASE

# Keystroke and terminal-mode residue left behind after escape stripping.
GARBAGE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^\??\d{3,4}[lh]\d*$", _I),            # ?1004l, 1004l99
    re.compile(r"^\d+[lh]\d*$", _I),                   # 99l, 1h
    re.compile(r"^[lh]\d*$", _I),                      # l99, h1
    re.compile(r"^[0-9]+[a-z]+[0-9]*$", _I),           # 99a, 12ab3
    re.compile(r"^[a-z]+[0-9]+[a-z]*$", _I),           # a99, abc123
    re.compile(r"^[a-z]\d[a-z]\d?$", _I),              # a1b2
    re.compile(r"^[a-z]{1,2}\d{1,2}[a-z]{0,2}$", _I),  # ab12cd
    re.compile(r"^(?:1a2k|2k1a|1004l|1004l99|99|2k|1a)$", _I),
    re.compile(r"^(?:(?:2\s*k\s*1\s*a|two\s*k\s*one\s*a|1a2k)\s*)+g?$", _I),
    re.compile(r"^\d{1,2}$"),
    re.compile(r"^[^\w\s]{1,3}$"),                     # lone punctuation
)

EXACT_GARBAGE: FrozenSet[str] = frozenset({"g", "l", "h", "99"})

# Verb stems followed by an inflection, e.g. "Updating", "Created", "Runs".
# The inflection is one of a closed set so "Ready", "Settings" or "Address"
# never read as "Read", "Set" or "Add".
TOOL_VERBS: Pattern[str] = re.compile(
    r"^(?:Updat|Modify|Modifie|Modifying|Chang|Add|Remov|Delet|Mark|Set|Sett|"
    r"Clear|Reset|Resett|Edit|Creat|Writ|Read|Fetch|Load|Sav|Track|Complet|"
    r"Finish|Start|Init|Initializ|Setup|Config|Configur|Install|Build|Run|Runn|"
    r"Test|Deploy|Process|Analyz|Search|Check|Fix|Execut|Perform|Apply|Applie|"
    r"Transform|Convert|Format|Formatt|Import|Export|Generat|Calculat|Validat|"
    r"Pars|Compil|Optimiz|Refactor|Migrat|Backup|Restor|Sync|Download|Upload)"
    r"(?:ing|ed|es|e|s|d)?\s+(?P<rest>.*)$",
    _I,
)

# Nouns that make a verb line read as tool bookkeeping; matched as whole words.
TOOL_TARGETS: Pattern[str] = re.compile(
    r"\b(?:todos?|tasks?|items?|lists?|files?|code|functions?|variables?|"
    r"config(?:uration)?s?|settings?|database|status|progress|components?|"
    r"modules?|packages?|dependenc(?:y|ies)|tests?|deployments?|directory|"
    r"directories|folders?)\b",
    _I,
)

TOOL_OUTPUT_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^Running command:", _I),
    re.compile(r"^Reading file:", _I),
    re.compile(r"^Writing to file:", _I),
    re.compile(r"^(?:Creating|Updating) file:", _I),
    re.compile(r"^Invoking mcp_", _I),
    re.compile(r"^✓ Successfully", _I),
    re.compile(r"^✗ Error:", _I),
    re.compile(r"^\[\d+/\d+\]"),
    re.compile(r"^Searching for", _I),
    re.compile(r"^Found \d+ (?:files?|matches?)", _I),
    re.compile(r"^Using\s"),
    re.compile(r"^\w+\s*\("),                          # tool_name(args)
    re.compile(r"\(MCP\)"),
    re.compile(r"\b(?:asana|github|obsidian):"),
)

APPROVAL_PROMPT_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\bdo you want to\b", _I),
    re.compile(r"\bwould you like\b", _I),
    re.compile(r"\b(?i:shall|should|may) I\b"),
    re.compile(r"\bpermission\b", _I),
    re.compile(r"\bapproval\b", _I),
    re.compile(r"\?\s*\(?(?:y/n|yes/no)\)?\s*$", _I),
)

APPROVAL_OPTION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^[❯>›]?\s*\d+\.\s*(?:Yes|No|Allow|Always allow|Decline)\b", _I),
    re.compile(r"Allow this time", _I),
    re.compile(r"Always allow", _I),
    re.compile(r"Decline and give feedback", _I),
    re.compile(r"don't ask again", _I),
)

# Leading glyphs of status lines, spinners and box drawing.
STOP_GLYPHS: Tuple[str, ...] = (
    "✻", "✽", "✶", "✳", "✢", "·", "✓", "✗", "╭", "│", "╰", "─", "⎿",
)

STOP_MARKERS: Tuple[Pattern[str], ...] = (
    re.compile(r"\btokens\b", _I),
    re.compile(r"esc to interrupt", _I),
)

COMPACT_MARKERS: Tuple[str, ...] = ("/compact", "Conversation compacted")
PLAN_MARKERS: Tuple[str, ...] = (
    "entering plan mode",
    "exit_plan_mode",
    "Here's my plan:",
    "Let me plan",
)

HISTORY_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^Human:"),
    re.compile(r"^Assistant:"),
    re.compile(r"^\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}"),
)

# Raw sequence emitted when the monitored program drops focus tracking,
# which it does when an approval dialog opens.
APPROVAL_DIALOG_SEQUENCE = b"\x1b[?1004l"


@dataclass(frozen=True)
class PatternTable:
    """Bundle of every rule the classifier and aggregator consult."""

    version: str = PATTERN_TABLE_VERSION
    exact_garbage: FrozenSet[str] = EXACT_GARBAGE
    garbage: Tuple[Pattern[str], ...] = GARBAGE_PATTERNS
    tool_verbs: Pattern[str] = TOOL_VERBS
    tool_targets: Pattern[str] = TOOL_TARGETS
    tool_output: Tuple[Pattern[str], ...] = TOOL_OUTPUT_PATTERNS
    approval_prompt: Tuple[Pattern[str], ...] = APPROVAL_PROMPT_PATTERNS
    approval_option: Tuple[Pattern[str], ...] = APPROVAL_OPTION_PATTERNS
    stop_glyphs: Tuple[str, ...] = STOP_GLYPHS
    stop_markers: Tuple[Pattern[str], ...] = STOP_MARKERS
    compact_markers: Tuple[str, ...] = COMPACT_MARKERS
    plan_markers: Tuple[str, ...] = PLAN_MARKERS
    history: Tuple[Pattern[str], ...] = HISTORY_PATTERNS


DEFAULT_PATTERNS = PatternTable()


__all__ = [
    "APPROVAL_DIALOG_SEQUENCE",
    "DEFAULT_PATTERNS",
    "PATTERN_TABLE_VERSION",
    "PatternTable",
]
