"""Evidence block flattening and topic grouping.

Performance and knowledge evidence arrive as a mix of paragraphs and nested
lists. They are flattened into bullet-marked lines (``•`` top level, ``◦``
nested) and then grouped into (topic, sub-items) pairs.
"""

import re
from typing import List, Optional

from bs4 import Tag

from unitsync.core.models import EvidenceGroup

TOP_BULLET = "•"
CHILD_BULLET = "◦"

# Boilerplate sentence that precedes most evidence blocks
EVIDENCE_PREAMBLE = "evidence required to demonstrate"

_BULLET_CHARS = "-*•·◦"
_TAIL_CONNECTOR = re.compile(r"\s*(?:including|includes|and):\s*$", re.IGNORECASE)
_TAIL_COLON = re.compile(r"\s*:\s*$")
_PREAMBLE_MAX_LENGTH = 40


def collapse(text: str) -> str:
    """Collapse runs of whitespace to single spaces."""
    return " ".join(text.split())


def own_text(li: Tag) -> str:
    """Text of a list item without the text of its nested lists."""
    parts = []
    for child in li.children:
        if isinstance(child, Tag):
            if child.name in ("ul", "ol"):
                continue
            parts.append(child.get_text(" "))
        else:
            parts.append(str(child))
    return collapse("".join(parts))


def nested_list_lines(list_tag: Tag, depth: int = 0) -> List[str]:
    """Flatten a ul/ol into bullet lines, indenting two spaces per depth."""
    lines: List[str] = []
    indent = "  " * depth
    bullet = TOP_BULLET if depth == 0 else CHILD_BULLET

    for li in list_tag.find_all("li", recursive=False):
        text = own_text(li)
        if text and EVIDENCE_PREAMBLE not in text.lower():
            lines.append(f"{indent}{bullet} {text}")
        for nested in li.find_all(["ul", "ol"], recursive=False):
            lines.extend(nested_list_lines(nested, depth + 1))

    return lines


def _is_preamble(line: str) -> bool:
    # Short header such as "Knowledge of:" or "Evidence of ability to:"
    return line.endswith(":") and len(line) <= _PREAMBLE_MAX_LENGTH and line[0] not in _BULLET_CHARS


def _clean_tail(text: str) -> str:
    return _TAIL_COLON.sub("", _TAIL_CONNECTOR.sub("", text)).strip()


class _Group:
    __slots__ = ("topic", "items")

    def __init__(self, topic: str):
        self.topic = topic
        self.items: List[str] = []


def group_evidence(lines: List[str]) -> List[EvidenceGroup]:
    """Group flattened evidence lines into topics with sub-items.

    - ``•`` lines start a topic (trailing "including:", "includes:", "and:" or
      ":" removed); a topic equal to the previous one reuses it.
    - ``◦`` lines, and ``-`` lines once a topic exists, are sub-items of the
      current topic; an item equal to the previous item is dropped.
    - Any other line starts a topic unless it repeats the current topic.
    - Short unbulleted lines ending in ":" are preamble and skipped.
    """
    groups: List[_Group] = []
    current: Optional[_Group] = None

    def start(topic: str) -> Optional[_Group]:
        if not topic:
            return current
        if groups and groups[-1].topic == topic:
            return groups[-1]
        group = _Group(topic)
        groups.append(group)
        return group

    for raw in lines:
        line = raw.strip()
        if not line or EVIDENCE_PREAMBLE in line.lower() or _is_preamble(line):
            continue

        if line.startswith(TOP_BULLET):
            current = start(_clean_tail(line[1:].strip()))
        elif line.startswith(CHILD_BULLET) or (line.startswith("-") and current is not None):
            child = line[1:].strip()
            if not child:
                continue
            if current is None:
                current = start(child)
            elif not current.items or current.items[-1] != child:
                current.items.append(child)
        else:
            topic = _clean_tail(line.lstrip(_BULLET_CHARS).strip())
            if current is None or current.topic != topic:
                current = start(topic)

    return [EvidenceGroup(topic=g.topic, items=list(g.items)) for g in groups]
