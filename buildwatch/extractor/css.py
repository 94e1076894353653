"""CSS rule table recovery from a stylesheet asset."""

from __future__ import annotations

import logging

import tinycss2
from tinycss2.ast import Node, QualifiedRule
from tinycss2.serializer import serialize_identifier

from buildwatch.errors import MalformedAsset
from buildwatch.models.changes import CssRuleTable

logger = logging.getLogger(__name__)

_BRACKETS = {"[] block": ("[", "]"), "() block": ("(", ")"), "{} block": ("{", "}")}


def _compact(tokens: list[Node]) -> str:
    """Serialize ``tokens`` with each whitespace run outside strings reduced to one space.

    Leading and trailing whitespace is dropped at every nesting level. String
    and URL tokens keep their exact contents.
    """
    parts: list[str] = []
    pending_space = False
    for token in tokens:
        if token.type in ("whitespace", "comment"):
            pending_space = bool(parts)
            continue
        if pending_space:
            parts.append(" ")
            pending_space = False
        if token.type == "function":
            parts.append(f"{serialize_identifier(token.name)}({_compact(token.arguments)})")
        elif token.type in _BRACKETS:
            opening, closing = _BRACKETS[token.type]
            parts.append(f"{opening}{_compact(token.content)}{closing}")
        else:
            parts.append(token.serialize())
    return "".join(parts)


def _split_selectors(prelude: list[Node]) -> list[str]:
    """Split a rule prelude at top-level commas.

    Commas inside functional pseudo-classes such as ``:is(.a, .b)`` are nested
    in function tokens and do not split.
    """
    selectors: list[str] = []
    current: list[Node] = []
    for token in prelude + [None]:
        if token is None or (token.type == "literal" and token.value == ","):
            selector = _compact(current)
            if selector:
                selectors.append(selector)
            current = []
        else:
            current.append(token)
    return selectors


def _declarations(rule: QualifiedRule) -> dict[str, str]:
    """Flatten a rule's declaration block. A later same-named property wins.

    Custom properties (``--name``) are case-sensitive and keep their case.
    """
    properties: dict[str, str] = {}
    for node in tinycss2.parse_declaration_list(
        rule.content, skip_comments=True, skip_whitespace=True,
    ):
        if node.type != "declaration":
            continue
        value = _compact(node.value)
        if node.important:
            value = f"{value} !important"
        name = node.name if node.name.startswith("--") else node.lower_name
        properties[name] = value
    return properties


def parse_css_rules(text: str) -> CssRuleTable:
    """Map every selector of every top-level style rule to its declarations.

    At-rules (and the rules nested in them) are ignored. A rule listing
    several selectors contributes one entry per selector, each with its own
    copy of the declarations.
    """
    rules: CssRuleTable = {}
    errors = 0
    for node in tinycss2.parse_stylesheet(text, skip_comments=True, skip_whitespace=True):
        if node.type == "error":
            errors += 1
            logger.warning("Stylesheet parse error at %d:%d: %s", node.source_line, node.source_column, node.message)
            continue
        if node.type != "qualified-rule":
            continue
        properties = _declarations(node)
        for selector in _split_selectors(node.prelude):
            rules[selector] = dict(properties)

    if errors and not rules:
        raise MalformedAsset(f"Stylesheet could not be parsed ({errors} errors, no rules)")
    return rules
