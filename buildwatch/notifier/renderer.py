"""Renders build differences into chat messages made of Discord-style embeds."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Sequence, TypeVar

from buildwatch.differ.comparator import total_change_count
from buildwatch.differ.differ import diff_mappings
from buildwatch.models.build import BuildManifest, Experiment
from buildwatch.models.changes import BuildDifferences, ChangedValue, ChangeSet
from buildwatch.models.config import NotificationConfig

T = TypeVar("T")

COLOR_ADDED = 0x4DAC68
COLOR_REMOVED = 0xFC4130
COLOR_UPDATED = 0xF0B232
COLOR_INFO = 0x5865F2

_TRUNCATION_SUFFIX = "\n...```"

# Discord limits
MAX_MESSAGE_EMBED_CHARS = 6000
MAX_EMBED_FIELDS = 25
MAX_TITLE_LENGTH = 256
MAX_FIELD_NAME_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 4096


@dataclass
class ChatMessage:
    content: str = ""
    embeds: list[dict[str, Any]] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"embeds": self.embeds}
        if self.content:
            payload["content"] = self.content
        return payload


def batch(
    items: Sequence[T],
    size: int,
    budget: Optional[int] = None,
    weight: Callable[[T], int] = lambda item: 1,
) -> Iterator[list[T]]:
    """Split ``items`` into consecutive groups of at most ``size``.

    With a ``budget``, a group is also closed before the summed ``weight`` of
    its items would exceed it. An item heavier than the budget on its own
    still gets a group of its own.
    """
    group: list[T] = []
    used = 0
    for item in items:
        cost = weight(item)
        if group and (len(group) >= size or (budget is not None and used + cost > budget)):
            yield group
            group, used = [], 0
        group.append(item)
        used += cost
    if group:
        yield group


def embed_size(embed: dict[str, Any]) -> int:
    """Characters Discord counts against the per-message embed total."""
    size = len(embed.get("title", "")) + len(embed.get("description", ""))
    size += len(embed.get("footer", {}).get("text", ""))
    size += len(embed.get("author", {}).get("name", ""))
    for f in embed.get("fields", []):
        size += len(f["name"]) + len(f["value"])
    return size


def _fit_fields(embed: dict[str, Any]) -> dict[str, Any]:
    """Drop trailing fields until the embed fits in one message on its own."""
    fields = embed.get("fields", [])[:MAX_EMBED_FIELDS]
    remaining = MAX_MESSAGE_EMBED_CHARS - embed_size({**embed, "fields": []})
    kept = []
    for f in fields:
        cost = len(f["name"]) + len(f["value"])
        if cost > remaining:
            break
        kept.append(f)
        remaining -= cost
    return {**embed, "fields": kept}


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _field(name: str, value: str, limit: int, inline: bool = False) -> dict[str, Any]:
    if len(value) > limit:
        value = value[: limit - len(_TRUNCATION_SUFFIX)] + _TRUNCATION_SUFFIX
    return {"name": _truncate(name, MAX_FIELD_NAME_LENGTH), "value": value, "inline": inline}


def _code_block(language: str, lines: Sequence[str]) -> str:
    return f"```{language}\n" + "\n".join(lines) + "```"


def _role_mention(role_id: Optional[str]) -> str:
    return f"<@&{role_id}>" if role_id else ""


def _format_value(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


class MessageRenderer:
    """Turns one build's differences into an ordered list of chat messages."""

    def __init__(self, config: NotificationConfig, release_channel: str = "Canary"):
        self.config = config
        self.release_channel = release_channel

    def _fields(self, name: str, lines: list[str]) -> list[dict[str, Any]]:
        if not lines:
            return []
        return [_field(name, _code_block("diff", lines), self.config.max_field_length)]

    def _keyed_change_fields(self, changes: ChangeSet) -> list[dict[str, Any]]:
        added = [f'+ {key}: "{_format_value(v)}"' for key, v in changes.added.items()]
        updated = []
        for key, change in changes.updated.items():
            updated.append(f'- {key}: "{_format_value(change.old_value)}"')
            updated.append(f'+ {key}: "{_format_value(change.new_value)}"')
        removed = [f'- {key}: "{_format_value(v)}"' for key, v in changes.removed.items()]
        return (
            self._fields("Added", added)
            + self._fields("Updated", updated)
            + self._fields("Removed", removed)
        )

    def summary_embed(self, build: BuildManifest, differences: BuildDifferences) -> dict[str, Any]:
        date = build.created_at
        return {
            "title": (
                f"{date.strftime('%d %B %Y')} - {build.build_hash} "
                f"({self.release_channel} build: {build.build_number})"
            ),
            "description": (
                f"This build has a total of {total_change_count(differences)} notable changes."
            ),
            "timestamp": date.isoformat(),
            "color": COLOR_INFO,
        }

    def keyed_domain_message(
        self, title: str, noun: str, changes: ChangeSet, role_id: Optional[str]
    ) -> ChatMessage:
        embed = {
            "title": title,
            "description": f"This build has a total of {changes.count} changes to {noun}.",
            "fields": self._keyed_change_fields(changes),
        }
        return ChatMessage(content=_role_mention(role_id), embeds=[embed])

    def csp_embed(self, change: ChangedValue[str]) -> dict[str, Any]:
        limit = self.config.max_field_length
        return {
            "title": "Content Security Policy Changed",
            "color": COLOR_UPDATED,
            "fields": [
                _field("Old", _code_block("", [change.old_value]), limit),
                _field("New", _code_block("", [change.new_value]), limit),
            ],
        }

    def experiment_embed(self, verb: str, color: int, experiment: Experiment) -> dict[str, Any]:
        limit = self.config.max_field_length
        fields = [
            _field(
                "Default Config",
                _code_block("json", [json.dumps(experiment.default_config, indent=2)]),
                limit,
            )
        ]
        for treatment in experiment.treatments:
            fields.append(_field(
                f"Treatment {treatment.id}: {treatment.label}",
                _code_block("json", [json.dumps(treatment.config, indent=2)]),
                limit,
            ))
        return _fit_fields({
            "title": _truncate(f"Experiment {verb}: {experiment.label}", MAX_TITLE_LENGTH),
            "description": f"ID: `{experiment.id}`\nKind: `{experiment.kind}`",
            "color": color,
            "fields": fields,
        })

    def css_rule_embed(self, verb: str, color: int, selector: str, lines: list[str]) -> dict[str, Any]:
        return {
            "title": f"CSS Rule {verb}",
            "description": _truncate(f"`{selector}`", MAX_DESCRIPTION_LENGTH),
            "color": color,
            "fields": [
                _field("Declarations", _code_block("diff", lines), self.config.max_field_length)
            ],
        }

    def css_rule_embeds(self, changes: ChangeSet) -> list[dict[str, Any]]:
        embeds = []
        for selector, properties in changes.added.items():
            lines = [f"+ {name}: {value};" for name, value in properties.items()]
            embeds.append(self.css_rule_embed("Added", COLOR_ADDED, selector, lines))
        for selector, change in changes.updated.items():
            # Property level breakdown of a changed declaration block
            properties = diff_mappings(change.new_value, change.old_value)
            lines = [f"+ {name}: {value};" for name, value in properties.added.items()]
            for name, value in properties.updated.items():
                lines.append(f"- {name}: {value.old_value};")
                lines.append(f"+ {name}: {value.new_value};")
            lines.extend(f"- {name}: {value};" for name, value in properties.removed.items())
            embeds.append(self.css_rule_embed("Updated", COLOR_UPDATED, selector, lines))
        for selector, properties in changes.removed.items():
            lines = [f"- {name}: {value};" for name, value in properties.items()]
            embeds.append(self.css_rule_embed("Removed", COLOR_REMOVED, selector, lines))
        return embeds

    def _itemized(
        self, header: dict[str, Any], role_id: Optional[str], embeds: list[dict[str, Any]]
    ) -> list[ChatMessage]:
        messages = [ChatMessage(content=_role_mention(role_id), embeds=[header])]
        for group in batch(
            embeds, self.config.embeds_per_message,
            budget=MAX_MESSAGE_EMBED_CHARS, weight=embed_size,
        ):
            messages.append(ChatMessage(embeds=group))
        return messages

    def render(self, build: BuildManifest, differences: BuildDifferences) -> list[ChatMessage]:
        """Render all messages for one build, summary first."""
        config = self.config
        messages = [ChatMessage(embeds=[self.summary_embed(build, differences)])]

        if not differences.global_envs.is_empty:
            messages.append(self.keyed_domain_message(
                "Global Env Changes", "the global env",
                differences.global_envs, config.global_env_role_id,
            ))

        if differences.csp is not None:
            messages.append(ChatMessage(
                content=_role_mention(config.global_env_role_id),
                embeds=[self.csp_embed(differences.csp)],
            ))

        if not differences.strings.is_empty:
            messages.append(self.keyed_domain_message(
                "String Changes", "strings", differences.strings, config.strings_role_id,
            ))

        if not differences.experiments.is_empty:
            header = {
                "title": "Experiment Changes",
                "description": (
                    f"This build has a total of {differences.experiments.count} "
                    "changes to experiments."
                ),
            }
            embeds = [
                self.experiment_embed("Added", COLOR_ADDED, experiment)
                for experiment in differences.experiments.added.values()
            ] + [
                self.experiment_embed("Removed", COLOR_REMOVED, experiment)
                for experiment in differences.experiments.removed.values()
            ]
            messages.extend(self._itemized(header, config.experiments_role_id, embeds))

        if not differences.css_rules.is_empty:
            header = {
                "title": "CSS Changes",
                "description": (
                    f"This build has a total of {differences.css_rules.count} "
                    "changes to CSS rules."
                ),
            }
            messages.extend(self._itemized(
                header, config.css_role_id, self.css_rule_embeds(differences.css_rules),
            ))

        return messages


def render_build(
    build: BuildManifest,
    differences: BuildDifferences,
    config: NotificationConfig,
    release_channel: str = "Canary",
) -> list[ChatMessage]:
    return MessageRenderer(config, release_channel).render(build, differences)
