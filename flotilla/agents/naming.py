"""Canonical container names and reference resolution over the registry."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import List, Optional, Tuple

from ..errors import AmbiguousReferenceError, ConflictError, NotFoundError, ValidationError
from .registry import RESERVED_KEYS, AgentRecord, RegistryMap, agent_entries

UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")
ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def sanitize(value: Optional[str]) -> str:
    return UNSAFE_CHARS.sub("_", str(value or ""))


def canonical_name(base_identity: str, repo_name: str, prefix: str = "") -> str:
    """Deterministic container name for `(alias or agentName, repoName)`."""

    return f"{prefix}{sanitize(repo_name)}-{sanitize(base_identity)}"


@dataclass(frozen=True)
class AgentReference:
    name: str
    repo: Optional[str] = None

    @property
    def namespaced(self) -> bool:
        return self.repo is not None

    def __str__(self) -> str:
        return f"{self.repo}/{self.name}" if self.repo else self.name


def parse_reference(ref: str) -> AgentReference:
    """Split `name`, `repo/name` or `repo:name`."""

    text = str(ref or "").strip()
    if not text:
        raise ValidationError("Agent reference cannot be empty.")
    for separator in ("/", ":"):
        if separator in text:
            repo, _, name = text.partition(separator)
            repo, name = repo.strip(), name.strip()
            if not repo or not name:
                raise ValidationError(f"Malformed agent reference '{text}'.")
            return AgentReference(name=name, repo=repo)
    return AgentReference(name=text)


@dataclass
class Resolution:
    container_name: str
    record: AgentRecord


def find_candidates(entries: RegistryMap, ref: str) -> List[Tuple[str, AgentRecord]]:
    """All records `ref` could denote, most specific rule first."""

    text = str(ref or "").strip()
    records = agent_entries(entries)

    for key, record in records:
        if key == text:
            return [(key, record)]
    for key, record in records:
        if record.alias and record.alias == text:
            return [(key, record)]

    parsed = parse_reference(text)
    if parsed.namespaced:
        matches = [
            (key, record)
            for key, record in records
            if record.repo_name == parsed.repo and record.agent_name == parsed.name
        ]
        plain = [(key, record) for key, record in matches if not record.alias]
        return plain or matches
    return [
        (key, record)
        for key, record in records
        if record.agent_name == parsed.name and not record.alias
    ]


def reject_alias_only_matches(ref: str, candidates: List[Tuple[str, AgentRecord]]) -> None:
    """A `repo/name` reference never reports ambiguity.

    When the agent is enabled only under several aliases there is no
    canonical record to pick, so the caller is pointed at the aliases.
    """

    if len(candidates) < 2 or not parse_reference(ref).namespaced:
        return
    aliases = ", ".join(candidate_hints(candidates))
    raise ValidationError(
        f"Agent '{ref}' is only enabled under aliases: {aliases}. Refer to it by alias."
    )


def resolve_reference(entries: RegistryMap, ref: str) -> Resolution:
    candidates = find_candidates(entries, ref)
    if not candidates:
        raise NotFoundError(f"Agent '{ref}' is not enabled in this workspace.")
    reject_alias_only_matches(ref, candidates)
    if len(candidates) > 1:
        raise AmbiguousReferenceError(ref, candidate_hints(candidates))
    key, record = candidates[0]
    return Resolution(container_name=key, record=record)


def candidate_hints(candidates: List[Tuple[str, AgentRecord]]) -> List[str]:
    hints = []
    for _, record in candidates:
        hint = record.alias if record.alias else record.qualified_name
        if hint not in hints:
            hints.append(hint)
    return sorted(hints)


def validate_alias(alias: str, entries: RegistryMap) -> str:
    cleaned = str(alias or "").strip()
    if not ALIAS_PATTERN.match(cleaned):
        raise ValidationError(
            f"Invalid alias '{alias}'. Use letters, digits, '_', '.' or '-' "
            "and start with a letter or digit."
        )
    if cleaned in RESERVED_KEYS:
        raise ValidationError(f"Alias '{cleaned}' is reserved.")
    if cleaned in entries:
        raise ConflictError(f"Alias '{cleaned}' is already used by a registry entry.")
    for _, record in agent_entries(entries):
        if record.alias == cleaned:
            raise ConflictError(
                f"Alias '{cleaned}' is already used by agent '{record.qualified_name}'."
            )
    return cleaned


__all__ = [
    "ALIAS_PATTERN",
    "AgentReference",
    "Resolution",
    "candidate_hints",
    "canonical_name",
    "find_candidates",
    "parse_reference",
    "reject_alias_only_matches",
    "resolve_reference",
    "sanitize",
    "validate_alias",
]
