"""Persona configuration: one validated, immutable dataclass per agent role."""

import logging
from dataclasses import dataclass, fields
from typing import Any, ClassVar

from writers_room.errors import ValidationError
from writers_room.models import AgentRole

logger = logging.getLogger(__name__)

_TUPLE_FIELDS = {"traits", "goals", "constraints", "genres", "focus_areas", "criteria"}


@dataclass(frozen=True)
class Persona:
    id: str
    name: str
    system_prompt: str
    tone: str = "neutral"
    traits: tuple[str, ...] = ()
    goals: tuple[str, ...] = ()
    constraints: tuple[str, ...] = ()
    model: str | None = None  # None: use the runtime's default model
    temperature: float = 0.7
    max_tokens: int = 1000

    role: ClassVar[AgentRole]

    @property
    def is_mediator(self) -> bool:
        return self.role is AgentRole.MEDIATOR

    def guidance(self) -> list[str]:
        """Role-specific lines appended to the system prompt."""
        return []


@dataclass(frozen=True)
class WriterPersona(Persona):
    role: ClassVar[AgentRole] = AgentRole.WRITER
    genres: tuple[str, ...] = ()
    creativity: float = 0.8

    def guidance(self) -> list[str]:
        lines = []
        if self.genres:
            lines.append(f"Genres you write in: {', '.join(self.genres)}.")
        if self.creativity >= 0.7:
            lines.append("Favour bold, surprising ideas over safe ones.")
        return lines


@dataclass(frozen=True)
class EditorPersona(Persona):
    role: ClassVar[AgentRole] = AgentRole.EDITOR
    focus_areas: tuple[str, ...] = ()

    def guidance(self) -> list[str]:
        if not self.focus_areas:
            return []
        return [f"Concentrate your feedback on: {', '.join(self.focus_areas)}."]


@dataclass(frozen=True)
class ProofreaderPersona(Persona):
    role: ClassVar[AgentRole] = AgentRole.PROOFREADER
    style_guide: str | None = None
    strictness: float = 0.5

    def guidance(self) -> list[str]:
        lines = []
        if self.style_guide:
            lines.append(f"Check consistency against this style guide: {self.style_guide}.")
        if self.strictness >= 0.7:
            lines.append("Flag every inconsistency, however small.")
        return lines


@dataclass(frozen=True)
class MediatorPersona(Persona):
    role: ClassVar[AgentRole] = AgentRole.MEDIATOR
    acceptance_threshold: float = 65.0
    criteria: tuple[str, ...] = ()

    def guidance(self) -> list[str]:
        lines = [
            "You speak last in every round. Weigh the other participants' points, "
            "then give an 'Overall score: N' out of 100 and a recommendation of "
            "accept, revise or reject.",
            f"Recommend accept only when the overall score is at least {self.acceptance_threshold:g}.",
        ]
        if self.criteria:
            lines.append(f"Score against: {', '.join(self.criteria)}.")
        return lines


PERSONA_TYPES: dict[AgentRole, type[Persona]] = {
    AgentRole.WRITER: WriterPersona,
    AgentRole.EDITOR: EditorPersona,
    AgentRole.PROOFREADER: ProofreaderPersona,
    AgentRole.MEDIATOR: MediatorPersona,
}

_UNIT_RANGE_FIELDS = {"creativity", "strictness"}


def build_persona(raw: dict[str, Any]) -> Persona:
    """Validate a raw persona mapping (from settings.yaml) and build its dataclass.

    Raises:
        ValidationError: unknown role, unknown keys, missing or out-of-range values.
    """
    raw = dict(raw)
    role_value = raw.pop("role", None)
    try:
        role = AgentRole(role_value)
    except ValueError as exc:
        raise ValidationError(f"Unknown persona role: {role_value!r}") from exc
    if role not in PERSONA_TYPES:
        raise ValidationError(f"Role {role.value!r} cannot be configured as a persona")

    cls = PERSONA_TYPES[role]
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise ValidationError(f"Unknown {role.value} persona fields: {', '.join(unknown)}")

    for required in ("id", "name", "system_prompt"):
        value = raw.get(required)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"Persona field '{required}' must be a non-empty string")

    for key in _TUPLE_FIELDS & set(raw):
        value = raw[key]
        if isinstance(value, str):
            value = [value]
        raw[key] = tuple(str(v) for v in value or ())

    temperature = float(raw.get("temperature", 0.7))
    if not 0.0 <= temperature <= 2.0:
        raise ValidationError(f"Persona {raw['id']}: temperature must be within 0..2")
    max_tokens = int(raw.get("max_tokens", 1000))
    if max_tokens <= 0:
        raise ValidationError(f"Persona {raw['id']}: max_tokens must be positive")
    for key in _UNIT_RANGE_FIELDS & set(raw):
        if not 0.0 <= float(raw[key]) <= 1.0:
            raise ValidationError(f"Persona {raw['id']}: {key} must be within 0..1")
    if "acceptance_threshold" in raw and not 0.0 <= float(raw["acceptance_threshold"]) <= 100.0:
        raise ValidationError(f"Persona {raw['id']}: acceptance_threshold must be within 0..100")

    persona = cls(**raw)
    logger.debug("Built %s persona %s", role.value, persona.id)
    return persona


def build_personas(raw_list: list[dict[str, Any]]) -> list[Persona]:
    """Build all personas, rejecting duplicate ids and more than one mediator."""
    personas = [build_persona(raw) for raw in raw_list]
    ids = [p.id for p in personas]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate persona ids: {', '.join(duplicates)}")
    if sum(1 for p in personas if p.is_mediator) > 1:
        raise ValidationError("At most one mediator persona may be configured")
    return personas
