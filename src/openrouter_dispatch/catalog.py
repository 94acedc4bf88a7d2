from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

from .errors import ConfigurationError


class ModelRole(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    CHEAP = "cheap"
    ALTERNATIVE = "alternative"


DEFAULT_MODELS: dict[ModelRole, str] = {
    ModelRole.PRIMARY: "openai/gpt-4o",
    ModelRole.FALLBACK: "openai/gpt-4o-mini",
    ModelRole.CHEAP: "openai/gpt-3.5-turbo",
    ModelRole.ALTERNATIVE: "anthropic/claude-3-haiku",
}


class ModelCatalog:
    """
    Read-only mapping from logical role to concrete model identifier.

    Fallback is only enabled when a fallback model is configured and it
    differs from the primary one.
    """

    def __init__(self, models: Mapping[ModelRole | str, str | None]):
        roles: dict[ModelRole, str] = {}
        for role in ModelRole:
            value = (models.get(role, models.get(role.value)) or "").strip()
            if value:
                roles[role] = value
        if not roles.get(ModelRole.PRIMARY):
            raise ConfigurationError("A primary model must be configured.")
        self._models = MappingProxyType(roles)

    @classmethod
    def default(cls) -> "ModelCatalog":
        return cls(DEFAULT_MODELS)

    @property
    def models(self) -> Mapping[ModelRole, str]:
        return self._models

    @property
    def primary(self) -> str:
        return self._models[ModelRole.PRIMARY]

    @property
    def fallback(self) -> str | None:
        model = self._models.get(ModelRole.FALLBACK)
        if not model or model == self.primary:
            return None
        return model

    @property
    def fallback_enabled(self) -> bool:
        return self.fallback is not None

    def resolve(self, model: str | None) -> str:
        if model is None or not model.strip():
            return self.primary
        name = model.strip()
        try:
            role = ModelRole(name.lower())
        except ValueError:
            return name
        resolved = self._models.get(role)
        if resolved is None:
            raise ConfigurationError(f"No model configured for role {role.value!r}.")
        return resolved

    def role_of(self, model: str) -> str:
        """Catalog role serving `model`, or "other" for passthrough identifiers."""
        for role, configured in self._models.items():
            if configured == model:
                return role.value
        return "other"

    def fallback_for(self, model: str) -> str | None:
        if model != self.primary:
            return None
        return self.fallback

    def attempt_plan(self, model: str) -> list[str]:
        plan = [model]
        fallback = self.fallback_for(model)
        if fallback is not None:
            plan.append(fallback)
        return plan
