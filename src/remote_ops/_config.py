"""Configuration model: immutable data containers describing providers."""

from __future__ import annotations

import dataclasses
from typing import Any

from remote_ops._retry import RetryPolicy


@dataclasses.dataclass(frozen=True)
class RetryConfig:
    """Retry settings for one provider.

    :param max_attempts: Total attempts including the first call.
    :param initial_delay: Seconds before the first retry.
    :param max_delay: Upper bound for any single wait.
    :param backoff_multiplier: Factor applied after each retry.
    """

    max_attempts: int = 3
    initial_delay: float = 0.1
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def to_policy(self, base: RetryPolicy | None = None) -> RetryPolicy:
        """Build a :class:`RetryPolicy`, keeping ``base``'s retry predicate if given."""
        if base is None:
            base = RetryPolicy()
        return dataclasses.replace(
            base,
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryConfig:
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown retry options: {unknown}. Allowed: {sorted(known)}")
        return cls(**data)


@dataclasses.dataclass(frozen=True)
class ProviderConfig:
    """Describes a provider instance.

    :param type: Provider type identifier (e.g. ``"local"``, ``"s3"``).
    :param options: Provider-specific constructor options.
    :param retry: Retry override; the provider default applies when ``None``.
    """

    type: str
    options: dict[str, object] = dataclasses.field(default_factory=dict)
    retry: RetryConfig | None = None


@dataclasses.dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration container.

    :param providers: Mapping of provider names to their configs.
    """

    providers: dict[str, ProviderConfig] = dataclasses.field(default_factory=dict)

    def validate(self) -> None:
        """Validate provider names and types.

        :raises ValueError: If a name or type is empty, or a retry setting is out of range.
        """
        for name, cfg in self.providers.items():
            if not name.strip():
                raise ValueError("Provider names must be non-empty")
            if not cfg.type.strip():
                raise ValueError(f"Provider '{name}' has an empty type")
            if cfg.retry is not None:
                try:
                    cfg.retry.to_policy()
                except ValueError as exc:
                    raise ValueError(f"Invalid retry settings for provider '{name}': {exc}") from exc

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> EngineConfig:
        """Construct from a plain dict (e.g. parsed TOML/JSON).

        :param data: Dict with a ``providers`` key.
        """
        raw_providers = data.get("providers", {})
        if not isinstance(raw_providers, dict):
            msg = "Expected 'providers' to be a dict"
            raise TypeError(msg)

        providers: dict[str, ProviderConfig] = {}
        for name, cfg in raw_providers.items():
            if not isinstance(cfg, dict):
                msg = f"Provider config for '{name}' must be a dict"
                raise TypeError(msg)
            raw_retry = cfg.get("retry")
            if raw_retry is not None and not isinstance(raw_retry, dict):
                msg = f"Retry config for '{name}' must be a dict"
                raise TypeError(msg)
            providers[str(name)] = ProviderConfig(
                type=str(cfg["type"]),
                options=dict(cfg.get("options", {})),
                retry=RetryConfig.from_dict(raw_retry) if raw_retry is not None else None,
            )

        return cls(providers=providers)
