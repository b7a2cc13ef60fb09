"""Registry: provider factories and lifecycle management."""

from __future__ import annotations

from typing import TYPE_CHECKING

from remote_ops._config import EngineConfig

if TYPE_CHECKING:
    from types import TracebackType

    from remote_ops._provider import StorageProvider

# Global provider factory registry: maps type strings to provider classes.
_PROVIDER_FACTORIES: dict[str, type[StorageProvider]] = {}


def register_provider(type_name: str, cls: type[StorageProvider]) -> None:
    """Register a provider class for a given type string.

    :param type_name: The type identifier (e.g. ``"local"``).
    :param cls: The provider class to instantiate.
    """
    _PROVIDER_FACTORIES[type_name] = cls


def _register_builtin_providers() -> None:
    """Register the built-in providers whose dependencies are installed."""
    from remote_ops.providers._local import LocalProvider

    _PROVIDER_FACTORIES.setdefault("local", LocalProvider)
    try:
        from remote_ops.providers._s3 import S3Provider

        _PROVIDER_FACTORIES.setdefault("s3", S3Provider)
    except ImportError:  # pragma: no cover
        pass
    try:
        from remote_ops.providers._sftp import SFTPProvider

        _PROVIDER_FACTORIES.setdefault("sftp", SFTPProvider)
    except ImportError:  # pragma: no cover
        pass


class Registry:
    """Creates providers from configuration and owns their lifecycle.

    :param config: Optional configuration. Validates immediately.
    :raises ValueError: If config is invalid.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        _register_builtin_providers()
        self._config = config or EngineConfig()
        self._config.validate()
        self._providers: dict[str, StorageProvider] = {}

    def __repr__(self) -> str:
        return f"Registry(providers={sorted(self._config.providers)!r})"

    @property
    def names(self) -> list[str]:
        return sorted(self._config.providers)

    def get_provider(self, name: str) -> StorageProvider:
        """Get the shared provider for a configured name, creating it on first use.

        :param name: The provider config name.
        :raises KeyError: If no provider with this name is configured.
        :raises ValueError: If the type is unknown or the options don't fit it.
        """
        if name not in self._providers:
            self._providers[name] = self.new_provider(name)
        return self._providers[name]

    def new_provider(self, name: str) -> StorageProvider:
        """Create an uncached provider, e.g. one per concurrent session.

        The caller owns the result and must close it.
        """
        if name not in self._config.providers:
            available = sorted(self._config.providers)
            raise KeyError(f"Unknown provider '{name}'. Available providers: {available}")
        cfg = self._config.providers[name]
        if cfg.type not in _PROVIDER_FACTORIES:
            raise ValueError(
                f"Unknown provider type '{cfg.type}'. Registered types: {sorted(_PROVIDER_FACTORIES)}"
            )
        factory = _PROVIDER_FACTORIES[cfg.type]
        options = dict(cfg.options)
        if cfg.retry is not None:
            options["retry"] = cfg.retry.to_policy()
        try:
            return factory(**options)
        except TypeError as exc:
            raise ValueError(
                f"Invalid options for provider '{name}' (type={cfg.type!r}): {exc}. "
                f"Provided options: {sorted(cfg.options)}"
            ) from exc

    def close(self) -> None:
        """Close all cached providers."""
        for provider in self._providers.values():
            provider.close()
        self._providers.clear()

    def __enter__(self) -> Registry:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
