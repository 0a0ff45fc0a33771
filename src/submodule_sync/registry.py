from collections.abc import Iterable, Iterator
from types import MappingProxyType

from .config import ConfigError, SubmoduleBinding


class SubmoduleRegistry:
    """Read-only index of monitored submodules keyed by repository name.

    Built once from configuration; the mapping cannot be modified afterwards.
    """

    def __init__(self, bindings: Iterable[SubmoduleBinding]):
        """Indexes the bindings by submodule repository name.

        Args:
            bindings (Iterable[SubmoduleBinding]): Bindings in configuration order.

        Raises:
            ConfigError: If two bindings monitor the same submodule repository.
        """
        index: dict[str, SubmoduleBinding] = {}
        for binding in bindings:
            if binding.repo in index:
                raise ConfigError(
                    f"Submodule repository '{binding.repo}' is configured more than once"
                )
            index[binding.repo] = binding
        self._bindings = MappingProxyType(index)

    def lookup(self, repo_name: str) -> SubmoduleBinding | None:
        """Returns the binding for a submodule repository, or None if unmonitored."""
        return self._bindings.get(repo_name)

    def __contains__(self, repo_name: object) -> bool:
        return repo_name in self._bindings

    def __iter__(self) -> Iterator[SubmoduleBinding]:
        return iter(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)
