"""Policy stores - where Group Policy settings for the toolkit are read from.

Group Policy deploys the toolkit's settings as registry values under
``SOFTWARE\\Policies\\ReSetToolkit`` in HKLM (computer scope) and HKCU
(user scope). Stores only read; deploying policy is not their job.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from reset_toolkit.core.config import Config, get_default_config
from reset_toolkit.core.exceptions import PolicyStoreError

logger = logging.getLogger("resettk.policy.store")

POLICY_KEY_PATH = "SOFTWARE\\Policies\\ReSetToolkit"


class PolicyScope(Enum):
    """Scope a policy value was deployed to."""

    COMPUTER = "computer"
    USER = "user"


class PolicyStore(ABC):
    """Abstract read-only policy store.

    Subclasses must implement:
        - read(): Return a named value or None when absent
        - exists(): Whether any policy is deployed for a scope
    """

    @abstractmethod
    def read(self, scope: PolicyScope, key: str) -> Any:
        """Read a policy value.

        Returns:
            The value, or None if it is not set.

        Raises:
            PolicyStoreError: If the store cannot be read.
        """

    @abstractmethod
    def exists(self, scope: PolicyScope) -> bool:
        """Return True if the scope's policy root exists.

        Raises:
            PolicyStoreError: If the store cannot be read. A store that is
                merely absent is not an error.
        """

    def describe(self) -> str:
        return self.__class__.__name__


class RegistryPolicyStore(PolicyStore):
    """Policy store backed by the Windows registry."""

    def __init__(self, key_path: str = POLICY_KEY_PATH) -> None:
        self.key_path = key_path

    def _hive(self, scope: PolicyScope) -> Any:
        import winreg

        if scope == PolicyScope.COMPUTER:
            return winreg.HKEY_LOCAL_MACHINE
        return winreg.HKEY_CURRENT_USER

    def read(self, scope: PolicyScope, key: str) -> Any:
        try:
            import winreg
        except ImportError as e:
            raise PolicyStoreError("winreg module not available") from e

        try:
            handle = winreg.OpenKey(self._hive(scope), self.key_path, 0, winreg.KEY_READ)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PolicyStoreError(f"Cannot open {scope.value} policy key: {e}") from e

        try:
            value, value_type = winreg.QueryValueEx(handle, key)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PolicyStoreError(f"Cannot read {scope.value} policy value {key}: {e}") from e
        finally:
            winreg.CloseKey(handle)

        if value_type == winreg.REG_MULTI_SZ:
            return list(value)
        return value

    def exists(self, scope: PolicyScope) -> bool:
        try:
            import winreg
        except ImportError as e:
            raise PolicyStoreError("winreg module not available") from e

        try:
            handle = winreg.OpenKey(self._hive(scope), self.key_path, 0, winreg.KEY_READ)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PolicyStoreError(f"Cannot open {scope.value} policy key: {e}") from e
        winreg.CloseKey(handle)
        return True

    def describe(self) -> str:
        return f"registry (HKLM/HKCU\\{self.key_path})"


def _lookup(values: dict[str, Any], key: str) -> Any:
    # Registry value names are case-insensitive; mirror that for dict stores
    if key in values:
        return values[key]
    lowered = key.lower()
    for name, value in values.items():
        if name.lower() == lowered:
            return value
    return None


class JsonPolicyStore(PolicyStore):
    """Policy store backed by a JSON file.

    The file holds ``computer`` and ``user`` objects. It is re-read on
    every call, so edits take effect on the next check.

    Example file:
        {
            "computer": {"MaintenanceWindow": "22-06", "DisallowedOperations": "Defender"},
            "user": {"DisallowedOperations": "Network"}
        }
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PolicyStoreError(f"Cannot read policy file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PolicyStoreError(f"Policy file {self.path} must contain a JSON object")
        return data

    def _scope(self, scope: PolicyScope) -> Optional[dict[str, Any]]:
        values = self._load().get(scope.value)
        if values is None:
            return None
        if not isinstance(values, dict):
            raise PolicyStoreError(f"Policy scope '{scope.value}' must be a JSON object")
        return values

    def read(self, scope: PolicyScope, key: str) -> Any:
        values = self._scope(scope)
        if values is None:
            return None
        return _lookup(values, key)

    def exists(self, scope: PolicyScope) -> bool:
        return self._scope(scope) is not None

    def describe(self) -> str:
        return f"file ({self.path})"


class MemoryPolicyStore(PolicyStore):
    """Dict-backed policy store, for staging and tests.

    A scope given as None does not exist; an empty dict exists but is empty.
    """

    def __init__(
        self,
        computer: Optional[dict[str, Any]] = None,
        user: Optional[dict[str, Any]] = None,
    ) -> None:
        self.scopes: dict[PolicyScope, Optional[dict[str, Any]]] = {
            PolicyScope.COMPUTER: computer,
            PolicyScope.USER: user,
        }

    def set(self, scope: PolicyScope, key: str, value: Any) -> None:
        if self.scopes[scope] is None:
            self.scopes[scope] = {}
        self.scopes[scope][key] = value

    def read(self, scope: PolicyScope, key: str) -> Any:
        values = self.scopes[scope]
        if values is None:
            return None
        return _lookup(values, key)

    def exists(self, scope: PolicyScope) -> bool:
        return self.scopes[scope] is not None


def create_policy_store(config: Optional[Config] = None) -> PolicyStore:
    """Create the policy store for this host.

    Windows hosts read Group Policy from the registry unless the config
    opts out; other hosts read the JSON policy file.
    """
    config = config or get_default_config()
    if os.name == "nt" and config.policy.use_registry:
        return RegistryPolicyStore()
    logger.debug(f"Using JSON policy file {config.policy_file}")
    return JsonPolicyStore(config.policy_file)
