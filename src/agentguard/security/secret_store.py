"""Secure storage for the LLM API key.

The store is backed by the platform keychain through ``keyring`` (macOS
Keychain, Windows Credential Manager, Secret Service on Linux). When no
usable keychain exists the store degrades to read-only environment lookup.
The backend is chosen once, when the store is created.

Secret values never reach the logger; only presence flags do.
"""

import os
import sys
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import keyring
from keyring.backend import KeyringBackend
from keyring.backends import fail, null
from keyring.errors import KeyringError, PasswordDeleteError

from agentguard.core.exceptions import (
    E_BACKEND_UNAVAILABLE,
    ConfigurationError,
    InvalidRequestError,
)
from agentguard.core.logger import GuardLogger

SERVICE_NAME = "dev-skin"
ACCOUNT_NAME = "llm-api-key"
FALLBACK_ENV_VARS = ("OPENAI_API_KEY", "LLM_API_KEY")


class SecretBackend(ABC):
    """Capability interface for where the credential lives."""

    name: ClassVar[str]

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether secure storage could be initialized."""
        ...

    @abstractmethod
    def get_secret(self) -> str | None: ...

    @abstractmethod
    def set_secret(self, secret: str) -> bool: ...

    @abstractmethod
    def delete_secret(self) -> bool: ...


class EnvironmentFallback(SecretBackend):
    """Read-only lookup of well-known environment variables."""

    name = "environment"

    def __init__(self, env_vars: tuple[str, ...] = FALLBACK_ENV_VARS) -> None:
        self.env_vars = env_vars

    @property
    def available(self) -> bool:
        return False

    def get_secret(self) -> str | None:
        for var in self.env_vars:
            if value := os.environ.get(var):
                return value
        return None

    def set_secret(self, secret: str) -> bool:
        return False

    def delete_secret(self) -> bool:
        return False


class NativeBackend(SecretBackend):
    """Platform keychain accessed through keyring."""

    name = "keyring"

    def __init__(
        self,
        keyring_backend: KeyringBackend,
        logger: GuardLogger,
        service: str = SERVICE_NAME,
        account: str = ACCOUNT_NAME,
    ) -> None:
        self._keyring = keyring_backend
        self._logger = logger
        self.service = service
        self.account = account

    @property
    def available(self) -> bool:
        return True

    def get_secret(self) -> str | None:
        try:
            return self._keyring.get_password(self.service, self.account)
        except KeyringError as e:
            self._logger.warn(
                "Keychain read failed", backend=_describe(self._keyring), error=str(e)
            )
            return None

    def set_secret(self, secret: str) -> bool:
        try:
            self._keyring.set_password(self.service, self.account, secret)
        except KeyringError as e:
            self._logger.warn(
                "Keychain write failed", backend=_describe(self._keyring), error=str(e)
            )
            return False
        return True

    def delete_secret(self) -> bool:
        try:
            self._keyring.delete_password(self.service, self.account)
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            self._logger.warn(
                "Keychain delete failed", backend=_describe(self._keyring), error=str(e)
            )
            return False
        return True


def _describe(backend: Any) -> str:
    return f"{type(backend).__module__}.{type(backend).__name__}"


def select_backend(
    logger: GuardLogger,
    keyring_backend: KeyringBackend | None = None,
    service: str = SERVICE_NAME,
    account: str = ACCOUNT_NAME,
) -> SecretBackend:
    """Check once for a usable keychain and pick the backend variant.

    A keychain counts as usable when keyring resolves a backend that is not
    one of its placeholder backends and reports a positive priority.
    """
    try:
        candidate = keyring_backend if keyring_backend is not None else keyring.get_keyring()
        priority = getattr(candidate, "priority", 1)
    except Exception as e:
        logger.warn("Keychain initialization failed, using environment fallback", error=str(e))
        return EnvironmentFallback()

    if isinstance(candidate, fail.Keyring | null.Keyring) or priority <= 0:
        logger.warn(
            "No usable keychain backend, using environment fallback",
            backend=_describe(candidate),
        )
        return EnvironmentFallback()

    logger.debug("Keychain backend selected", backend=_describe(candidate))
    return NativeBackend(candidate, logger, service=service, account=account)


class SecretStore:
    """Single-slot credential store with environment fallback.

    store/retrieve/delete are idempotent and last-writer-wins.
    """

    def __init__(
        self,
        logger: GuardLogger | None = None,
        backend: SecretBackend | None = None,
        keyring_backend: KeyringBackend | None = None,
    ) -> None:
        """Initialize the store and select its backend.

        Args:
            logger: Structured logger
            backend: Use this backend instead of probing
            keyring_backend: Check this keyring backend instead of keyring's default
        """
        self.logger = (logger or GuardLogger()).bind(component="secret_store")
        self._backend = backend or select_backend(self.logger, keyring_backend)
        self._fallback = EnvironmentFallback()

    @property
    def backend_name(self) -> str:
        return self._backend.name

    def is_backend_available(self) -> bool:
        """Whether secure storage initialized, regardless of a stored secret."""
        return self._backend.available

    def store(self, secret: str) -> bool:
        """Store the secret in the keychain.

        Returns:
            True if stored; False when the keychain is unavailable or failed

        Raises:
            InvalidRequestError: If secret is empty or not a string
        """
        if not isinstance(secret, str) or not secret.strip():
            raise InvalidRequestError("API key must be a non-empty string", field_name="secret")

        if not self._backend.available:
            self.logger.warn(
                "Keychain not available, key not stored",
                hint=f"set {FALLBACK_ENV_VARS[0]} instead",
            )
            return False

        stored = self._backend.set_secret(secret)
        if stored:
            self.logger.info("API key stored", backend=self._backend.name)
        return stored

    def retrieve(self) -> str | None:
        """Return the stored secret, else the first set fallback env var, else None."""
        if value := self._backend.get_secret():
            return value
        return self._fallback.get_secret()

    def delete(self) -> bool:
        """Delete the secret. False when there was nothing to delete."""
        deleted = self._backend.delete_secret()
        self.logger.info("API key delete requested", backend=self._backend.name, deleted=deleted)
        return deleted

    def has_secret(self) -> bool:
        return self.retrieve() is not None

    def require(self) -> str:
        """Return the secret or fail with a configuration error.

        Raises:
            ConfigurationError: If no secret is stored or set in the environment
        """
        value = self.retrieve()
        if value is None:
            raise ConfigurationError(
                "LLM API key not configured. Store it with 'agentguard key set' "
                f"or set the {FALLBACK_ENV_VARS[0]} environment variable.",
                error_code=None if self._backend.available else E_BACKEND_UNAVAILABLE,
                key=FALLBACK_ENV_VARS[0],
                reason="missing credential",
            )
        return value

    def status(self) -> dict[str, Any]:
        """Presence flags safe to include in a response body."""
        return {
            "keychainAvailable": self.is_backend_available(),
            "hasKey": self.has_secret(),
            "instructions": instructions(),
        }


def instructions(platform: str | None = None) -> str:
    """Describe where keys are stored on this platform and how to manage them."""
    platform = platform or sys.platform

    if platform == "darwin":
        return f"""macOS Keychain:
1. Keys are stored in macOS Keychain Access
2. View stored keys: Keychain Access app > search "{SERVICE_NAME}"
3. Delete key: use Keychain Access or run 'agentguard key delete'"""

    if platform == "win32":
        return f"""Windows Credential Manager:
1. Keys are stored in Windows Credential Manager
2. View: Control Panel > Credential Manager > Windows Credentials
3. Look for the "{SERVICE_NAME}" entry
4. Delete key: use Credential Manager or run 'agentguard key delete'"""

    return f"""Linux Secret Service:
1. Requires a Secret Service provider (GNOME Keyring, KWallet, ...)
2. Keys are stored via the Secret Service API under "{SERVICE_NAME}"
3. View: secret-tool search service {SERVICE_NAME}
4. Delete key: use secret-tool or run 'agentguard key delete'"""
