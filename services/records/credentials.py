"""At-rest encryption for third-party portal credentials.

Credentials are encrypted at the application layer with Fernet symmetric
encryption before they reach the ``account_connections`` table, and only
decrypted in memory when a browser automation run needs them.
"""

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from services.records.schema import AccountConnection, ConnectionProvider, PortalCredentials
from services.shared.config import Settings
from services.shared.exceptions import ConfigurationError


class CredentialVault:
    """Seals and opens ``PortalCredentials`` with the configured Fernet key."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._fernet: Fernet | None = None

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            key = self.settings.credentials_encryption_key
            if not key:
                raise ConfigurationError(
                    "Credentials encryption key not configured. "
                    "Set APP_CREDENTIALS_ENCRYPTION_KEY environment variable."
                )
            try:
                self._fernet = Fernet(key.encode())
            except ValueError as e:
                raise ConfigurationError(f"Invalid credentials encryption key: {e}") from e
        return self._fernet

    def seal(self, credentials: PortalCredentials) -> str:
        """Encrypt credentials into a token suitable for storage."""
        payload = credentials.model_dump_json(exclude_none=True).encode()
        return self._get_fernet().encrypt(payload).decode()

    def open(self, connection: AccountConnection) -> PortalCredentials:
        """Decrypt the credentials stored on a connection.

        Raises:
            ConfigurationError: If the token cannot be decrypted with the current key
        """
        try:
            payload = self._get_fernet().decrypt(connection.credentials.encode())
            return PortalCredentials.model_validate_json(payload)
        except (InvalidToken, ValidationError) as e:
            raise ConfigurationError(
                f"Stored {connection.provider.value} credentials could not be decrypted"
            ) from e

    def connection_for(
        self, user_id: str, provider: ConnectionProvider, credentials: PortalCredentials
    ) -> AccountConnection:
        return AccountConnection(
            user_id=user_id, provider=provider, credentials=self.seal(credentials)
        )
