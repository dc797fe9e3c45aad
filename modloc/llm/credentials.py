import keyring
import keyring.errors

from modloc.logger import get_logger

logger = get_logger(__name__)


class CredentialStore:
    """Provider API keys in the OS keyring."""

    _SERVICE_NAME = "modloc"

    def _credential_key(self, provider: str) -> str:
        return f"{provider}_api_key"

    def set_api_key(self, provider: str, api_key: str) -> None:
        keyring.set_password(self._SERVICE_NAME, self._credential_key(provider), api_key)
        logger.info(f"Stored API key for {provider}")

    def get_api_key(self, provider: str) -> str | None:
        return keyring.get_password(self._SERVICE_NAME, self._credential_key(provider))

    def has_api_key(self, provider: str) -> bool:
        return bool(self.get_api_key(provider))

    def delete_api_key(self, provider: str) -> None:
        try:
            keyring.delete_password(self._SERVICE_NAME, self._credential_key(provider))
            logger.info(f"Deleted API key for {provider}")
        except keyring.errors.PasswordDeleteError:
            pass
