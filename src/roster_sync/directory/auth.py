from google.auth.transport.requests import Request
from google.oauth2 import service_account


class DirectoryAuth:
    """Acquires access tokens for the Admin SDK with a delegated service account.

    The service account needs domain-wide delegation in the Admin console
    for the scopes below, and ``delegated_user`` must be a super admin.
    """

    SCOPES = [
        "https://www.googleapis.com/auth/admin.directory.user",
        "https://www.googleapis.com/auth/admin.directory.orgunit",
        "https://www.googleapis.com/auth/admin.directory.device.chromeos",
    ]

    def __init__(self, key_file: str, delegated_user: str):
        try:
            credentials = service_account.Credentials.from_service_account_file(
                key_file, scopes=self.SCOPES
            )
        except FileNotFoundError:
            raise RuntimeError(f"Service account key file not found: {key_file}") from None
        except ValueError as e:
            raise RuntimeError(f"Failed to load service account key: {e}") from e
        self._credentials = credentials.with_subject(delegated_user)

    def get_token(self) -> str:
        """Return a valid access token, refreshing it when it has expired."""
        if not self._credentials.valid:
            self._credentials.refresh(Request())
        return self._credentials.token
