from unsealer.errors import AuthError
from unsealer.logger import get_logger

log = get_logger("Credentials")


class FileCredentialProvider:
    """Liest das Service-Account-JWT, das Kubernetes in den Pod mountet."""

    def __init__(self, path: str):
        self.path = path

    def read_token(self) -> str:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                jwt = f.read().strip()
        except OSError as e:
            raise AuthError(f"JWT nicht lesbar ({self.path}): {e}", stage="credentials") from e

        if not jwt:
            raise AuthError(f"JWT-Datei ist leer: {self.path}", stage="credentials")

        log.debug(f"JWT gelesen aus {self.path}")
        return jwt
