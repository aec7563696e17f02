"""GCP Secret Manager backend."""
import os
import re
import logging
import subprocess
from typing import Mapping, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import secretmanager

from ..domains.errors import InvalidProviderURI, ProviderUnavailable, ProviderWriteError
from ..domains.models import ProviderURI
from .base import Provider

logger = logging.getLogger(__name__)

# GCP Secret Manager allows only [a-zA-Z0-9_-]; everything else, "_" included,
# is written as _XX so "__" can only ever be the component separator
_ESCAPED_ID_CHARS = re.compile(r"[^a-zA-Z0-9-]")
ID_SEPARATOR = "__"

# Errors that mean the backend itself could not be consulted
_UNAVAILABLE_ERRORS = (
    gcp_exceptions.Unauthenticated,
    gcp_exceptions.ServiceUnavailable,
    gcp_exceptions.DeadlineExceeded,
    gcp_exceptions.RetryError,
)


def escape_id_component(part: str) -> str:
    """Escape one project/profile/key for use inside a secret id (``my_app`` -> ``my_5Fapp``)."""
    return _ESCAPED_ID_CHARS.sub(
        lambda m: "".join(f"_{byte:02X}" for byte in m.group(0).encode("utf-8")),
        part,
    )


def detect_project_id(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Get GCP project ID from the environment or gcloud.

    Priority order:
    1. GCP_PROJECT environment variable
    2. `gcloud config get-value project`

    Returns:
        Project ID string, or None if not found
    """
    gcp_project_env = (os.environ if environ is None else environ).get("GCP_PROJECT")
    if gcp_project_env:
        logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
        return gcp_project_env

    try:
        result = subprocess.run(
            ["gcloud", "config", "get-value", "project"],
            capture_output=True, text=True, check=True, timeout=30
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Failed to auto-detect GCP project id: {e}")
        return None

    return result.stdout.strip() or None


class GCPSecretManagerProvider(Provider):
    """
    Stores secrets in GCP Secret Manager.

    URI form: ``gcsm://<gcp-project-id>?credentials=/path/to/service-account.json``.
    Each secret is stored under the id ``{project}__{profile}__{key}``, each
    part escaped by ``escape_id_component`` so distinct triples never collide.
    """

    name = "gcsm"
    description = "Google Cloud Secret Manager"

    def __init__(self, uri: Optional[ProviderURI] = None, environ: Optional[Mapping[str, str]] = None):
        super().__init__(uri, environ)
        self.project_id = (uri.host if uri else None) or detect_project_id(self.environ)
        if not self.project_id:
            raise InvalidProviderURI(
                "GCP project id not found. Use gcsm://<project-id>, set the GCP_PROJECT "
                "environment variable, or run 'gcloud config set project <project-id>'"
            )
        self.credentials_path = uri.query.get("credentials") if uri else None
        if self.credentials_path and not os.path.isfile(self.credentials_path):
            raise InvalidProviderURI(f"Service account file not found at: {self.credentials_path}")
        self._client = None

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            try:
                if self.credentials_path:
                    self._client = secretmanager.SecretManagerServiceClient.from_service_account_file(
                        self.credentials_path
                    )
                else:
                    self._client = secretmanager.SecretManagerServiceClient()
            except Exception as e:
                raise ProviderUnavailable(self.name, f"Failed to create GCP client: {e}") from e
        return self._client

    def secret_id(self, project: str, profile: str, key: str) -> str:
        return ID_SEPARATOR.join(escape_id_component(part) for part in (project, profile, key))

    def get(self, project: str, profile: str, key: str) -> Optional[str]:
        secret_id = self.secret_id(project, profile, key)
        name = f"projects/{self.project_id}/secrets/{secret_id}/versions/latest"
        try:
            response = self.client.access_secret_version(request={"name": name})
        except gcp_exceptions.NotFound:
            return None
        except (gcp_exceptions.GoogleAPICallError, gcp_exceptions.RetryError) as e:
            raise ProviderUnavailable(self.name, f"GCP fetch failed for {secret_id}: {e}") from e
        return response.payload.data.decode("UTF-8")

    def set(self, project: str, profile: str, key: str, value: str) -> None:
        secret_id = self.secret_id(project, profile, key)
        parent = f"projects/{self.project_id}"
        try:
            try:
                self.client.create_secret(
                    request={
                        "parent": parent,
                        "secret_id": secret_id,
                        "secret": {"replication": {"automatic": {}}},
                    }
                )
                logger.info(f"Created GCP secret {secret_id}")
            except gcp_exceptions.AlreadyExists:
                pass

            self.client.add_secret_version(
                request={
                    "parent": f"{parent}/secrets/{secret_id}",
                    "payload": {"data": value.encode("UTF-8")},
                }
            )
        except _UNAVAILABLE_ERRORS as e:
            raise ProviderUnavailable(self.name, f"GCP write failed for {secret_id}: {e}") from e
        except gcp_exceptions.GoogleAPICallError as e:
            raise ProviderWriteError(self.name, f"GCP rejected write for {secret_id}: {e}") from e

    def allows_set(self) -> bool:
        return True
