"""
Credential payloads and source readers for GA4 authentication.

Each reader probes a single credential location and returns a typed
CredentialMatch, or None when that location does not apply. A missing file,
unreadable JSON or a payload with missing fields is "not this source",
never an error.

Credential locations:
- GA4_* environment variables (full OAuth or access token only)
- ~/.ga4-mcp/tokens.json (full OAuth or access token only)
- ~/.claude/mcp-tokens/google.json (shared access token)
- ~/.gtm-mcp/access-token.json (legacy GTM access token)
- GOOGLE_APPLICATION_CREDENTIALS / gcloud ADC file (authorized_user)
- GA4_SERVICE_ACCOUNT_JSON, GOOGLE_APPLICATION_CREDENTIALS,
  ~/.ga4-mcp/credentials.json, Credential folder (service account)
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ...core.config import settings

logger = logging.getLogger(__name__)

GA4_SCOPES = ["https://www.googleapis.com/auth/analytics.readonly"]

# Environment variables consumed by the readers
ENV_ACCESS_TOKEN = "GA4_ACCESS_TOKEN"
ENV_REFRESH_TOKEN = "GA4_REFRESH_TOKEN"
ENV_CLIENT_ID = "GA4_CLIENT_ID"
ENV_CLIENT_SECRET = "GA4_CLIENT_SECRET"
ENV_SERVICE_ACCOUNT_JSON = "GA4_SERVICE_ACCOUNT_JSON"
ENV_GOOGLE_APPLICATION_CREDENTIALS = "GOOGLE_APPLICATION_CREDENTIALS"


class AuthMode(str, Enum):
    """How the active session authenticates."""
    OAUTH = "oauth"
    ADC = "adc"
    SERVICE_ACCOUNT = "service_account"
    ACCESS_TOKEN = "access-token"


NonEmptyStr = Annotated[str, Field(min_length=1)]


class OAuthCredential(BaseModel):
    """Refreshable OAuth user credential. Unknown fields are kept for persistence."""

    model_config = ConfigDict(extra="allow")

    access_token: Optional[str] = None
    refresh_token: NonEmptyStr
    client_id: NonEmptyStr
    client_secret: NonEmptyStr
    expiry_date: Optional[int] = Field(default=None, description="Expiry as epoch milliseconds")
    token_uri: Optional[str] = None

    def expires_at(self) -> Optional[datetime]:
        """Expiry as an aware UTC datetime, from expiry_date or an ISO 'expiry' field."""
        if self.expiry_date:
            return datetime.fromtimestamp(self.expiry_date / 1000, tz=timezone.utc)
        expiry = getattr(self, "expiry", None)
        if isinstance(expiry, str) and expiry:
            try:
                parsed = datetime.fromisoformat(expiry.replace("Z", "+00:00"))
            except ValueError:
                return None
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        return None


class AccessTokenCredential(BaseModel):
    """Bare access token without refresh capability."""

    access_token: NonEmptyStr


class ADCCredential(BaseModel):
    """gcloud-issued Application Default Credentials for an end user."""

    model_config = ConfigDict(extra="allow")

    type: Literal["authorized_user"]
    client_id: NonEmptyStr
    client_secret: NonEmptyStr
    refresh_token: NonEmptyStr


class ServiceAccountCredential(BaseModel):
    """Service account key, authorized with a signed JWT."""

    model_config = ConfigDict(extra="allow")

    client_email: NonEmptyStr
    private_key: NonEmptyStr
    project_id: Optional[str] = None
    token_uri: str = "https://oauth2.googleapis.com/token"


Credential = Union[OAuthCredential, AccessTokenCredential, ADCCredential, ServiceAccountCredential]

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class CredentialMatch:
    """A credential payload together with where it was found."""
    credential: Credential
    source: str
    path: Optional[Path] = None


@dataclass(frozen=True)
class CredentialPaths:
    """Filesystem locations probed for credentials."""

    shared_token: Path
    gtm_token: Path
    oauth_token: Path
    service_account_config: Path
    adc_default: Path
    credential_folder: Path

    @classmethod
    def from_home(cls, home: Path, credential_folder: Path) -> "CredentialPaths":
        return cls(
            shared_token=home / ".claude" / "mcp-tokens" / "google.json",
            gtm_token=home / ".gtm-mcp" / "access-token.json",
            oauth_token=home / ".ga4-mcp" / "tokens.json",
            service_account_config=home / ".ga4-mcp" / "credentials.json",
            adc_default=home / ".config" / "gcloud" / "application_default_credentials.json",
            credential_folder=credential_folder,
        )

    @classmethod
    def from_settings(cls) -> "CredentialPaths":
        return cls.from_home(settings.home_dir, settings.credential_folder)

    @property
    def access_token_files(self) -> tuple:
        """Access-token-only files in priority order (shared > GTM > GA4)."""
        return (self.shared_token, self.gtm_token, self.oauth_token)


def parse_credential(model: Type[ModelT], data: Any) -> Optional[ModelT]:
    """
    Attempt a structured parse of a credential payload.

    Returns:
        Parsed model, or None if the payload does not have that shape
    """
    if not isinstance(data, Mapping):
        return None
    try:
        return model.model_validate(dict(data))
    except ValidationError:
        return None


def load_json_file(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    """Read a JSON object from disk, returning None if absent or invalid."""
    if path is None or not path.is_file():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.debug(f"Ignoring unreadable credential file {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def _env_path(env: Mapping[str, str], name: str) -> Optional[Path]:
    value = env.get(name)
    return Path(value).expanduser() if value else None


def _has_full_oauth(data: Mapping[str, Any]) -> bool:
    return all(data.get(key) for key in ("refresh_token", "client_id", "client_secret"))


def find_credential_in_folder(folder: Path) -> Optional[Path]:
    """Return the first .json file (by name) in the credentials folder."""
    if not folder.is_dir():
        return None
    try:
        candidates = sorted(p for p in folder.iterdir() if p.suffix == ".json" and p.is_file())
    except OSError:
        return None
    return candidates[0] if candidates else None


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------

def read_oauth_from_env(env: Mapping[str, str]) -> Optional[CredentialMatch]:
    """Full OAuth set from GA4_ACCESS_TOKEN/REFRESH_TOKEN/CLIENT_ID/CLIENT_SECRET."""
    if not env.get(ENV_ACCESS_TOKEN):
        return None
    credential = parse_credential(OAuthCredential, {
        "access_token": env.get(ENV_ACCESS_TOKEN),
        "refresh_token": env.get(ENV_REFRESH_TOKEN),
        "client_id": env.get(ENV_CLIENT_ID),
        "client_secret": env.get(ENV_CLIENT_SECRET),
    })
    if credential is None:
        return None
    return CredentialMatch(credential=credential, source="environment (OAuth)")


def read_oauth_from_file(paths: CredentialPaths) -> Optional[CredentialMatch]:
    """Full OAuth set from ~/.ga4-mcp/tokens.json."""
    credential = parse_credential(OAuthCredential, load_json_file(paths.oauth_token))
    if credential is None:
        return None
    return CredentialMatch(credential=credential, source="OAuth token file", path=paths.oauth_token)


def read_adc(env: Mapping[str, str], paths: CredentialPaths) -> Optional[CredentialMatch]:
    """authorized_user credentials from GOOGLE_APPLICATION_CREDENTIALS, then gcloud's default file."""
    for path in (_env_path(env, ENV_GOOGLE_APPLICATION_CREDENTIALS), paths.adc_default):
        credential = parse_credential(ADCCredential, load_json_file(path))
        if credential is not None:
            return CredentialMatch(credential=credential, source="Application Default Credentials", path=path)
    return None


def read_service_account(env: Mapping[str, str], paths: CredentialPaths) -> Optional[CredentialMatch]:
    """Service account key from inline env JSON, env file path, config file, then the Credential folder."""
    inline = env.get(ENV_SERVICE_ACCOUNT_JSON)
    if inline:
        try:
            data = json.loads(inline)
        except ValueError:
            data = None
        credential = parse_credential(ServiceAccountCredential, data)
        if credential is not None:
            return CredentialMatch(credential=credential, source=f"{ENV_SERVICE_ACCOUNT_JSON} environment variable")

    candidates = (
        _env_path(env, ENV_GOOGLE_APPLICATION_CREDENTIALS),
        paths.service_account_config,
        find_credential_in_folder(paths.credential_folder),
    )
    for path in candidates:
        credential = parse_credential(ServiceAccountCredential, load_json_file(path))
        if credential is not None:
            return CredentialMatch(credential=credential, source="service account file", path=path)
    return None


def read_access_token_from_env(env: Mapping[str, str]) -> Optional[CredentialMatch]:
    """GA4_ACCESS_TOKEN when the full OAuth set is not also present."""
    if _has_full_oauth({
        "refresh_token": env.get(ENV_REFRESH_TOKEN),
        "client_id": env.get(ENV_CLIENT_ID),
        "client_secret": env.get(ENV_CLIENT_SECRET),
    }):
        return None
    credential = parse_credential(AccessTokenCredential, {"access_token": env.get(ENV_ACCESS_TOKEN)})
    if credential is None:
        return None
    return CredentialMatch(credential=credential, source="environment (access token)")


def read_access_token_from_file(paths: CredentialPaths) -> Optional[CredentialMatch]:
    """access_token from the shared, GTM, then GA4 token file."""
    for path in paths.access_token_files:
        data = load_json_file(path)
        if data is None:
            continue
        # tokens.json holding a full OAuth set belongs to the refreshable source
        if path == paths.oauth_token and _has_full_oauth(data):
            continue
        credential = parse_credential(AccessTokenCredential, {"access_token": data.get("access_token")})
        if credential is not None:
            return CredentialMatch(credential=credential, source="access token file", path=path)
    return None
