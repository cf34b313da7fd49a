"""OAuth provider strategies and Authlib client initialisation.

Each strategy knows how to turn an Authlib token response into a normalised
profile dict::

    {provider_user_id, email, email_verified, name, given_name,
     family_name, picture}

Everything after that (account lookup, creation, linking, token issuance)
is provider-independent and lives in services/oauth_service.py.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from authlib.integrations.starlette_client import OAuth

from shared.logging import get_logger

log = get_logger(__name__)

_FACEBOOK_GRAPH_URL = "https://graph.facebook.com/v19.0/"
_FACEBOOK_PROFILE_FIELDS = "id,name,first_name,last_name,email,picture.type(large)"


# ── Provider strategies ───────────────────────────────────────────────────────


class OAuthProviderStrategy(ABC):
    """Encapsulates everything that differs between OAuth providers."""

    @property
    @abstractmethod
    def key(self) -> str: ...

    @abstractmethod
    async def fetch_user_info(self, client: Any, token: Any) -> dict[str, Any]: ...


class GoogleStrategy(OAuthProviderStrategy):
    key = "google"

    async def fetch_user_info(self, client: Any, token: Any) -> dict[str, Any]:
        userinfo = token.get("userinfo")
        if userinfo is None:
            resp = await client.get(
                "https://openidconnect.googleapis.com/v1/userinfo", token=token
            )
            resp.raise_for_status()
            userinfo = resp.json()
        return extract_user_info_from_google(userinfo)


class FacebookStrategy(OAuthProviderStrategy):
    key = "facebook"

    async def fetch_user_info(self, client: Any, token: Any) -> dict[str, Any]:
        resp = await client.get(
            "me", params={"fields": _FACEBOOK_PROFILE_FIELDS}, token=token
        )
        resp.raise_for_status()
        return extract_user_info_from_facebook(resp.json())


PROVIDER_STRATEGIES: dict[str, OAuthProviderStrategy] = {
    s.key: s() for s in [GoogleStrategy, FacebookStrategy]
}


# ── Authlib init ─────────────────────────────────────────────────────────────


def init_oauth(settings: Any) -> Tuple[Optional[OAuth], Dict[str, Any]]:
    """Initialise Authlib OAuth clients for FastAPI/Starlette.

    Accepts an OAuthProviderSettings instance (from config.py).
    Returns (oauth, providers_dict). Store both on app.state in create_app().
    Returns (None, {}) if no providers are configured.
    """
    oauth = OAuth()
    providers: Dict[str, Any] = {}

    if settings.google_oauth_client_id and settings.google_oauth_client_secret:
        providers["google"] = oauth.register(
            name="google",
            client_id=settings.google_oauth_client_id,
            client_secret=settings.google_oauth_client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={
                "scope": "openid email profile",
                "prompt": "select_account",
            },
        )
        log.info("oauth_provider_initialized", provider="google")

    if settings.facebook_oauth_client_id and settings.facebook_oauth_client_secret:
        providers["facebook"] = oauth.register(
            name="facebook",
            client_id=settings.facebook_oauth_client_id,
            client_secret=settings.facebook_oauth_client_secret,
            access_token_url=f"{_FACEBOOK_GRAPH_URL}oauth/access_token",
            authorize_url="https://www.facebook.com/v19.0/dialog/oauth",
            api_base_url=_FACEBOOK_GRAPH_URL,
            client_kwargs={"scope": "email public_profile"},
        )
        log.info("oauth_provider_initialized", provider="facebook")

    if not providers:
        log.warning("oauth_no_providers_configured")
        return None, {}

    return oauth, providers


def get_oauth_redirect_url(provider: str, settings: Any) -> str:
    """Return the configured {provider}_oauth_redirect_uri, or "" when unset.

    Route handlers fall back to ``request.url_for`` on an empty result.
    """
    return getattr(settings, f"{provider}_oauth_redirect_uri", "") or ""


# ── User-info extractors ──────────────────────────────────────────────────────


def _split_name(name: str) -> Tuple[str, str]:
    if not name:
        return "", ""
    first, _, rest = name.strip().partition(" ")
    return first, rest.strip()


def extract_user_info_from_google(userinfo: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "provider_user_id": str(userinfo.get("sub", "")),
        "email": (userinfo.get("email") or "").lower().strip(),
        "email_verified": bool(userinfo.get("email_verified", False)),
        "name": userinfo.get("name", ""),
        "picture": userinfo.get("picture", ""),
        "given_name": userinfo.get("given_name", ""),
        "family_name": userinfo.get("family_name", ""),
    }


def extract_user_info_from_facebook(userinfo: Dict[str, Any]) -> Dict[str, Any]:
    name = userinfo.get("name", "")
    given, family = _split_name(name)
    picture = ((userinfo.get("picture") or {}).get("data") or {}).get("url", "")
    return {
        "provider_user_id": str(userinfo.get("id", "")),
        "email": (userinfo.get("email") or "").lower().strip(),
        # Graph API only returns confirmed addresses
        "email_verified": bool(userinfo.get("email")),
        "name": name,
        "picture": picture,
        "given_name": userinfo.get("first_name") or given,
        "family_name": userinfo.get("last_name") or family,
    }
