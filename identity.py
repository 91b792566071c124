"""Who is using the app: Firebase Auth sign-in with a local fallback id."""

import json
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import requests

from errors import AuthenticationError
from logger import get_logger
from results import Outcome

logger = get_logger()

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

FALLBACK_ID_KEY = "anonymousUserId"
AUTH_USER_KEY = "authUser"


class LocalStorage:
    """Tiny persistent key/value store kept in one JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable local storage at {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring local storage at {self.path}: not a JSON object")
            return {}
        return data

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)

    def get(self, key: str):
        return self._load().get(key)

    def set(self, key: str, value) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


def get_fallback_user_id(storage: LocalStorage) -> str:
    """Locally generated user id, created once and reused across sessions."""
    user_id = storage.get(FALLBACK_ID_KEY)
    if not user_id:
        user_id = str(uuid.uuid4())
        storage.set(FALLBACK_ID_KEY, user_id)
        logger.info("Generated a new local fallback user id")
    return user_id


@dataclass
class AuthUser:
    uid: str
    is_anonymous: bool = True
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None


class FirebaseAuthClient:
    """Minimal Firebase Auth REST client."""

    def __init__(self, api_key: str, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.session = session or requests.Session()

    def _post(self, url: str, **kwargs) -> dict:
        try:
            response = self.session.post(url, params={"key": self.api_key}, **kwargs)
        except requests.RequestException as e:
            raise AuthenticationError(f"Auth service unreachable: {e}") from e

        if not response.ok:
            raise AuthenticationError(f"Sign-in failed: {_error_message(response)}")
        return response.json()

    def sign_in_anonymously(self) -> AuthUser:
        data = self._post(f"{IDENTITY_TOOLKIT_URL}/accounts:signUp", json={"returnSecureToken": True})
        return AuthUser(
            uid=data["localId"],
            is_anonymous=True,
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
        )

    def sign_in_with_custom_token(self, token: str) -> AuthUser:
        data = self._post(
            f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithCustomToken",
            json={"token": token, "returnSecureToken": True},
        )
        id_token = data.get("idToken")
        # The custom-token response carries no uid, so look the user up
        lookup = self._post(f"{IDENTITY_TOOLKIT_URL}/accounts:lookup", json={"idToken": id_token})
        users = lookup.get("users") or []
        if not users:
            raise AuthenticationError("Sign-in failed: no user returned for custom token")
        return AuthUser(
            uid=users[0]["localId"],
            is_anonymous=False,
            id_token=id_token,
            refresh_token=data.get("refreshToken"),
        )

    def refresh(self, refresh_token: str, is_anonymous: bool = True) -> AuthUser:
        data = self._post(
            SECURE_TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        return AuthUser(
            uid=data["user_id"],
            is_anonymous=is_anonymous,
            id_token=data.get("id_token"),
            refresh_token=data.get("refresh_token", refresh_token),
        )


def _error_message(response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"HTTP {response.status_code}"


class IdentityResolver:
    """Establishes the user id that scopes all category data.

    Args:
        auth_client: Firebase client, or None to run offline on the fallback id.
        storage: local storage holding the fallback id and cached session.
        initial_auth_token: optional pre-issued custom token.
        block_on_failure: when True a failed sign-in leaves ``auth_ready`` False
            instead of continuing on the fallback id.
    """

    def __init__(
        self,
        auth_client: Optional[FirebaseAuthClient],
        storage: LocalStorage,
        initial_auth_token: Optional[str] = None,
        block_on_failure: bool = False,
    ):
        self.auth_client = auth_client
        self.storage = storage
        self.initial_auth_token = initial_auth_token
        self.block_on_failure = block_on_failure

        self.current_user: Optional[AuthUser] = None
        self.user_id: Optional[str] = None
        self.auth_ready = False
        self._listeners: List[Callable[[Optional[AuthUser]], None]] = []

    def on_auth_state_changed(self, callback: Callable[[Optional[AuthUser]], None]) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_user(self, user: Optional[AuthUser]) -> None:
        self.current_user = user
        for listener in list(self._listeners):
            listener(user)

    def resolve(self) -> Outcome:
        if self.auth_client is None:
            self.user_id = get_fallback_user_id(self.storage)
            self.auth_ready = True
            logger.info("No auth service configured; using local user id")
            return Outcome.info("sign_in", "Running offline with a local user id.")

        try:
            user = self._sign_in()
        except AuthenticationError as e:
            logger.error(f"Error signing in: {e}")
            if self.block_on_failure:
                return Outcome.from_error("sign_in", e, f"Error initializing app: {e}")
            self.user_id = get_fallback_user_id(self.storage)
            self.auth_ready = True
            return Outcome.from_error(
                "sign_in", e, f"Error signing in: {e}. Continuing with a local user id."
            )

        self.storage.set(
            AUTH_USER_KEY,
            {"uid": user.uid, "isAnonymous": user.is_anonymous, "refreshToken": user.refresh_token},
        )
        self.user_id = user.uid
        self.auth_ready = True
        self._set_user(user)
        logger.info(f"Signed in as {user.uid} ({'anonymous' if user.is_anonymous else 'token'})")
        return Outcome.success("sign_in", "Signed in.")

    def _sign_in(self) -> AuthUser:
        cached = self.storage.get(AUTH_USER_KEY)
        if cached and cached.get("refreshToken"):
            try:
                return self.auth_client.refresh(cached["refreshToken"], cached.get("isAnonymous", True))
            except AuthenticationError as e:
                logger.warning(f"Could not restore previous session: {e}")
                self.storage.remove(AUTH_USER_KEY)

        if self.initial_auth_token:
            return self.auth_client.sign_in_with_custom_token(self.initial_auth_token)
        return self.auth_client.sign_in_anonymously()

    def sign_out(self) -> None:
        self.storage.remove(AUTH_USER_KEY)
        self.user_id = None
        self.auth_ready = False
        self._set_user(None)
