"""Client side of bank linking: talks to the link gateway and tracks the flow."""

from enum import Enum
from typing import Optional

import requests

from errors import LinkError
from logger import get_logger
from results import Outcome

logger = get_logger()


class LinkApiClient:
    """HTTP client for the link gateway (see gateway.py)."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post(self, path: str, payload: dict):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise LinkError(f"Could not reach {url}: {e}") from e

        if not response.ok:
            raise LinkError(f"HTTP error! status: {response.status_code}", status_code=response.status_code)
        return response

    def create_link_token(self, user_id: str) -> str:
        response = self._post("/link-token", {"userId": user_id})
        try:
            link_token = response.json()["link_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise LinkError("Link token missing from response") from e
        return link_token

    def exchange_public_token(self, public_token: str, user_id: str) -> None:
        self._post("/exchange-public-token", {"public_token": public_token, "userId": user_id})


class LinkState(str, Enum):
    NO_TOKEN = "no_token"
    TOKEN_REQUESTED = "token_requested"
    TOKEN_READY = "token_ready"
    LINK_OPENED = "link_opened"
    EXCHANGED = "exchanged"
    EXCHANGE_FAILED = "exchange_failed"
    LINK_EXITED = "link_exited"


TERMINAL_STATES = (LinkState.EXCHANGED, LinkState.EXCHANGE_FAILED, LinkState.LINK_EXITED)


class BankLinkFlow:
    """One user's bank-link attempt.

    NoToken -> TokenRequested -> TokenReady -> LinkOpened
    -> Exchanged | ExchangeFailed | LinkExited
    """

    def __init__(self, client: LinkApiClient, user_id: str):
        self.client = client
        self.user_id = user_id
        self.state = LinkState.NO_TOKEN
        self.link_token: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.state == LinkState.TOKEN_REQUESTED

    def request_link_token(self) -> Optional[Outcome]:
        """Fetch a link token. Only the first call of a flow reaches the gateway."""
        if self.state != LinkState.NO_TOKEN:
            logger.debug(f"Link token already requested (state={self.state.value})")
            return None

        self.state = LinkState.TOKEN_REQUESTED
        try:
            self.link_token = self.client.create_link_token(self.user_id)
        except LinkError as e:
            logger.error(f"Error fetching link token: {e}")
            self.state = LinkState.NO_TOKEN
            return Outcome.from_error("request_link_token", e, f"Error fetching link token: {e}")

        self.state = LinkState.TOKEN_READY
        return Outcome.info("request_link_token", "Bank link is ready. Click 'Connect a bank account' to continue.")

    def open_link(self) -> None:
        if self.state != LinkState.TOKEN_READY:
            raise LinkError(f"Cannot open link widget in state '{self.state.value}'")
        self.state = LinkState.LINK_OPENED

    def complete_link(self, public_token: str) -> Outcome:
        """Widget success callback: exchange the public token once."""
        if self.state not in (LinkState.TOKEN_READY, LinkState.LINK_OPENED):
            error = LinkError(f"Cannot complete link in state '{self.state.value}'")
            return Outcome.from_error("complete_link", error, str(error))

        public_token = (public_token or "").strip()
        if not public_token:
            error = LinkError("Public token is empty")
            return Outcome.from_error("complete_link", error, "Error linking account: public token is empty.")

        try:
            self.client.exchange_public_token(public_token, self.user_id)
        except LinkError as e:
            logger.error(f"Error exchanging public token: {e}")
            self.state = LinkState.EXCHANGE_FAILED
            return Outcome.from_error("complete_link", e, f"Error linking account: {e}")

        self.state = LinkState.EXCHANGED
        logger.info(f"Bank account linked for user {self.user_id}")
        return Outcome.success("complete_link", "Bank account linked successfully!")

    def on_exit(self, error: Optional[dict] = None) -> None:
        if error:
            logger.warning(f"Link exited with error: {error}")
        else:
            logger.info("Link exited by user")
        if self.state not in TERMINAL_STATES:
            self.state = LinkState.LINK_EXITED

    def on_event(self, event_name: str, metadata: Optional[dict] = None) -> None:
        logger.info(f"Link event: {event_name} {metadata or {}}")

    def reset(self) -> None:
        """Start over after a finished attempt."""
        if self.state in TERMINAL_STATES:
            self.state = LinkState.NO_TOKEN
            self.link_token = None
