import plaid
from plaid.api import plaid_api
from plaid.model.country_code import CountryCode
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products

from config import Settings
from errors import LinkError
from logger import get_logger

logger = get_logger()

CLIENT_NAME = "Weekly Budget Tracker"
PRODUCTS = ['transactions']
COUNTRY_CODES = ['US']

# --- Plaid Client Setup ---

def make_client(settings: Settings):
    """
    Builds a Plaid API client, or returns None when credentials are not set.
    """
    if not settings.plaid_client_id or not settings.plaid_secret:
        logger.warning("PLAID_CLIENT_ID / PLAID_SECRET not set; bank linking is unavailable")
        return None

    host = plaid.Environment.Sandbox
    if settings.plaid_env == 'production':
        host = plaid.Environment.Production

    configuration = plaid.Configuration(
        host=host,
        api_key={
            'clientId': settings.plaid_client_id,
            'secret': settings.plaid_secret,
        }
    )
    return plaid_api.PlaidApi(plaid.ApiClient(configuration))

def _require(client):
    if not client:
        raise LinkError("Plaid credentials not set", status_code=503)
    return client

def _plaid_error(action: str, e: plaid.ApiException) -> LinkError:
    # Plaid puts error_code / error_message in the JSON body
    logger.error(f"Plaid {action} failed (HTTP {e.status}): {e.body}")
    return LinkError(f"Plaid error {action}", status_code=502)

def create_link_token(client, user_id: str) -> str:
    """
    Link token that lets the browser open Plaid Link for ``user_id``.

    Raises:
        LinkError: 503 without credentials, 502 when Plaid rejects the call.
    """
    request = LinkTokenCreateRequest(
        products=[Products(p) for p in PRODUCTS],
        client_name=CLIENT_NAME,
        country_codes=[CountryCode(c) for c in COUNTRY_CODES],
        language='en',
        user=LinkTokenCreateRequestUser(client_user_id=user_id),
    )
    try:
        response = _require(client).link_token_create(request)
    except plaid.ApiException as e:
        raise _plaid_error("creating link token", e) from e
    return response['link_token']

def exchange_public_token(client, public_token: str):
    """
    Trades the browser's public token for (access_token, item_id).
    """
    request = ItemPublicTokenExchangeRequest(public_token=public_token)
    try:
        response = _require(client).item_public_token_exchange(request)
    except plaid.ApiException as e:
        raise _plaid_error("exchanging public token", e) from e
    return response['access_token'], response['item_id']
