"""Link gateway: the remote API the app calls to link a bank through Plaid."""

from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

import plaid_integration
from config import Settings, load_settings
from database import PlaidItem, init_db, make_engine, make_session_factory
from errors import LinkError
from logger import get_logger, setup_logging

logger = get_logger()


class LinkTokenRequest(BaseModel):
    userId: str = Field(..., min_length=1)


class LinkTokenResponse(BaseModel):
    link_token: str


class ExchangeRequest(BaseModel):
    public_token: str = Field(..., min_length=1)
    userId: str = Field(..., min_length=1)
    institution_name: Optional[str] = None


class ExchangeResponse(BaseModel):
    item_id: str


def get_db(request: Request) -> Session:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_plaid(request: Request):
    return request.app.state.plaid_client


def http_error(e: LinkError) -> HTTPException:
    return HTTPException(status_code=e.status_code or 502, detail=str(e))


def upsert_plaid_item(db: Session, item_id: str, access_token: str, user_id: str, institution_name: Optional[str]) -> PlaidItem:
    item = db.query(PlaidItem).filter(PlaidItem.item_id == item_id).first()
    if not item:
        item = PlaidItem(item_id=item_id, access_token=access_token, user_id=user_id,
                         institution_name=institution_name or "Unknown Institution")
        db.add(item)
    else:
        item.access_token = access_token
        item.user_id = user_id
        if institution_name:
            item.institution_name = institution_name
    db.commit()
    return item


def create_app(settings: Optional[Settings] = None, plaid_client=None, session_factory=None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings)

    if session_factory is None:
        engine = make_engine(settings.database_url)
        init_db(engine)
        session_factory = make_session_factory(engine)

    app = FastAPI(title="Budget Link Gateway", version="0.1.0")
    app.state.session_factory = session_factory
    app.state.plaid_client = plaid_client if plaid_client is not None else plaid_integration.make_client(settings)

    @app.post("/link-token", response_model=LinkTokenResponse)
    def link_token(req: LinkTokenRequest, client=Depends(get_plaid)):
        try:
            token = plaid_integration.create_link_token(client, req.userId)
        except LinkError as e:
            logger.error(f"Link token for {req.userId} failed: {e}")
            raise http_error(e) from e
        return LinkTokenResponse(link_token=token)

    @app.post("/exchange-public-token", response_model=ExchangeResponse)
    def exchange_public_token(req: ExchangeRequest, client=Depends(get_plaid), db: Session = Depends(get_db)):
        try:
            access_token, item_id = plaid_integration.exchange_public_token(client, req.public_token)
        except LinkError as e:
            logger.error(f"Public token exchange for {req.userId} failed: {e}")
            raise http_error(e) from e

        upsert_plaid_item(db, item_id, access_token, req.userId, req.institution_name)
        logger.info(f"Linked Plaid item {item_id} for user {req.userId}")
        return ExchangeResponse(item_id=item_id)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("gateway:create_app", factory=True, host="0.0.0.0", port=8001, reload=True)
