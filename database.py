from datetime import datetime
from sqlalchemy import create_engine, Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Database Setup
# Local SQLite by default; any SQLAlchemy URL (e.g. hosted Postgres) works too.

Base = declarative_base()


def make_engine(db_url: str):
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        return create_engine(db_url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(db_url, connect_args=connect_args)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

# --- Models ---

class Document(Base):
    """One document of a collection, stored as a JSON blob."""

    __tablename__ = "documents"
    __table_args__ = (UniqueConstraint("collection_path", "doc_id", name="uq_document_path"),)

    id = Column(Integer, primary_key=True, index=True)
    collection_path = Column(String, index=True, nullable=False)  # e.g. artifacts/app/users/u1/categories
    doc_id = Column(String, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow)

class PlaidItem(Base):
    __tablename__ = "plaid_items"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(String, unique=True, index=True)
    access_token = Column(String)  # Server side only, never returned to clients
    user_id = Column(String, index=True)
    institution_name = Column(String, default="Unknown Institution")
    created_at = Column(DateTime, default=datetime.utcnow)

# --- Init DB ---
def init_db(engine):
    Base.metadata.create_all(bind=engine)
