from sqlalchemy import BigInteger, Boolean, Column, DateTime, Index, Integer, String
from sqlalchemy.sql import func
from prothomuse.database import Base


class Account(Base):
    """
    Registered user with credentials.

    Design notes:
    - email and api_key are unique and indexed for fast lookup
    - password_hash never leaves the database layer
    - rows are only ever inserted and updated, never deleted
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    api_key = Column(String(255), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Account(id={self.id}, email={self.email})>"


class TelemetryEvent(Base):
    """
    One HTTP request observation reported by an instrumented client.

    client_timestamp is whatever the client sent (epoch milliseconds). It is
    only used for display and window filtering; persisted_at is assigned here.
    """
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(255), nullable=False, index=True)
    route = Column(String(500), nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer, nullable=False)
    response_time = Column(BigInteger, nullable=False)
    client_timestamp = Column(BigInteger, nullable=False, index=True)
    persisted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Serves the per-project recent-window query
    __table_args__ = (
        Index("ix_events_project_timestamp", "project_id", "client_timestamp"),
    )

    def __repr__(self):
        return f"<TelemetryEvent(id={self.id}, project_id={self.project_id})>"
