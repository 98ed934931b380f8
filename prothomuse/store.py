"""
Durable storage for accounts and telemetry events.

Every method is one independent round trip. Nothing here spans a
transaction across a uniqueness check and the following write, so two
concurrent writers can both pass a check in prothomuse.sessions; the
unique constraints on accounts then reject the loser, which surfaces as
ConflictError.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.sql import func

from prothomuse.errors import ConflictError, StorageError
from prothomuse.models import Account, TelemetryEvent
from prothomuse.schemas import TelemetryRecord

logger = logging.getLogger(__name__)


class AccountStore:
    """Account lookups and writes on a request-scoped session."""

    def __init__(self, db: Session):
        self.db = db

    def _first(self, statement) -> Optional[Account]:
        try:
            return self.db.execute(statement).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Account lookup failed: %s", exc)
            raise StorageError() from exc

    def get_by_id(self, account_id: int) -> Optional[Account]:
        return self._first(select(Account).where(Account.id == account_id))

    def get_by_email(self, email: str) -> Optional[Account]:
        return self._first(select(Account).where(Account.email == email))

    def get_by_api_key(self, api_key: str) -> Optional[Account]:
        return self._first(select(Account).where(Account.api_key == api_key))

    def create(
        self,
        username: str,
        email: str,
        password_hash: str,
        api_key: str,
        is_active: bool = True,
    ) -> Account:
        account = Account(
            username=username,
            email=email,
            password_hash=password_hash,
            api_key=api_key,
            is_active=is_active,
        )
        try:
            self.db.add(account)
            self.db.commit()
            self.db.refresh(account)
        except IntegrityError as exc:
            self.db.rollback()
            # Lost the race against a concurrent registration
            logger.warning("Account insert violated a unique constraint: %s", exc.orig)
            raise ConflictError("User with this email already exists") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Account insert failed: %s", exc)
            raise StorageError() from exc

        logger.info("Account created with id %s", account.id)
        return account

    def update(
        self,
        account_id: int,
        *,
        username: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        api_key: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Account:
        """
        Write the given columns in one parameterized UPDATE. None means
        "leave the column alone"; updated_at is always refreshed.
        """
        columns = {
            "username": username,
            "email": email,
            "password_hash": password_hash,
            "api_key": api_key,
            "is_active": is_active,
        }
        values = {name: value for name, value in columns.items() if value is not None}
        values["updated_at"] = func.now()

        statement = (
            update(Account)
            .where(Account.id == account_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        try:
            self.db.execute(statement)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("Account update violated a unique constraint: %s", exc.orig)
            raise ConflictError("Email or API key already in use") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Account update failed: %s", exc)
            raise StorageError() from exc

        account = self.get_by_id(account_id)
        if account is None:
            raise StorageError("Account disappeared during update")
        return account


class EventStore:
    """
    Telemetry events in the database.

    Holds a session factory rather than a session: streaming connections live
    far longer than a request, so every save checks a connection out of the
    engine pool and returns it straight away.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def save(self, record: TelemetryRecord) -> TelemetryEvent:
        event = TelemetryEvent(
            project_id=record.project_id,
            route=record.route,
            method=record.method,
            status_code=record.status_code,
            response_time=record.response_time,
            client_timestamp=record.timestamp,
        )
        with self.session_factory() as db:
            try:
                db.add(event)
                db.commit()
                db.refresh(event)
            except (SQLAlchemyError, OverflowError, ValueError) as exc:
                # Drivers reject out-of-range integers before the statement runs
                db.rollback()
                raise StorageError(f"Failed to persist event: {exc}") from exc
        logger.debug("Saved event %s for project %s", event.id, event.project_id)
        return event

    def _list(self, statement) -> list[TelemetryEvent]:
        with self.session_factory() as db:
            try:
                return list(db.execute(statement).scalars().all())
            except SQLAlchemyError as exc:
                logger.error("Event query failed: %s", exc)
                raise StorageError() from exc

    def list_all(self) -> list[TelemetryEvent]:
        """All persisted events, newest first."""
        return self._list(
            select(TelemetryEvent).order_by(
                TelemetryEvent.persisted_at.desc(), TelemetryEvent.id.desc()
            )
        )

    def list_by_project(self, project_id: str) -> list[TelemetryEvent]:
        return self._list(
            select(TelemetryEvent)
            .where(TelemetryEvent.project_id == project_id)
            .order_by(TelemetryEvent.persisted_at.desc(), TelemetryEvent.id.desc())
        )

    def recent(self, project_id: str, since_ms: int) -> list[TelemetryEvent]:
        """Events of a project whose client timestamp is at or after since_ms."""
        return self._list(
            select(TelemetryEvent)
            .where(
                TelemetryEvent.project_id == project_id,
                TelemetryEvent.client_timestamp >= since_ms,
            )
            .order_by(TelemetryEvent.persisted_at.desc(), TelemetryEvent.id.desc())
        )
