import os
import sqlite3
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("MERCADOPAGO_ACCESS_TOKEN", "TEST-token")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from partner_billing.db import Base

# Register UUID adapter for SQLite - store as string
sqlite3.register_adapter(uuid.UUID, lambda u: str(u))


# Monkey-patch SQLAlchemy's UUID type for SQLite compatibility
# This must happen before any models are imported
from sqlalchemy.sql import sqltypes

_original_uuid_bind_processor = sqltypes.Uuid.bind_processor
_original_uuid_result_processor = sqltypes.Uuid.result_processor


def _sqlite_uuid_bind_processor(self, dialect):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return str(value)
                return str(uuid.UUID(value)) if value else None
            return None
        return process
    return _original_uuid_bind_processor(self, dialect)


def _sqlite_uuid_result_processor(self, dialect, coltype):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return value
                return uuid.UUID(value) if value else None
            return None
        return process
    return _original_uuid_result_processor(self, dialect, coltype)


setattr(sqltypes.Uuid, "bind_processor", _sqlite_uuid_bind_processor)
setattr(sqltypes.Uuid, "result_processor", _sqlite_uuid_result_processor)

from partner_billing.models.billing import PartnerFee
from partner_billing.models.partner import Partner

from tests.mocks import FakeGateway

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=UTC)


@pytest.fixture()
def engine():
    database_url = os.getenv("TEST_DATABASE_URL")
    if database_url:
        engine = create_engine(database_url)
    else:
        # A fresh database per test: billing commits and rolls back per
        # partner, so an outer test transaction cannot wrap it.
        engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def make_partner(db_session):
    """Create a partner whose account was opened ``age`` before NOW."""

    def _create(age: timedelta = timedelta(days=40), **kwargs) -> Partner:
        partner = Partner(
            name=kwargs.pop("name", f"Partner {uuid.uuid4().hex[:8]}"),
            email=kwargs.pop("email", f"partner-{uuid.uuid4().hex}@example.com"),
            created_at=NOW - age,
            **kwargs,
        )
        db_session.add(partner)
        db_session.commit()
        db_session.refresh(partner)
        return partner

    return _create


@pytest.fixture()
def make_fee(db_session):
    def _create(partner: Partner, value, created_at: datetime, **kwargs) -> PartnerFee:
        fee = PartnerFee(
            partner_id=partner.id,
            value=Decimal(str(value)),
            created_at=created_at,
            **kwargs,
        )
        db_session.add(fee)
        db_session.commit()
        db_session.refresh(fee)
        return fee

    return _create


@pytest.fixture()
def partner(make_partner):
    return make_partner()


@pytest.fixture()
def gateway():
    return FakeGateway()
