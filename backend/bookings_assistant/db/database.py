from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
import os
import logging

DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///./bookings.db')

_engine_kwargs = {}
if DATABASE_URL.startswith('sqlite'):
    _engine_kwargs['connect_args'] = {"check_same_thread": False}
    # in-memory databases vanish per connection unless one connection is shared
    if DATABASE_URL in ('sqlite://', 'sqlite:///:memory:'):
        _engine_kwargs['poolclass'] = StaticPool

engine = create_engine(DATABASE_URL, **_engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

DEFAULT_USER_ID = 1


if DATABASE_URL.startswith('sqlite'):
    @event.listens_for(engine, "connect")
    def _enable_sqlite_fks(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()


def ensure_schema():  # simple additive migrations for sqlite
    if not DATABASE_URL.startswith('sqlite'):
        return
    with engine.connect() as conn:
        cols = {row[1] for row in conn.exec_driver_sql("PRAGMA table_info('osm_bookings')").fetchall()}
        alter_needed = []
        if 'customer_email_hash' not in cols:
            alter_needed.append("ALTER TABLE osm_bookings ADD COLUMN customer_email_hash VARCHAR(64) NULL")
        if 'customer_name_hash' not in cols:
            alter_needed.append("ALTER TABLE osm_bookings ADD COLUMN customer_name_hash VARCHAR(64) NULL")
        if 'backfill_attempted_at' not in cols:
            alter_needed.append("ALTER TABLE osm_bookings ADD COLUMN backfill_attempted_at DATETIME NULL")
        for stmt in alter_needed:
            conn.exec_driver_sql(stmt)
            logging.getLogger(__name__).info("schema_column_added", extra={"statement": stmt})
        conn.commit()


def init_db():
    """Create tables, apply additive column migrations and seed the default user."""
    from ..models import booking_model, email_model, link_model  # noqa: F401
    Base.metadata.create_all(bind=engine)
    ensure_schema()
    db = SessionLocal()
    try:
        if db.get(link_model.ApplicationUser, DEFAULT_USER_ID) is None:
            db.add(link_model.ApplicationUser(id=DEFAULT_USER_ID, name="Admin User"))
            db.commit()
    finally:
        db.close()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
