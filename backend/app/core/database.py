from collections.abc import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from backend.app.core.config import settings

engine = create_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


if engine.dialect.name == "postgresql":

    @event.listens_for(engine, "begin")
    def _apply_lock_timeout(conn) -> None:  # type: ignore[no-untyped-def]
        # Bound lock waits on contended ledger rows.
        timeout = int(settings.SETTLEMENT_LOCK_TIMEOUT_MS)
        conn.exec_driver_sql(f"SET LOCAL lock_timeout = {timeout}")
        conn.exec_driver_sql(f"SET LOCAL statement_timeout = {timeout}")


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
