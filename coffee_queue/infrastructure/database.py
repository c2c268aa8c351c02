import logging
import time

from sqlalchemy import JSON, Column, DateTime, String, create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


class OrderRecord(Base):
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True)
    customer_name = Column(String, index=True, nullable=False)
    items = Column(JSON, nullable=False)
    priority = Column(String(16), nullable=False)
    status = Column(String(16), index=True, nullable=False)

    # Stored as UTC; some backends (SQLite) hand them back naive.
    created_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)


def create_session_factory(database_url: str, retries: int = 10, wait_seconds: float = 3.0):
    """Create the engine, make sure tables exist and return a session factory.

    The database may still be starting up (e.g. a compose stack), so table
    creation is retried before giving up.
    """
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)

    for attempt in range(1, retries + 1):
        try:
            logger.info("Attempting DB connection (%d/%d)", attempt, retries)
            Base.metadata.create_all(bind=engine)
            logger.info("DB connected and tables created")
            break
        except OperationalError:
            if attempt == retries:
                logger.error("Could not connect to DB after %d attempts", retries)
                raise
            logger.warning("DB not ready yet. Waiting %ss", wait_seconds)
            time.sleep(wait_seconds)

    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
