import logging
from typing import Generator, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from wxmp.config import settings
from wxmp.replies import ReplyMessage, content_reply_adapter, now_millis

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from wxmp.models import StagedReply  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and the staged_replies table exists, False otherwise.
    """
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        if not inspect(engine).has_table("staged_replies"):
            logger.error("Database schema not applied: 'staged_replies' table not found")
            return False
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Staged Reply Repository Functions
# =============================================================================

def stage_reply(db: Session, account_id: str, msg_id: str, reply: ReplyMessage) -> bool:
    """
    Store (or replace) the reply for a message.

    Args:
        db: Database session
        account_id: Account the message was pushed to
        msg_id: Message id (sender + timestamp for events)
        reply: Content reply; addressing fields are filled in when served

    Returns:
        True if an earlier staged reply was replaced
    """
    from wxmp.models import StagedReply

    logger.info(f"Staging {reply.msg_type} reply: account={account_id}, msg_id={msg_id}")

    existing = db.get(StagedReply, (account_id, msg_id))
    payload = reply.model_dump_json(exclude={"to_open_id", "from_account", "timestamp"})
    if existing is not None:
        existing.msg_type = reply.msg_type
        existing.payload = payload
        existing.created_at = now_millis()
    else:
        db.add(StagedReply(
            account_id=account_id,
            msg_id=msg_id,
            msg_type=reply.msg_type,
            payload=payload,
            created_at=now_millis(),
        ))
    db.commit()
    return existing is not None


def take_staged_reply(db: Session, account_id: str, msg_id: str, ttl_seconds: float) -> Optional[ReplyMessage]:
    """
    Fetch and consume the staged reply for a message.

    Expired entries are deleted and reported as absent.

    Returns:
        The reply, or None if nothing (fresh) is staged
    """
    from wxmp.models import StagedReply

    staged = db.get(StagedReply, (account_id, msg_id))
    if staged is None:
        logger.debug(f"No staged reply: account={account_id}, msg_id={msg_id}")
        return None

    msg_type, payload, created_at = staged.msg_type, staged.payload, staged.created_at
    db.delete(staged)
    db.commit()

    age_ms = now_millis() - created_at
    if age_ms > ttl_seconds * 1000:
        logger.info(f"Staged reply expired ({age_ms} ms): account={account_id}, msg_id={msg_id}")
        return None

    logger.info(f"Serving staged {msg_type} reply: account={account_id}, msg_id={msg_id}")
    return content_reply_adapter.validate_json(payload)
