"""
SQLAlchemy models and session management for the identity store.
"""

import uuid
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import Boolean, Column, DateTime, String, create_engine, inspect, pool, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


class User(Base):
    """User accounts, local and Google-linked"""
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)  # NULL for OAuth-only accounts
    full_name = Column(String(255))

    # External identity (Google "sub" claim)
    google_id = Column(String(255), unique=True, nullable=True, index=True)
    email_verified = Column(Boolean, default=False)

    # Status
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    last_login = Column(DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "google_linked": self.google_id is not None,
            "is_active": self.is_active,
        }


class DatabaseManager:
    """
    Owns the engine and session factory for one application instance.

    Usage:
        db = DatabaseManager("sqlite:///./raptor.db")
        db.create_tables()
        session = db.get_session()
        try:
            ...
        finally:
            session.close()
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine = self._create_engine(database_url, echo)
        self._SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False
        )
        logger.info(f"Database engine created for dialect: {self.engine.dialect.name}")

    @staticmethod
    def _create_engine(database_url: str, echo: bool):
        """Create SQLAlchemy engine; in-memory SQLite shares one connection"""
        if database_url.startswith("sqlite"):
            kwargs = {"echo": echo, "connect_args": {"check_same_thread": False}}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = pool.StaticPool
            return create_engine(database_url, **kwargs)

        return create_engine(
            database_url,
            echo=echo,
            pool_size=10,
            max_overflow=20,
            pool_recycle=1500,
            pool_pre_ping=True,
        )

    def create_tables(self):
        """Create missing tables (IDEMPOTENT)"""
        existing_tables = set(inspect(self.engine).get_table_names())
        for table_name, table in Base.metadata.tables.items():
            if table_name in existing_tables:
                logger.info(f"Table already exists: {table_name}")
                continue
            table.create(self.engine, checkfirst=True)
            logger.info(f"Created table: {table_name}")

    def drop_tables(self):
        """Drop all tables. USE WITH CAUTION (for testing only)."""
        logger.warning("DROPPING ALL AUTH TABLES - THIS IS DESTRUCTIVE")
        Base.metadata.drop_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get database session"""
        return self._SessionLocal()

    def health_check(self) -> bool:
        """Check if database is healthy"""
        session = self.get_session()
        try:
            session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False
        finally:
            session.close()

    def dispose(self):
        self.engine.dispose()
