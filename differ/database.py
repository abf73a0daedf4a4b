"""Database module for differ using SQLAlchemy.

This module provides SQLAlchemy models for images, releases, their packages
and API credentials, plus the Database object owning engine and sessions.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, scoped_session, sessionmaker

log = logging.getLogger("differ.database")

Base = declarative_base()


class Image(Base):
    """Model for a named image with a history of releases."""

    __tablename__ = "images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))

    releases = relationship(
        "Release",
        back_populates="image",
        order_by="Release.date",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Image(name={self.name})>"


class Release(Base):
    """Model for one dated snapshot of an image's packages."""

    __tablename__ = "releases"
    __table_args__ = (UniqueConstraint("image_id", "digest"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    image_id = Column(Integer, ForeignKey("images.id"), nullable=False, index=True)
    digest = Column(String, nullable=False)
    date = Column(DateTime, nullable=False, index=True)

    image = relationship("Image", back_populates="releases")
    packages = relationship(
        "Package",
        back_populates="release",
        order_by="Package.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Release(digest={self.digest}, date={self.date})>"


class Package(Base):
    """Model for a package installed in a release."""

    __tablename__ = "packages"
    __table_args__ = (UniqueConstraint("release_id", "name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    release_id = Column(Integer, ForeignKey("releases.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    version = Column(String, nullable=False)

    release = relationship("Release", back_populates="packages")


class Authorization(Base):
    """Model for HTTP basic auth credentials allowed to write."""

    __tablename__ = "authorizations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False)


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable SQLite optimizations for multi-threaded use."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine and session factory for one SQLite database."""

    def __init__(self, database_path: Path):
        """Initialize the database and create tables.

        Args:
            database_path: Path to the SQLite database file
        """
        database_path.parent.mkdir(parents=True, exist_ok=True)
        self.path = database_path

        self._engine = create_engine(
            f"sqlite:///{database_path}",
            connect_args={"check_same_thread": False},
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )

        Base.metadata.create_all(self._engine)

        self._session_factory = scoped_session(
            sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        )

        log.info(f"Database initialized at {database_path}")

    def get_session(self):
        """Get a database session.

        Returns:
            SQLAlchemy session
        """
        if self._session_factory is None:
            raise RuntimeError("Database already closed")
        return self._session_factory()

    def close(self) -> None:
        """Close database connections."""
        if self._session_factory is not None:
            self._session_factory.remove()
            self._session_factory = None

        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

        log.info("Database connections closed")
