"""Database setup for the key-value slots using SQLModel."""

from sqlmodel import SQLModel, Session, create_engine
from app.core.config import get_settings

settings = get_settings()

# Create engine
engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    connect_args={"check_same_thread": False}  # Needed for SQLite
    if settings.database_url.startswith("sqlite")
    else {},
)


def create_db_and_tables():
    """Create all database tables."""
    # Register the table models on the metadata
    import app.models.storage  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency that provides a database session."""
    with Session(engine) as session:
        yield session
