import logging
import time
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from marketplace.api.auth import get_password_hash
from marketplace.config import settings
from marketplace.models import Base, Database, Role, User  # noqa: F401 - registers all models

logger = logging.getLogger(__name__)


def wait_for_db(engine: Engine, retries: int, retry_delay_seconds: int) -> None:
    """Wait for database to accept connections before running migrations."""
    last_error = None
    for attempt in range(1, retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection established on attempt %s", attempt)
            return
        except OperationalError as exc:
            last_error = exc
            logger.warning(
                "Database not reachable yet (attempt %s/%s): %s",
                attempt,
                retries,
                exc,
            )
            if attempt < retries:
                time.sleep(retry_delay_seconds)

    raise RuntimeError(
        "Database is unreachable after "
        f"{retries} attempts. Check DATABASE_URL and ensure the DB server is running."
    ) from last_error


def init_db(database: Database) -> None:
    wait_for_db(
        database.engine,
        retries=settings.DB_CONNECT_RETRIES,
        retry_delay_seconds=settings.DB_CONNECT_RETRY_DELAY_SECONDS,
    )
    if database.is_sqlite:
        Base.metadata.create_all(bind=database.engine)
        return

    run_migrations(database.url)


def run_migrations(database_url: str) -> None:
    """Apply Alembic migrations to the latest revision."""
    from alembic import command
    from alembic.config import Config

    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    script_location = project_root / "alembic"
    if not alembic_ini.exists() or not script_location.exists():
        raise RuntimeError("Alembic configuration is missing (alembic.ini or alembic/ directory not found).")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(script_location))
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")


def seed_admin_user(db_session: Session) -> User | None:
    """Create the admin account from ADMIN_EMAIL/ADMIN_PASSWORD; admins cannot self-register."""
    email = settings.ADMIN_EMAIL
    password = settings.ADMIN_PASSWORD
    if not email or not password:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping admin seed")
        return None

    existing = db_session.query(User).filter(User.email == email).first()
    if existing:
        return existing

    admin = User(
        name="Administrator",
        email=email,
        hashed_password=get_password_hash(password),
        role=Role.ADMIN.value,
        is_active=True,
    )
    db_session.add(admin)
    db_session.commit()
    db_session.refresh(admin)
    logger.info("Seeded admin user id=%s", admin.id)
    return admin
