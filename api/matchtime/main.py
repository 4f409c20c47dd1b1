import hashlib
import logging
import os
import time
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from . import repo as auth_repo
from .auth.deps import get_current_user
from .config import ALLOWED_ORIGINS, LOG_LEVEL, UPLOADS_DIR
from .database import SessionLocal
from .routes import include_modular_routers

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="MatchTime API")
include_modular_routers(app)

UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(UPLOADS_DIR)), name="uploads")

# Cookie auth needs explicit origins; "*" is rejected with credentials
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


MIGRATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    filename TEXT PRIMARY KEY,
    checksum TEXT NOT NULL,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


def resolve_migrations_dir() -> Path:
    env_dir = os.getenv("MIGRATIONS_DIR", "").strip()
    docker_dir = Path("/app/migrations")
    local_dir = Path(__file__).resolve().parents[1] / "migrations"
    candidates = [Path(env_dir)] if env_dir else [docker_dir, local_dir]
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    raise FileNotFoundError(
        "Migrations directory not found. Checked: "
        f"MIGRATIONS_DIR={env_dir or '<unset>'}, {docker_dir}, {local_dir}"
    )


def migration_checksum(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


def apply_pending_migrations(db, migrations_dir: Path) -> list[str]:
    """Run each .sql file not yet recorded in schema_migrations, in name order.

    Returns the filenames applied by this call. A recorded file whose contents
    changed is logged and left alone; write a new migration instead.
    """
    db.execute(text(MIGRATIONS_TABLE_SQL))
    rows = db.execute(text("SELECT filename, checksum FROM schema_migrations")).mappings().all()
    recorded = {r["filename"]: r["checksum"] for r in rows}

    applied: list[str] = []
    for path in sorted(p for p in migrations_dir.iterdir() if p.is_file() and p.suffix == ".sql"):
        sql = path.read_text(encoding="utf-8")
        checksum = migration_checksum(sql)
        if path.name in recorded:
            if recorded[path.name] != checksum:
                logger.warning(f"[startup] migration {path.name} changed after it was applied; skipping")
            continue
        db.execute(text(sql))
        db.execute(
            text("INSERT INTO schema_migrations (filename, checksum) VALUES (:filename, :checksum)"),
            {"filename": path.name, "checksum": checksum},
        )
        applied.append(path.name)
    return applied


def run_migrations() -> None:
    migrations_dir = resolve_migrations_dir()
    with SessionLocal() as db:
        applied = apply_pending_migrations(db, migrations_dir)
        db.commit()
    if applied:
        logger.info(f"[startup] applied migrations {', '.join(applied)} from {migrations_dir}")
    else:
        logger.info(f"[startup] schema up to date ({migrations_dir})")


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    for attempt in range(1, max_attempts + 1):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
            return
        except OperationalError:
            if attempt == max_attempts:
                logger.error(f"[startup] database unreachable after {max_attempts} attempts")
                raise
            logger.warning(f"[startup] database not ready (attempt {attempt}/{max_attempts}), retrying in {delay_seconds}s")
            time.sleep(delay_seconds)


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    run_migrations()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


__all__ = ["app", "apply_pending_migrations", "auth_repo", "get_current_user", "run_migrations", "wait_for_db"]
