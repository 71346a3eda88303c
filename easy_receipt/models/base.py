# easy_receipt/models/base.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from easy_receipt.config import settings as app_settings

Base = declarative_base()


def build_engine(url: Optional[str] = None) -> Engine:
    url = url or app_settings.DATABASE_URL

    # In-Memory: eine Verbindung fuer alle Threads teilen
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )

    # SQLite: Pfad absolut machen und Ordner sicherstellen
    if url.startswith("sqlite:///"):
        rel = url[len("sqlite:///"):]  # z. B. ./db/easy_receipt.db
        db_file = Path(rel)
        if not db_file.is_absolute():
            db_file = Path.cwd() / db_file
        db_file.parent.mkdir(parents=True, exist_ok=True)
        abs_url = f"sqlite:///{db_file.as_posix()}"
        return create_engine(
            abs_url,
            connect_args={"check_same_thread": False},  # nur für SQLite
            future=True,
            pool_pre_ping=True,
        )

    # Andere DBs (Postgres/MySQL)
    return create_engine(url, future=True, pool_pre_ping=True)


def make_session_factory(bind: Engine) -> sessionmaker:
    # expire_on_commit=False: zurueckgegebene Belege bleiben nach dem Commit lesbar
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


engine = build_engine()
SessionLocal = make_session_factory(engine)
