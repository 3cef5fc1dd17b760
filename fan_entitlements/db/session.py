"""Session factory for the platform database."""

import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


def create_session_factory(database_url: Optional[str] = None, **engine_kwargs) -> sessionmaker:
    """
    Build a sessionmaker bound to DATABASE_URL (or the given URL).

    Raises:
        ValueError: if no URL is configured
    """
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise ValueError("DATABASE_URL is required")
    engine = create_engine(url, pool_pre_ping=True, **engine_kwargs)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
