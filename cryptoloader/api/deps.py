"""API dependencies"""

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from cryptoloader.core.db import SessionLocal
from cryptoloader.services.etl_service import ETLService


def get_db() -> Generator[Session, None, None]:
    """One session per request, closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_etl_service(db: Session = Depends(get_db)) -> ETLService:
    return ETLService(db)
