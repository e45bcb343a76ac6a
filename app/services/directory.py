"""
Curated business directory backed by SQLAlchemy.

The allow-list of provider place ids lives in ``businesses``; each row
belongs to a ``projects`` grouping. Tool handlers only read from it.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import get_session
from app.repositories.models import BusinessORM, ProjectORM

logger = logging.getLogger(__name__)


class DirectoryStore:
    """Allow-list queries over one session."""

    def __init__(self, session: Session):
        self.session = session

    def list_all_place_ids(self) -> List[str]:
        """Every curated place id across all projects, without duplicates."""
        rows = self.session.scalars(select(BusinessORM.place_id)).all()
        return list(dict.fromkeys(rows))

    def filter_known_ids(self, candidate_ids: Iterable[str]) -> List[str]:
        """Subset of ``candidate_ids`` present in the allow-list (exact, case-sensitive)."""
        candidates = list(dict.fromkeys(candidate_ids))
        if not candidates:
            return []
        stmt = select(BusinessORM.place_id).where(BusinessORM.place_id.in_(candidates))
        return list(self.session.scalars(stmt).all())

    def create_project(self, name: str, description: Optional[str] = None) -> int:
        orm = ProjectORM(name=name, description=description)
        self.session.add(orm)
        self.session.commit()
        return orm.id

    def add_business(self, project_id: int, place_id: str, business_name: str) -> int:
        """Add a place to the allow-list. Raises IntegrityError on a duplicate id."""
        orm = BusinessORM(project_id=project_id, place_id=place_id, business_name=business_name)
        self.session.add(orm)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise
        logger.debug("Curated place %s added to project %s", place_id, project_id)
        return orm.id

    def delete_project(self, project_id: int) -> None:
        """Remove a project together with its curated places."""
        orm = self.session.get(ProjectORM, project_id)
        if orm:
            self.session.delete(orm)
            self.session.commit()


def get_directory_store(session: Session = Depends(get_session)) -> DirectoryStore:
    return DirectoryStore(session)
