"""
SQLAlchemy ORM models for the curated directory.
"""
from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.db import Base


class ProjectORM(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="active", index=True)

    businesses = relationship(
        "BusinessORM",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class BusinessORM(Base):
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    # Provider place id; one row per place across all projects.
    place_id = Column(String, nullable=False, unique=True, index=True)
    business_name = Column(String, nullable=False)

    project = relationship("ProjectORM", back_populates="businesses")
