"""Project service - Business logic for project operations"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Project, User
from .repository import ProjectRepository
from .schemas import ProjectCreate

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = ProjectRepository()

    def get_projects(self, user: User) -> list[Project]:
        return self.repo.get_projects(self.db, user.id)

    def get_project(self, project_id: int, user: User) -> Project:
        project = self.repo.get_project(self.db, project_id, user.id)
        if not project:
            raise HTTPException(status_code=404, detail="Project not found")
        return project

    def create_project(self, data: ProjectCreate, user: User) -> Project:
        project = self.repo.create_project(self.db, user.id, **data.model_dump())
        logger.info(f"✅ Project created: {project.id} for user {user.id}")
        return project
