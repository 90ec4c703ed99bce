"""Project repository - Database operations for projects"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Project


class ProjectRepository:
    """Repository for project database operations"""

    @staticmethod
    def get_projects(db: Session, user_id: int) -> list[Project]:
        return (
            db.query(Project)
            .filter(Project.user_id == user_id)
            .order_by(Project.created_at.desc(), Project.id.desc())
            .all()
        )

    @staticmethod
    def get_project(db: Session, project_id: int, user_id: int) -> Optional[Project]:
        """Get a project owned by the user"""
        return db.query(Project).filter(Project.id == project_id, Project.user_id == user_id).first()

    @staticmethod
    def create_project(db: Session, user_id: int, **project_data) -> Project:
        project = Project(user_id=user_id, **project_data)
        db.add(project)
        db.commit()
        db.refresh(project)
        return project
