from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.auth import Actor, get_actor
from app.database import get_db
from app.routers.common import unwrap
from app.schemas import ProjectCreate, ProjectDetail, ProjectSummary, ProjectUpdate, SectionCreate, SectionRead
from app.services.effects import SideEffects, get_side_effects
from app.services.project_service import ProjectService

router = APIRouter(tags=["projects"])


@router.post("/projects/", response_model=ProjectSummary, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    """Create a project with the default To Do / In Progress / Done sections"""
    return unwrap(await ProjectService.create_project(data, actor, db, effects))


@router.get("/projects/", response_model=list[ProjectSummary])
async def list_projects(
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return await ProjectService.list_projects(actor, db, effects=effects)


@router.get("/projects/{project_id}", response_model=ProjectDetail)
async def get_project(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    """Board view: sections with their ordered tasks and the team members"""
    project = await ProjectService.get_project(project_id, db, effects=effects)
    if not project:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Project with id {project_id} not found",
        )
    return project


@router.patch("/projects/{project_id}", response_model=ProjectSummary)
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return unwrap(await ProjectService.update_project(project_id, data, actor, db, effects))


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await ProjectService.delete_project(project_id, actor, db, effects))


@router.post("/sections/", response_model=SectionRead, status_code=status.HTTP_201_CREATED)
async def create_section(
    data: SectionCreate,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    return unwrap(await ProjectService.create_section(data.project_id, data.name, actor, db, effects))


@router.delete("/sections/{section_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_section(
    section_id: str,
    actor: Actor | None = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    effects: SideEffects = Depends(get_side_effects),
):
    unwrap(await ProjectService.delete_section(section_id, actor, db, effects))
