"""
HybridX API - Program Routes.

Programs are readable by every subscriber; only admins change them.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status

from hybridx.dependencies import get_program_repository, require_access, require_admin
from hybridx.models.user import User
from hybridx.models.workout import Program
from hybridx.repositories.base import ProgramRepository
from hybridx.schemas.program import ProgramRequest, ProgramSummary
from hybridx.utils.errors import NotFoundError


router = APIRouter()
logger = logging.getLogger(__name__)


async def _get_or_404(programs: ProgramRepository, program_id: str) -> Program:
    program = await programs.get(program_id)
    if program is None:
        raise NotFoundError("Program not found")
    return program


@router.get("", response_model=List[ProgramSummary])
async def list_programs(
    user: User = Depends(require_access),
    programs: ProgramRepository = Depends(get_program_repository),
) -> List[ProgramSummary]:
    return [ProgramSummary.from_program(p) for p in await programs.list_all()]


@router.get("/{program_id}", response_model=Program)
async def get_program(
    program_id: str,
    user: User = Depends(require_access),
    programs: ProgramRepository = Depends(get_program_repository),
) -> Program:
    return await _get_or_404(programs, program_id)


@router.post("", response_model=Program, status_code=status.HTTP_201_CREATED)
async def create_program(
    request: ProgramRequest,
    admin: User = Depends(require_admin),
    programs: ProgramRepository = Depends(get_program_repository),
) -> Program:
    program = await programs.create(request.to_program())
    logger.info(f"Admin {admin.id} created program {program.id} ({program.name})")
    return program


@router.put("/{program_id}", response_model=Program)
async def update_program(
    program_id: str,
    request: ProgramRequest,
    admin: User = Depends(require_admin),
    programs: ProgramRepository = Depends(get_program_repository),
) -> Program:
    await _get_or_404(programs, program_id)
    program = await programs.update(request.to_program(program_id))
    logger.info(f"Admin {admin.id} updated program {program_id}")
    return program


@router.delete("/{program_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_program(
    program_id: str,
    admin: User = Depends(require_admin),
    programs: ProgramRepository = Depends(get_program_repository),
) -> None:
    await _get_or_404(programs, program_id)
    await programs.delete(program_id)
    logger.info(f"Admin {admin.id} deleted program {program_id}")
