"""
HybridX API - Program Schemas.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from hybridx.models.workout import Program, ProgramType, Workout


class ProgramSummary(BaseModel):
    id: str
    name: str
    description: str = ""
    program_type: ProgramType
    length: int

    @classmethod
    def from_program(cls, program: Program) -> "ProgramSummary":
        return cls(
            id=program.id,
            name=program.name,
            description=program.description,
            program_type=program.program_type,
            length=program.length,
        )


class ProgramRequest(BaseModel):
    """Admin payload for creating or replacing a program."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    program_type: ProgramType = "hyrox"
    workouts: List[Workout] = Field(default_factory=list)

    def to_program(self, program_id: Optional[str] = None) -> Program:
        return Program(id=program_id, **self.model_dump())
