"""HybridX API - Repositories Package."""

from hybridx.repositories.base import ProgramRepository, SessionRepository, UserRepository

__all__ = [
    "ProgramRepository",
    "SessionRepository",
    "UserRepository",
]
