"""Repository implementations."""

from src.persistence.repositories.profile_repo import ProfileRepository, ProfileSync

__all__ = ["ProfileRepository", "ProfileSync"]
