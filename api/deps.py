"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

import models
from database import get_db


async def get_current_user_id(
    user_id: int,
    db: Session = Depends(get_db)
) -> int:
    """
    Validate user exists and return user ID
    """
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"User {user_id} is not active"
        )

    return user_id


def pagination_params(
    page: int = 1,
    limit: int = 10
) -> dict:
    """
    Common pagination parameters
    """
    if page < 1:
        page = 1
    if limit < 1:
        limit = 10
    if limit > 100:
        limit = 100

    return {"page": page, "limit": limit}


class ServiceDependency:
    """
    Dependency injection for services

    Each getter is usable with Depends() so tests can swap in services
    built on a fixed clock or a dedicated session factory.
    """

    @staticmethod
    def get_medication_service():
        from services.medication_service import medication_service
        return medication_service

    @staticmethod
    def get_adherence_service():
        from services.adherence_service import adherence_service
        return adherence_service

    @staticmethod
    def get_sweep_service():
        from services.sweep_service import sweep_service
        return sweep_service

    @staticmethod
    def get_analytics_service():
        from services.analytics_service import analytics_service
        return analytics_service


# Service dependency instances
services = ServiceDependency()
