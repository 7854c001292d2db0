# backend/spabook/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.booking_lifecycle_service import BookingLifecycleService
from .database import get_db

logger = logging.getLogger(__name__)


def get_booking_lifecycle_service(db: Session = Depends(get_db)) -> BookingLifecycleService:
    """
    Get booking lifecycle service instance.

    Args:
        db: Database session

    Returns:
        BookingLifecycleService instance bound to the request session
    """
    return BookingLifecycleService(db)
