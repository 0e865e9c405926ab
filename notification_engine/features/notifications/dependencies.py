"""FastAPI dependencies for the notifications feature.

Example usage:
    from notification_engine.features.notifications.dependencies import (
        NotificationServiceDep,
        SessionDep,
    )

    @router.get("/users/{user_id}/unread-count")
    async def unread(user_id: str, session: SessionDep, service: NotificationServiceDep):
        return await service.count_unread(session, user_id)
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.features.notifications.dispatcher import (
    DispatchCoordinator,
    get_dispatch_coordinator,
)
from notification_engine.features.notifications.retry import RetryScheduler
from notification_engine.features.notifications.service import (
    NotificationService,
    get_notification_service,
)
from notification_engine.infra.database import get_db_session

# Database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_retry_scheduler(
    coordinator: Annotated[DispatchCoordinator, Depends(get_dispatch_coordinator)],
) -> RetryScheduler:
    return RetryScheduler(coordinator)


NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
DispatchCoordinatorDep = Annotated[DispatchCoordinator, Depends(get_dispatch_coordinator)]
RetrySchedulerDep = Annotated[RetryScheduler, Depends(get_retry_scheduler)]
