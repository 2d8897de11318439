"""
Operation log repository.

Data access layer for OperationLog model.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cpa_engine.config.constants import AUDIT_CREATED_BY
from cpa_engine.models.enums import OperationStatus
from cpa_engine.models.operation_log import OperationLog
from cpa_engine.repositories.base import BaseRepository


class OperationLogRepository(BaseRepository[OperationLog]):
    """Operation log repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize operation log repository."""
        super().__init__(OperationLog, session)

    async def log_operation(
        self,
        operation_type: str,
        entity_type: str,
        entity_id: str,
        status: OperationStatus,
        operation_data: dict[str, Any] | None = None,
        result_data: dict[str, Any] | None = None,
        error_message: str | None = None,
        execution_time_ms: int | None = None,
        created_by: str = AUDIT_CREATED_BY,
    ) -> OperationLog:
        """
        Append an audit entry.

        Args:
            operation_type: Operation name
            entity_type: Kind of entity the operation touched
            entity_id: Entity identifier
            status: Outcome
            operation_data: Operation input
            result_data: Operation output
            error_message: Error text for failed operations
            execution_time_ms: Wall time of the operation
            created_by: Actor

        Returns:
            Created log entry
        """
        return await self.create(
            operation_type=operation_type,
            entity_type=entity_type,
            entity_id=entity_id,
            status=status.value,
            operation_data=operation_data,
            result_data=result_data,
            error_message=error_message,
            execution_time_ms=execution_time_ms,
            created_by=created_by,
        )
