"""Run storage repository (suspended and finished agent runs)."""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from admin_agent.orchestrator.types import RunState, RunStatus
from admin_agent.service.models import RunModel

TERMINAL_STATUSES = (RunStatus.COMPLETED.value, RunStatus.FAILED.value)


class RunRepository:
    """Repository for run CRUD operations.

    Usage:
        async with AsyncSessionLocal() as db:
            repo = RunRepository(db)
            await repo.create(state)
    """

    def __init__(self, db: AsyncSession):  # noqa: D107
        """Initialize repository with database session."""
        self.db = db

    async def create(self, state: RunState) -> RunModel:
        """Insert a new run.

        Args:
            state: Run to persist

        Returns:
            Created run model
        """
        run = RunModel(
            run_id=state.run_id,
            mode=state.mode.value,
            status=state.status.value,
            state=state.model_dump(mode="json"),
            created_at=state.created_at,
            updated_at=state.updated_at,
        )
        self.db.add(run)
        await self.db.commit()
        await self.db.refresh(run)
        return run

    async def get(self, run_id: str) -> Optional[RunModel]:
        """Get run by ID.

        Args:
            run_id: Run identifier

        Returns:
            Run model or None if not found
        """
        result = await self.db.execute(select(RunModel).where(RunModel.run_id == run_id))
        return result.scalar_one_or_none()

    async def update(self, state: RunState, expected_status: RunStatus | None = None) -> bool:
        """Overwrite a stored run with a new state.

        Args:
            state: New state (matched by run_id)
            expected_status: Only update if the stored status still equals this
                (compare-and-set; the check runs inside the UPDATE statement)

        Returns:
            True if a row was updated, False if the run does not exist or its
            status changed
        """
        conditions = [RunModel.run_id == state.run_id]
        if expected_status is not None:
            conditions.append(RunModel.status == expected_status.value)
        result = await self.db.execute(
            update(RunModel)
            .where(*conditions)
            .values(
                status=state.status.value,
                state=state.model_dump(mode="json"),
                updated_at=state.updated_at,
            )
        )
        await self.db.commit()
        return result.rowcount > 0

    async def list_idle(self, cutoff: datetime) -> list[RunModel]:
        """Unfinished runs (suspended or running) last updated before `cutoff`."""
        result = await self.db.execute(
            select(RunModel).where(
                RunModel.status.not_in(TERMINAL_STATUSES), RunModel.updated_at < cutoff
            )
        )
        return list(result.scalars().all())

    async def delete_expired(self, cutoff: datetime) -> int:
        """Delete finished runs last touched before `cutoff`.

        Unfinished runs are never deleted here; list_idle() finds them so the
        caller can mark them expired first.

        Returns:
            Number of deleted runs
        """
        result = await self.db.execute(
            delete(RunModel).where(
                RunModel.status.in_(TERMINAL_STATUSES), RunModel.updated_at < cutoff
            )
        )
        await self.db.commit()
        return result.rowcount
