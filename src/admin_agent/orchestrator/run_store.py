"""Durable storage for RunState.

Runs are stored serialized (RunState.model_dump(mode="json")) and rebuilt with
RunState.model_validate on every read, in memory and in the database alike.

claim() is the only way out of SUSPENDED for a resume: it moves the run to
RUNNING only if it is still suspended, so one suspension is acted on once.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from admin_agent.errors import NotFoundError, ValidationError
from admin_agent.orchestrator.types import RunState, RunStatus


def claimed_state(state: RunState, claimed_at: datetime) -> RunState:
    """The RUNNING copy a resume works on."""
    return state.model_copy(
        update={"status": RunStatus.RUNNING, "suspend_payload": None, "updated_at": claimed_at}
    )


def expired_state(state: RunState) -> RunState:
    """FAILED copy of an idle run; updated_at keeps the last activity time."""
    return state.model_copy(
        update={
            "status": RunStatus.FAILED,
            "suspend_payload": None,
            "context": {**state.context, "expired": True, "error": "expired"},
        }
    )


class RunStore(Protocol):
    """create/get/update-by-id persistence for runs."""

    async def create(self, state: RunState) -> None:
        """Persist a new run. Raises ValidationError if the id exists."""
        ...

    async def get(self, run_id: str) -> RunState | None:
        """Load a run, or None when unknown."""
        ...

    async def update(self, state: RunState) -> None:
        """Overwrite a run. Raises NotFoundError if the id is unknown."""
        ...

    async def claim(self, run_id: str, claimed_at: datetime) -> RunState | None:
        """Move a SUSPENDED run to RUNNING; None if it is not suspended (anymore)."""
        ...

    async def expire_idle(self, cutoff: datetime) -> int:
        """Mark unfinished runs last updated before `cutoff` as FAILED/expired."""
        ...

    async def delete_expired(self, cutoff: datetime) -> int:
        """Drop finished runs last updated before `cutoff`."""
        ...


class InMemoryRunStore:
    """Process-local store for tests and the CLI.

    No method awaits between reading and writing a run, so each call is atomic
    with respect to other tasks on the event loop.
    """

    def __init__(self) -> None:  # noqa: D107
        self._runs: dict[str, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._runs)

    async def create(self, state: RunState) -> None:
        if state.run_id in self._runs:
            raise ValidationError(f"Run already exists: {state.run_id}")
        self._runs[state.run_id] = state.model_dump(mode="json")

    async def get(self, run_id: str) -> RunState | None:
        data = self._runs.get(run_id)
        return RunState.model_validate(data) if data is not None else None

    async def update(self, state: RunState) -> None:
        if state.run_id not in self._runs:
            raise NotFoundError(f"Unknown run: {state.run_id}")
        self._runs[state.run_id] = state.model_dump(mode="json")

    async def claim(self, run_id: str, claimed_at: datetime) -> RunState | None:
        data = self._runs.get(run_id)
        if data is None or data.get("status") != RunStatus.SUSPENDED.value:
            return None
        state = claimed_state(RunState.model_validate(data), claimed_at)
        self._runs[run_id] = state.model_dump(mode="json")
        return state

    async def expire_idle(self, cutoff: datetime) -> int:
        idle = [
            state
            for data in self._runs.values()
            if not (state := RunState.model_validate(data)).is_terminal
            and state.updated_at < cutoff
        ]
        for state in idle:
            self._runs[state.run_id] = expired_state(state).model_dump(mode="json")
        return len(idle)

    async def delete_expired(self, cutoff: datetime) -> int:
        stale = [
            run_id
            for run_id, data in self._runs.items()
            if (state := RunState.model_validate(data)).is_terminal and state.updated_at < cutoff
        ]
        for run_id in stale:
            del self._runs[run_id]
        return len(stale)


class SqlRunStore:
    """Run store on the service database (SQLAlchemy async)."""

    def __init__(self, session_factory: Callable[[], Any] | None = None) -> None:
        """Initialize the store.

        Args:
            session_factory: async_sessionmaker; defaults to the service's
                AsyncSessionLocal.
        """
        if session_factory is None:
            from admin_agent.service.database import AsyncSessionLocal  # noqa: PLC0415

            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def create(self, state: RunState) -> None:
        from admin_agent.service.repositories.run_repository import RunRepository  # noqa: PLC0415

        async with self.session_factory() as db:
            repo = RunRepository(db)
            if await repo.get(state.run_id) is not None:
                raise ValidationError(f"Run already exists: {state.run_id}")
            await repo.create(state)

    async def get(self, run_id: str) -> RunState | None:
        from admin_agent.service.repositories.run_repository import RunRepository  # noqa: PLC0415

        async with self.session_factory() as db:
            run = await RunRepository(db).get(run_id)
            return RunState.model_validate(run.state) if run is not None else None

    async def update(self, state: RunState) -> None:
        from admin_agent.service.repositories.run_repository import RunRepository  # noqa: PLC0415

        async with self.session_factory() as db:
            if not await RunRepository(db).update(state):
                raise NotFoundError(f"Unknown run: {state.run_id}")

    async def claim(self, run_id: str, claimed_at: datetime) -> RunState | None:
        from admin_agent.service.repositories.run_repository import RunRepository  # noqa: PLC0415

        async with self.session_factory() as db:
            repo = RunRepository(db)
            run = await repo.get(run_id)
            if run is None or run.status != RunStatus.SUSPENDED.value:
                return None
            state = claimed_state(RunState.model_validate(run.state), claimed_at)
            # Conditional UPDATE: only one concurrent claimer sees a changed row
            if not await repo.update(state, expected_status=RunStatus.SUSPENDED):
                return None
            return state

    async def expire_idle(self, cutoff: datetime) -> int:
        from admin_agent.service.repositories.run_repository import RunRepository  # noqa: PLC0415

        async with self.session_factory() as db:
            repo = RunRepository(db)
            idle = [(run.status, run.state) for run in await repo.list_idle(cutoff)]
            expired = 0
            for status, data in idle:
                state = expired_state(RunState.model_validate(data))
                if await repo.update(state, expected_status=RunStatus(status)):
                    expired += 1
            return expired

    async def delete_expired(self, cutoff: datetime) -> int:
        from admin_agent.service.repositories.run_repository import RunRepository  # noqa: PLC0415

        async with self.session_factory() as db:
            return await RunRepository(db).delete_expired(cutoff)
