"""Storage for experiments, sticky assignments and events.

The service depends only on the ExperimentRepository protocol. Two
implementations are provided: an async SQLAlchemy one used by the API, and
an in-memory one for tests and local experimentation. Both return the ORM
model instances from bucketlab.models.experiment.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Tuple

from sqlalchemy import case, delete, distinct, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bucketlab.models.experiment import Assignment, Event, EventType, Experiment
from bucketlab.services.experiments.results import VariationCounts


class ExperimentRepository(Protocol):
    async def list_experiments(
        self, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[Experiment]: ...

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]: ...

    async def create_experiment(self, experiment: Experiment) -> Experiment: ...

    async def save_experiment(self, experiment: Experiment) -> Experiment: ...

    async def delete_experiment(self, experiment: Experiment) -> None: ...

    async def get_assignment(self, experiment_id: str, user_id: str) -> Optional[Assignment]: ...

    async def create_assignment_if_absent(self, assignment: Assignment) -> Assignment:
        """Store the assignment unless one exists for the pair; return the stored one."""
        ...

    async def record_event(self, event: Event) -> Event: ...

    async def get_variation_counts(self, experiment_id: str) -> Dict[str, VariationCounts]:
        """Distinct users and distinct converting users per variation id."""
        ...


class SQLAlchemyExperimentRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_experiments(
        self, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[Experiment]:
        query = (
            select(Experiment)
            .order_by(Experiment.created_at.desc())
            .limit(limit)
            .offset(offset)
        )

        if status:
            query = query.where(Experiment.status == status)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        result = await self.db.execute(
            select(Experiment)
            .where(Experiment.id == experiment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_experiment(self, experiment: Experiment) -> Experiment:
        self.db.add(experiment)
        await self.db.commit()
        # Reload server-side defaults and the ordered variations
        return await self.get_experiment(experiment.id)

    async def save_experiment(self, experiment: Experiment) -> Experiment:
        await self.db.commit()
        return await self.get_experiment(experiment.id)

    async def delete_experiment(self, experiment: Experiment) -> None:
        await self.db.execute(delete(Event).where(Event.experiment_id == experiment.id))
        await self.db.execute(delete(Assignment).where(Assignment.experiment_id == experiment.id))
        await self.db.delete(experiment)
        await self.db.commit()

    async def get_assignment(self, experiment_id: str, user_id: str) -> Optional[Assignment]:
        result = await self.db.execute(
            select(Assignment).where(
                Assignment.experiment_id == experiment_id,
                Assignment.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_assignment_if_absent(self, assignment: Assignment) -> Assignment:
        experiment_id, user_id = assignment.experiment_id, assignment.user_id
        self.db.add(assignment)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent request stored this pair first, theirs is the assignment
            await self.db.rollback()
            existing = await self.get_assignment(experiment_id, user_id)
            if existing is None:
                raise
            return existing

        await self.db.refresh(assignment)
        return assignment

    async def record_event(self, event: Event) -> Event:
        self.db.add(event)
        await self.db.commit()
        await self.db.refresh(event)
        return event

    async def get_variation_counts(self, experiment_id: str) -> Dict[str, VariationCounts]:
        converters = case((Event.event_type == EventType.CONVERSION, Event.user_id))
        result = await self.db.execute(
            select(
                Event.variation_id,
                func.count(distinct(Event.user_id)).label("total_users"),
                func.count(distinct(converters)).label("conversions"),
            )
            .where(Event.experiment_id == experiment_id)
            .group_by(Event.variation_id)
        )

        return {
            row.variation_id: VariationCounts(
                total_users=row.total_users, conversions=row.conversions
            )
            for row in result
        }


class InMemoryExperimentRepository:
    """Dict-backed repository. Not shared between processes."""

    def __init__(self):
        self._experiments: Dict[str, Experiment] = {}
        self._assignments: Dict[Tuple[str, str], Assignment] = {}
        self._events: List[Event] = []

    async def list_experiments(
        self, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[Experiment]:
        # Newest first
        experiments = list(reversed(self._experiments.values()))
        if status:
            experiments = [e for e in experiments if _enum_value(e.status) == status]
        return experiments[offset : offset + limit]

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        return self._experiments.get(experiment_id)

    async def create_experiment(self, experiment: Experiment) -> Experiment:
        now = datetime.now(timezone.utc)
        experiment.created_at = now
        experiment.updated_at = now
        for variation in experiment.variations:
            variation.created_at = now
        self._experiments[experiment.id] = experiment
        return experiment

    async def save_experiment(self, experiment: Experiment) -> Experiment:
        experiment.updated_at = datetime.now(timezone.utc)
        self._experiments[experiment.id] = experiment
        return experiment

    async def delete_experiment(self, experiment: Experiment) -> None:
        self._experiments.pop(experiment.id, None)
        self._assignments = {
            key: a for key, a in self._assignments.items() if key[0] != experiment.id
        }
        self._events = [e for e in self._events if e.experiment_id != experiment.id]

    async def get_assignment(self, experiment_id: str, user_id: str) -> Optional[Assignment]:
        return self._assignments.get((experiment_id, user_id))

    async def create_assignment_if_absent(self, assignment: Assignment) -> Assignment:
        if assignment.assigned_at is None:
            assignment.assigned_at = datetime.now(timezone.utc)
        key = (assignment.experiment_id, assignment.user_id)
        return self._assignments.setdefault(key, assignment)

    async def record_event(self, event: Event) -> Event:
        if event.created_at is None:
            event.created_at = datetime.now(timezone.utc)
        self._events.append(event)
        return event

    async def get_variation_counts(self, experiment_id: str) -> Dict[str, VariationCounts]:
        users: Dict[str, set] = {}
        converters: Dict[str, set] = {}

        for event in self._events:
            if event.experiment_id != experiment_id:
                continue
            users.setdefault(event.variation_id, set()).add(event.user_id)
            if _enum_value(event.event_type) == EventType.CONVERSION.value:
                converters.setdefault(event.variation_id, set()).add(event.user_id)

        return {
            variation_id: VariationCounts(
                total_users=len(user_ids),
                conversions=len(converters.get(variation_id, ())),
            )
            for variation_id, user_ids in users.items()
        }


def _enum_value(value) -> str:
    # Enum members and plain strings both end up as their string value
    return getattr(value, "value", value)
