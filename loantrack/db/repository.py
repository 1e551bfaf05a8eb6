"""Generic async repository over one mapped model."""

from typing import Any, Generic, List, Optional, Sequence, Type, TypeVar
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from loantrack.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Query and insert helpers shared by all repositories.

    Repositories only flush; committing belongs to the UnitOfWork that
    handed them their session.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def create(self, **values) -> ModelType:
        """
        Insert a row and return it with server defaults loaded.

        Raises:
            IntegrityError: If a unique column clashes with an existing row
        """
        instance = self.model(**values)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def get_by_field(self, field_name: str, value: Any) -> Optional[ModelType]:
        """First row whose `field_name` equals `value`, or None."""
        query = self._where({field_name: value}).limit(1)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def filter(
        self, order_by: Sequence[str] = (), **filters: Any
    ) -> List[ModelType]:
        """
        Rows matching every `column=value` filter.

        Args:
            order_by: Column names; a leading '-' sorts that column descending
            **filters: Equality filters
        """
        query = self._where(filters)
        for name in order_by:
            column = getattr(self.model, name.lstrip("-"))
            query = query.order_by(column.desc() if name.startswith("-") else column)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    def _where(self, filters: dict) -> Select:
        query = select(self.model)
        for name, value in filters.items():
            query = query.where(getattr(self.model, name) == value)
        return query
