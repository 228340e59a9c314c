"""
Async SQLAlchemy repository

The service layer talks to storage only through these methods. Errors from
the driver are not caught here; they propagate to the caller unchanged.
"""
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from hbm_service.core.exceptions import ValidationError
from hbm_service.schemas.common import QueryOptions, PaginatedResult

ModelT = TypeVar("ModelT")


class SQLAlchemyRepository(Generic[ModelT]):
    model: Type[ModelT]

    def __init__(self, db: AsyncSession):
        self.db = db

    def _conditions(self, filters: Optional[Dict[str, Any]]) -> list:
        conditions = []
        for name, value in (filters or {}).items():
            column = getattr(self.model, name, None)
            if column is None:
                raise ValidationError(f"{self.model.__name__} has no field {name!r}")
            if isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(column.in_(list(value)))
            elif value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == value)
        return conditions

    async def find_by_id(self, entity_id) -> Optional[ModelT]:
        result = await self.db.execute(
            select(self.model).where(self.model.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def find_one_by(self, **filters) -> Optional[ModelT]:
        result = await self.db.execute(
            select(self.model).where(*self._conditions(filters)).limit(1)
        )
        return result.scalar_one_or_none()

    async def count(self, filters: Optional[Dict[str, Any]] = None, extra_conditions: Sequence = ()) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(self.model).where(*self._conditions(filters), *extra_conditions)
        )
        return result.scalar_one()

    async def find_all(self, options: Optional[QueryOptions] = None, extra_conditions: Sequence = ()) -> PaginatedResult:
        """
        List entities with equality filters, sorting and paging.

        Args:
            options: Query options; list values in filters become IN clauses
            extra_conditions: SQLAlchemy clauses ANDed with the filters

        Returns:
            PaginatedResult with the page of entities and the total count
        """
        options = options or QueryOptions()
        conditions = self._conditions(options.filters) + list(extra_conditions)

        sort_column = getattr(self.model, options.sort_by or "created_at", None)
        query = select(self.model).where(*conditions)
        if sort_column is not None:
            query = query.order_by(sort_column.asc() if options.sort_order == "asc" else sort_column.desc())
        query = query.offset(options.offset).limit(options.limit)

        result = await self.db.execute(query)
        items = list(result.scalars().all())
        total = await self.count(options.filters, extra_conditions)
        return PaginatedResult(items=items, total=total, page=options.page, limit=options.limit)

    async def create(self, data: Dict[str, Any]) -> ModelT:
        entity = self.model(**data)
        self.db.add(entity)
        await self.db.flush()
        return entity

    async def update(self, entity_id, data: Dict[str, Any]) -> Optional[ModelT]:
        entity = await self.find_by_id(entity_id)
        if entity is None:
            return None
        for name, value in data.items():
            setattr(entity, name, value)
        await self.db.flush()
        return entity

    async def update_where(
        self,
        entity_id,
        expected: Dict[str, Any],
        data: Dict[str, Any],
    ) -> Optional[ModelT]:
        """
        Conditional single-statement update.

        Applies data only if the row still matches every expected value, and
        bumps version when the model has one. Returns None when no row matched.
        """
        values = dict(data)
        if hasattr(self.model, "version"):
            values["version"] = self.model.version + 1

        stmt = (
            update(self.model)
            .where(self.model.id == entity_id, *self._conditions(expected))
            .values(**values)
            .returning(self.model)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def delete(self, entity_id) -> bool:
        result = await self.db.execute(
            delete(self.model).where(self.model.id == entity_id)
        )
        return result.rowcount > 0

    async def find_many(self, ids: List) -> List[ModelT]:
        if not ids:
            return []
        result = await self.db.execute(select(self.model).where(self.model.id.in_(ids)))
        return list(result.scalars().all())
