"""
Base model with shared query patterns.

Query Standards:
- Pagination is mandatory for list queries
- Filters are equality-only via `filters`; anything richer goes in `conditions`
- Default ordering is newest first
"""

from datetime import datetime
from typing import Optional, List, Dict, Any, Sequence, TypeVar
from sqlalchemy import DateTime, Integer, select, func, desc, asc
from sqlalchemy.orm import Mapped, mapped_column, DeclarativeBase
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.utils.clock import utcnow

T = TypeVar("T", bound="BaseModel")

# Primary keys are int4 on Postgres
MAX_ID = 2**31 - 1
# Keeps page * per_page well inside a bigint offset
MAX_PAGE = 100_000

LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """`%term%` with LIKE wildcards in `term` matched literally. Use with escape=LIKE_ESCAPE."""
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


class BaseModel(Base):
    """
    Abstract base model with common fields and CRUD methods.

    All list queries enforce:
    - Explicit pagination
    - Stable ordering (created_at, then id)
    """

    __abstract__ = True

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    # CREATE OPERATIONS

    @classmethod
    async def create(
        cls: type[T], db: AsyncSession, commit: bool = True, **kwargs
    ) -> T:
        """
        Create new instance and optionally commit.
        """
        instance = cls(**kwargs)
        db.add(instance)

        if commit:
            await db.commit()
            await db.refresh(instance)
        else:
            await db.flush()

        return instance

    # READ OPERATIONS

    @classmethod
    async def get_by_id(cls: type[T], db: AsyncSession, id: Any) -> Optional[T]:
        """
        Get single record by primary key. Ids outside the key range are
        simply not found.
        """
        if isinstance(id, int) and not 1 <= id <= MAX_ID:
            return None
        return await db.get(cls, id)

    @classmethod
    async def find_one(
        cls: type[T],
        db: AsyncSession,
        filters: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> Optional[T]:
        """
        Get first matching record.
        """
        query = select(cls)
        if filters:
            query = query.filter_by(**filters)
        if kwargs:
            query = query.filter_by(**kwargs)
        result = await db.execute(query.limit(1))
        return result.scalars().first()

    @classmethod
    def _filtered(
        cls,
        query,
        filters: Optional[Dict[str, Any]] = None,
        conditions: Optional[Sequence[Any]] = None,
        **kwargs,
    ):
        if filters:
            query = query.filter_by(**filters)
        if kwargs:
            query = query.filter_by(**kwargs)
        if conditions:
            query = query.where(*conditions)
        return query

    @classmethod
    async def find_many(
        cls: type[T],
        db: AsyncSession,
        limit: int = 100,
        offset: int = 0,
        filters: Optional[Dict[str, Any]] = None,
        conditions: Optional[Sequence[Any]] = None,
        order_by: Optional[str] = None,
        order_desc: bool = False,
        options: Optional[Sequence[Any]] = None,
        **kwargs,
    ) -> List[T]:
        """
        Get paginated list of records.
        """
        limit = min(limit, 1000)
        query = cls._filtered(select(cls), filters, conditions, **kwargs)

        if options:
            query = query.options(*options)

        if order_by and hasattr(cls, order_by):
            column = getattr(cls, order_by)
            query = query.order_by(
                desc(column) if order_desc else asc(column),
                desc(cls.id) if order_desc else asc(cls.id),
            )
        else:
            query = query.order_by(desc(cls.created_at), desc(cls.id))

        result = await db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all())

    @classmethod
    async def count(
        cls: type[T],
        db: AsyncSession,
        filters: Optional[Dict[str, Any]] = None,
        conditions: Optional[Sequence[Any]] = None,
        **kwargs,
    ) -> int:
        """
        Count matching records.
        """
        query = cls._filtered(
            select(func.count()).select_from(cls), filters, conditions, **kwargs
        )
        result = await db.execute(query)
        return result.scalar_one()

    @classmethod
    async def count_by(
        cls: type[T],
        db: AsyncSession,
        column: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Dict[Any, int]:
        """
        Group-by count on a single column.
        """
        col = getattr(cls, column)
        query = cls._filtered(select(col, func.count()).group_by(col), filters)
        result = await db.execute(query)
        return {key: total for key, total in result.all()}

    @classmethod
    async def exists(
        cls: type[T],
        db: AsyncSession,
        filters: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> bool:
        """
        Check if matching record exists.
        """
        query = cls._filtered(select(cls.id), filters, **kwargs)
        result = await db.execute(select(query.exists()))
        return bool(result.scalar())

    # UPDATE OPERATIONS

    async def save(self: T, db: AsyncSession, commit: bool = True) -> T:
        """
        Save changes to existing instance.
        """
        self.updated_at = utcnow()
        db.add(self)

        if commit:
            await db.commit()
            await db.refresh(self)

        return self

    # DELETE OPERATIONS

    async def delete(self, db: AsyncSession, commit: bool = True) -> None:
        """
        Delete this instance.
        """
        await db.delete(self)

        if commit:
            await db.commit()

    # PAGINATION HELPERS

    @classmethod
    async def paginate(
        cls: type[T],
        db: AsyncSession,
        page: int = 1,
        per_page: int = 20,
        max_per_page: int = 100,
        filters: Optional[Dict[str, Any]] = None,
        conditions: Optional[Sequence[Any]] = None,
        order_by: Optional[str] = None,
        order_desc: bool = False,
        options: Optional[Sequence[Any]] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        """
        Get paginated results with metadata.
        """
        # Enforce limits
        per_page = max(min(per_page, max_per_page), 1)
        page = min(max(page, 1), MAX_PAGE)

        offset = (page - 1) * per_page

        total = await cls.count(db, filters=filters, conditions=conditions, **kwargs)

        items = await cls.find_many(
            db,
            filters=filters,
            conditions=conditions,
            limit=per_page,
            offset=offset,
            order_by=order_by,
            order_desc=order_desc,
            options=options,
            **kwargs,
        )

        pages = (total + per_page - 1) // per_page

        return {
            "items": items,
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": pages,
            "has_next": page < pages,
            "has_prev": page > 1,
        }
