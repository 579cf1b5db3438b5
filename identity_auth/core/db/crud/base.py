from typing import Any, Generic, Sequence, Type, TypeVar

from sqlalchemy import (
    SQLColumnExpression,
    and_,
    delete as sa_delete,
    func,
    select,
    update as sa_update,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Delete, Select, Update

from identity_auth.core.exceptions.types import DatabaseException

T = TypeVar("T")


class BaseDB(Generic[T]):
    def __init__(self, model: Type[T]):
        self.model = model

    async def get_one_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
        order_by: list[Any] | None = None,
        for_update: bool = False,
    ) -> T | None:
        """
        Asynchronously retrieves a single record matching the given conditions.

        Args:
            session (AsyncSession): The asynchronous database session to use for the query.
            conditions (Sequence[SQLColumnExpression]): SQLAlchemy expressions to filter the query.
            order_by (list[Any] | None, optional): Ordering applied before taking the first row.
            for_update (bool, optional): Lock the returned row until the transaction ends
                (``SELECT ... FOR UPDATE``). Defaults to False.

        Returns:
            T | None: An instance of the model if found, otherwise None.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt: Select = select(self.model).where(and_(*conditions))
            if order_by:
                stmt = stmt.order_by(*order_by)
            stmt = stmt.limit(1)
            if for_update:
                stmt = stmt.with_for_update()
            result = await session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving one {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e

    async def get_all(
        self,
        session: AsyncSession,
        filters: list[Any] | None = None,
        order_by: list[Any] | None = None,
        limit: int | None = None,
    ) -> Sequence[T]:
        """
        Retrieve filtered, ordered results from the DB.

        Args:
            session: Async SQLAlchemy session.
            filters: list of filters to apply.
            order_by: list of columns/expressions to order by.
            limit: Max number of records to return.

        Returns:
            A sequence of model instances.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt = select(self.model)
            if filters:
                stmt = stmt.filter(*filters)
            if order_by:
                stmt = stmt.order_by(*order_by)
            if limit:
                stmt = stmt.limit(limit)

            result = await session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error retrieving all {self.model.__name__} records: {str(e)}"
            ) from e

    async def create(
        self,
        session: AsyncSession,
        data: dict,
        commit_self: bool = True,
    ) -> T:
        """
        Asynchronously creates and persists a new instance of the model.

        Args:
            session (AsyncSession): The SQLAlchemy asynchronous session to use.
            data (dict): Fields and values to initialize the model instance.
            commit_self (bool, optional): If True, commits the transaction; otherwise
                only flushes the session. Defaults to True.

        Returns:
            T: The newly created model instance.

        Raises:
            DatabaseException: If an error occurs while creating the instance.
        """
        try:
            obj = self.model(**data)
            session.add(obj)

            if commit_self:
                await session.commit()
            else:
                await session.flush()

            await session.refresh(obj)
            return obj
        except (SQLAlchemyError, ValueError) as e:
            raise DatabaseException(
                f"Error creating {self.model.__name__}: {str(e)}"
            ) from e

    async def update_by_conditions(
        self,
        session: AsyncSession,
        conditions: list[SQLColumnExpression],
        updates: dict,
        commit_self: bool = True,
    ) -> int:
        """
        Asynchronously updates records matching the given conditions.

        Args:
            session (AsyncSession): The SQLAlchemy asynchronous session to use.
            conditions (list[SQLColumnExpression]): Expressions selecting the records to update.
            updates (dict): Fields and their new values. Values may be SQL expressions,
                e.g. ``model.attempts + 1``, which keeps the increment inside the statement.
            commit_self (bool, optional): If True, commits the transaction after the update;
                otherwise flushes the session. Defaults to True.

        Returns:
            int: The number of records updated.

        Raises:
            DatabaseException: If an error occurs while updating the records.
        """
        try:
            stmt: Update = (
                sa_update(self.model)
                .where(and_(*conditions))
                .values(**updates)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)

            if commit_self:
                await session.commit()
            else:
                await session.flush()

            return result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error updating {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e

    async def delete_by_conditions(
        self,
        session: AsyncSession,
        conditions: list[SQLColumnExpression],
        commit_self: bool = True,
    ) -> int:
        """
        Asynchronously hard-deletes records matching the given conditions.

        Args:
            session (AsyncSession): The SQLAlchemy asynchronous session to use.
            conditions (list[SQLColumnExpression]): Expressions selecting the records to delete.
            commit_self (bool, optional): If True, commits the transaction after the delete;
                otherwise flushes the session. Defaults to True.

        Returns:
            int: The number of records deleted.

        Raises:
            DatabaseException: If an error occurs while deleting the records.
        """
        try:
            stmt: Delete = (
                sa_delete(self.model)
                .where(and_(*conditions))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)

            if commit_self:
                await session.commit()
            else:
                await session.flush()

            return result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error deleting {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e

    async def acquire_key_lock(self, session: AsyncSession, key: str) -> None:
        """
        Take a transaction-scoped PostgreSQL advisory lock on ``key``.

        Serialises writers that share a logical key (e.g. one resident's SMS
        OTPs) even when no row exists yet to lock. Released on commit/rollback.

        Raises:
            DatabaseException: If an error occurs while acquiring the lock.
        """
        try:
            await session.execute(
                select(func.pg_advisory_xact_lock(func.hashtext(key)))
            )
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error acquiring lock for {self.model.__name__} key {key}: {str(e)}"
            ) from e
