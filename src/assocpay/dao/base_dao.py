# src/assocpay/dao/base_dao.py

import operator
from typing import Type, TypeVar, Generic, Any, Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import inspect, or_, and_, func, select, update
from sqlalchemy.orm import selectinload, joinedload, with_loader_criteria
from sqlalchemy.orm.strategy_options import Load
from sqlalchemy.sql.selectable import Select
from assocpay.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)

# 条件三元组 (field, op, value) 支持的运算符
_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

class BaseDao(Generic[ModelType]):
    def __init__(self, model_class: Type[ModelType], db_session: AsyncSession):
        self.model: Type[ModelType] = model_class
        self.db_session: AsyncSession = db_session
        primary_keys = inspect(model_class).primary_key
        if not primary_keys:
            raise ValueError(f"Model {model_class.__name__} does not have a primary key.")
        self.pk: str = primary_keys[0].name

    # ==============================================================================
    # 1. 实体/对象方法 (Object Methods)
    # ==============================================================================

    async def get_list(
        self,
        where: Optional[dict | list] = None,
        where_or: Optional[list] = None,
        withs: Optional[list] = None,
        options: Optional[List[Any]] = None,
        order: Optional[list] = None,
        page: int = 0,
        limit: int = 0,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        time_key: str = "created_at"
    ) -> list[ModelType]:
        stmt = self._quick_query(
            where=where, where_or=where_or, withs=withs, options=options, order=order,
            page=page, limit=limit, start_time=start_time, end_time=end_time, time_key=time_key
        )
        executed = await self.db_session.execute(stmt)
        return list(executed.scalars().all())

    async def get_one(
        self,
        where: Optional[dict | list] = None,
        where_or: Optional[list] = None,
        withs: Optional[list] = None,
        options: Optional[List[Any]] = None,
        order: Optional[list] = None
    ) -> Optional[ModelType]:
        stmt = self._quick_query(
            where=where, where_or=where_or, withs=withs, options=options, order=order
        )
        executed = await self.db_session.execute(stmt)
        return executed.scalars().first()

    async def get_by_pk(
        self,
        pk_value: Any,
        withs: Optional[list] = None,
        options: Optional[List[Any]] = None
    ) -> Optional[ModelType]:
        return await self.get_one(where={self.pk: pk_value}, withs=withs, options=options)

    async def reload(self, pk_value: Any, withs: Optional[list] = None) -> Optional[ModelType]:
        """
        Re-reads a row, overwriting any stale state held in the identity map.
        Needed after bulk UPDATE statements, which bypass the session.
        """
        stmt = self._quick_query(where={self.pk: pk_value}, withs=withs)
        stmt = stmt.execution_options(populate_existing=True)
        executed = await self.db_session.execute(stmt)
        return executed.scalars().first()

    async def count(
        self,
        where: Optional[dict | list] = None,
        where_or: Optional[list] = None,
    ) -> int:
        subquery_stmt = self._quick_query(where=where, where_or=where_or).subquery()
        count_stmt = select(func.count()).select_from(subquery_stmt)
        executed = await self.db_session.execute(count_stmt)
        return executed.scalar() or 0

    async def add(self, instance: ModelType, auto_flush: bool = True) -> ModelType:
        self.db_session.add(instance)
        if auto_flush:
            await self.db_session.flush()
            await self.db_session.refresh(instance)
        return instance

    # ==============================================================================
    # 2. 数据/批量方法 (Data/Bulk Methods)
    # ==============================================================================

    async def update_where(self, where: dict | list, values: dict) -> int:
        """
        条件更新，返回受影响行数。
        rowcount 是条件状态迁移 (compare-and-set) 的判定依据。
        """
        if not where or not values:
            return 0
        conditions = self._where_format(where)
        stmt = (
            update(self.model)
            .where(*conditions)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        executed = await self.db_session.execute(stmt)
        return executed.rowcount

    # ==============================================================================
    # 3. 查询构建辅助方法 (Query Building Helpers)
    # ==============================================================================

    def _to_class(self, relationship_property: Any) -> Type[Base]:
        return relationship_property.property.mapper.class_

    def _quick_query(
        self,
        stmt: Optional[Select] = None,
        where: Optional[dict | list] = None,
        where_or: Optional[list] = None,
        withs: Optional[list] = None,
        options: Optional[List[Any]] = None,
        order: Optional[list] = None,
        page: int = 0,
        limit: int = 0,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        time_key: str = "created_at"
    ) -> Select:
        if stmt is None:
            stmt = select(self.model)

        if where is not None:
            stmt = stmt.filter(*self._where_format(where))

        if where_or is not None:
            stmt = stmt.filter(or_(*where_or))

        if start_time is not None:
            stmt = stmt.filter(getattr(self.model, time_key) >= start_time)
        if end_time is not None:
            stmt = stmt.filter(getattr(self.model, time_key) <= end_time)

        if withs is not None:
            stmt = self._withs(stmt, withs)

        if options is not None:
            stmt = stmt.options(*options)

        if order is not None:
            stmt = stmt.order_by(*order)

        if limit > 0:
            stmt = stmt.limit(limit)
            if page > 0:
                stmt = stmt.offset((page - 1) * limit)

        return stmt

    def _withs(self, stmt: Select, withs: list) -> Select:
        if not withs:
            return stmt
        return stmt.options(*[self._build_loader_option(config, self.model) for config in withs])

    def _build_loader_option(self, config: str | dict | Load, current_entity: Any) -> Any:
        """
        Recursively builds a single loader option.
        Relationships must be loaded eagerly: lazy loads are not allowed under AsyncSession.
        """
        if isinstance(config, Load):
            return config

        if isinstance(config, str):
            return selectinload(getattr(current_entity, config))

        if isinstance(config, dict):
            name = config.get("name")
            if not name:
                raise ValueError("Relation 'name' is required in withs configuration.")

            loader_str = config.get("loader", "selectinload")
            loader_func = {"selectinload": selectinload, "joinedload": joinedload}.get(loader_str)
            if not loader_func:
                raise ValueError(f"Invalid loader specified: {loader_str}")

            relationship_attr = getattr(current_entity, name)
            target_model_class = self._to_class(relationship_attr)
            loader_option = loader_func(relationship_attr)

            nested_options = []
            if "where" in config:
                where_clauses = self._where_format(config["where"], model=target_model_class)
                nested_options.append(with_loader_criteria(target_model_class, and_(*where_clauses)))

            for nested_config in config.get("withs", []):
                nested_options.append(self._build_loader_option(nested_config, target_model_class))

            if nested_options:
                loader_option = loader_option.options(*nested_options)

            return loader_option

        raise TypeError("Unsupported 'withs' configuration type. Must be str or dict.")

    def _where_format(self, conditions: list | dict, model: Optional[Type[Base]] = None) -> list:
        if model is None:
            model = self.model

        if not conditions:
            return []

        processed_conditions = []
        if isinstance(conditions, list):
            for condition in conditions:
                if isinstance(condition, (list, tuple)):
                    field_name, op, value = condition
                    field = getattr(model, field_name)
                    if op == 'in':
                        expr = field.in_(value)
                    elif op == 'not in':
                        expr = field.not_in(value)
                    elif op == 'is':
                        expr = field.is_(value)
                    elif op in _OPERATORS:
                        expr = _OPERATORS[op](field, value)
                    else:
                        raise ValueError(f"Unsupported operator '{op}' in where condition.")
                    processed_conditions.append(expr)
                else:
                    processed_conditions.append(condition)
        elif isinstance(conditions, dict):
            processed_conditions = [getattr(model, field) == value for field, value in conditions.items()]
        if len(processed_conditions) > 1:
            processed_conditions = [and_(*processed_conditions)]
        return processed_conditions
