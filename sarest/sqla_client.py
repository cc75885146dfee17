# -*- coding: utf-8 -*-
"""
DbClient implementation for SQLAlchemy declarative models

The Prisma style arguments created by the request handler are translated to SQLAlchemy
select statements and unit-of-work operations on a Session. Relations are loaded with
`with_parent` queries so nested where/orderBy/skip/take arguments can be applied.

With an AsyncSession every call runs in `AsyncSession.run_sync`, so the request handler
awaits the database I/O:

    engine = create_async_engine("postgresql+asyncpg://...")
    async with AsyncSession(engine) as session:
        client = SQLAlchemyClient(session, [User, Post])
        response = await handler.handle_request(client, "GET", "/post")

A synchronous Session is accepted as well (scripts, tests), its calls block the event loop.
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, Union

import sqlalchemy
from sqlalchemy import and_, func, not_, or_, select, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, aliased, with_parent

import sarest
from .client import DbClient
from .errors import DbError, DbErrorCode, DbValidationError, KnownRequestError, UnknownRequestError
from .registry import lower_case_first

# IntegrityError message fragments (sqlite, postgres, mysql) -> error code
INTEGRITY_ERRORS = (
    ("UNIQUE", DbErrorCode.UNIQUE_CONSTRAINT_FAILED),
    ("DUPLICATE", DbErrorCode.UNIQUE_CONSTRAINT_FAILED),
    ("FOREIGN KEY", DbErrorCode.FOREIGN_KEY_CONSTRAINT_FAILED),
    ("NOT NULL", DbErrorCode.NULL_CONSTRAINT_VIOLATION),
    ("NOT-NULL", DbErrorCode.NULL_CONSTRAINT_VIOLATION),
    ("CANNOT BE NULL", DbErrorCode.NULL_CONSTRAINT_VIOLATION),
)


class SQLAlchemyClient(DbClient):
    """
    :param session: AsyncSession, or a synchronous Session
    :param models: declarative classes, exposed by their lower case first class name
    :param autocommit: commit the session after every write, otherwise the session is only flushed
    """

    def __init__(self, session: Union[AsyncSession, Session], models: Iterable[Type[Any]], autocommit: bool = True) -> None:
        self.session = session
        self.models = {lower_case_first(Model.__name__): Model for Model in models}
        self.autocommit = autocommit

    def _model(self, type_name: str) -> Type[Any]:
        Model = self.models.get(type_name)
        if Model is None:
            raise DbValidationError(f"Unknown model {type_name}")
        return Model

    async def _run(self, fun: Callable[..., Any], *args: Any) -> Any:
        """
        Execute fun(session, *args), in the greenlet of the AsyncSession if there is one
        """
        if isinstance(self.session, AsyncSession):
            return await self.session.run_sync(self._call, fun, *args)
        return self._call(self.session, fun, *args)

    def _call(self, session: Session, fun: Callable[..., Any], *args: Any) -> Any:
        with self._errors(session):
            return fun(session, *args)

    @contextmanager
    def _errors(self, session: Session):
        """
        Convert SQLAlchemy exceptions to DbErrors, the session is rolled back on failure
        """
        try:
            yield
        except DbError:
            session.rollback()
            raise
        except IntegrityError as exc:
            session.rollback()
            message = str(exc.orig) if exc.orig is not None else str(exc)
            for fragment, code in INTEGRITY_ERRORS:
                if fragment in message.upper():
                    raise KnownRequestError(message, code) from exc
            sarest.log.error(f"Integrity error: {message}")
            raise UnknownRequestError(message) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            sarest.log.error(f"Database error: {exc}")
            raise UnknownRequestError(str(exc)) from exc

    def _write_done(self, session: Session) -> None:
        if self.autocommit:
            session.commit()
        else:
            session.flush()

    #
    # where
    #
    def _clause(self, Model: Type[Any], where: Optional[Dict[str, Any]]):
        clauses = self._where(Model, where or {})
        if not clauses:
            return true()
        return and_(*clauses) if len(clauses) > 1 else clauses[0]

    def _where(self, Model: Type[Any], where: Dict[str, Any]) -> List[Any]:
        mapper = sqlalchemy.inspect(Model)
        clauses = []
        for key, value in where.items():
            if key in ("AND", "OR", "NOT"):
                items = value if isinstance(value, list) else [value]
                sub_clauses = [self._clause(Model, item) for item in items]
                if key == "AND":
                    clauses.append(and_(true(), *sub_clauses))
                elif key == "OR":
                    clauses.append(or_(*sub_clauses) if sub_clauses else sqlalchemy.false())
                else:
                    clauses.append(not_(and_(true(), *sub_clauses)))
            elif key in mapper.relationships:
                clauses.append(self._relation_filter(Model, mapper.relationships[key], value))
            elif key in mapper.column_attrs:
                clauses.append(self._column_filter(getattr(Model, key), value))
            else:
                raise DbValidationError(f"Unknown field {key} of {Model.__name__}")
        return clauses

    def _relation_filter(self, Model: Type[Any], rel: Any, value: Any):
        attr = getattr(Model, rel.key)
        Target = rel.mapper.class_
        if not isinstance(value, dict):
            raise DbValidationError(f"Invalid filter for relation {rel.key}")
        if rel.uselist:
            clauses = []
            for op, where in value.items():
                if op == "some":
                    clauses.append(attr.any(self._clause(Target, where)))
                elif op == "every":
                    clauses.append(not_(attr.any(not_(self._clause(Target, where)))))
                elif op == "none":
                    clauses.append(not_(attr.any(self._clause(Target, where))))
                else:
                    raise DbValidationError(f"Invalid filter operation {op} for relation {rel.key}")
            return and_(true(), *clauses)
        if not set(value) <= {"is", "isNot"}:
            return attr.has(self._clause(Target, value))
        clauses = []
        if "is" in value:
            where = value["is"]
            clauses.append(not_(attr.has()) if where is None else attr.has(self._clause(Target, where)))
        if "isNot" in value:
            where = value["isNot"]
            clauses.append(attr.has() if where is None else not_(attr.has(self._clause(Target, where))))
        return and_(true(), *clauses)

    def _column_filter(self, column: Any, value: Any):
        if not isinstance(value, dict):
            return column.is_(None) if value is None else column == value
        insensitive = value.get("mode") == "insensitive"
        clauses = []
        for op, operand in value.items():
            if op == "mode":
                continue
            if op == "equals":
                clause = column.is_(None) if operand is None else column == operand
            elif op == "in":
                clause = column.in_(operand)
            elif op == "notIn":
                clause = column.not_in(operand)
            elif op == "lt":
                clause = column < operand
            elif op == "lte":
                clause = column <= operand
            elif op == "gt":
                clause = column > operand
            elif op == "gte":
                clause = column >= operand
            elif op == "contains":
                clause = column.icontains(operand, autoescape=True) if insensitive else column.contains(operand, autoescape=True)
            elif op == "startsWith":
                clause = column.istartswith(operand, autoescape=True) if insensitive else column.startswith(operand, autoescape=True)
            elif op == "endsWith":
                clause = column.iendswith(operand, autoescape=True) if insensitive else column.endswith(operand, autoescape=True)
            elif op == "search":
                clause = column.match(operand)
            elif op == "has":
                clause = column.contains([operand])
            elif op == "hasEvery":
                clause = column.contains(operand)
            elif op == "hasSome":
                clause = column.overlap(operand)
            elif op == "isEmpty":
                clause = func.coalesce(func.cardinality(column), 0) == 0
                clause = clause if operand else not_(clause)
            elif op == "not":
                clause = not_(self._column_filter(column, operand)) if isinstance(operand, dict) else self._not_equal(column, operand)
            else:
                raise DbValidationError(f"Invalid filter operation {op}")
            clauses.append(clause)
        return and_(true(), *clauses)

    @staticmethod
    def _not_equal(column: Any, value: Any):
        return column.is_not(None) if value is None else column != value

    #
    # orderBy, skip, take
    #
    def _order(self, Model: Type[Any], stmt: Any, order_by: Any) -> Any:
        mapper = sqlalchemy.inspect(Model)
        items = order_by if isinstance(order_by, (list, tuple)) else [order_by] if order_by else []
        for item in items:
            for key, direction in item.items():
                if key in mapper.relationships:
                    rel = mapper.relationships[key]
                    if rel.uselist:
                        raise DbValidationError(f"Can't order by collection {key}")
                    Alias = aliased(rel.mapper.class_)
                    stmt = stmt.outerjoin(Alias, getattr(Model, key).of_type(Alias))
                    for sub_key, sub_direction in direction.items():
                        stmt = stmt.order_by(self._direction(getattr(Alias, sub_key), sub_direction))
                elif key in mapper.column_attrs:
                    stmt = stmt.order_by(self._direction(getattr(Model, key), direction))
                else:
                    raise DbValidationError(f"Unknown field {key} of {Model.__name__}")
        # primary key order for stable pagination
        return stmt.order_by(*mapper.primary_key)

    @staticmethod
    def _direction(column: Any, direction: str) -> Any:
        if direction not in ("asc", "desc"):
            raise DbValidationError(f"Invalid sort direction {direction}")
        return column.desc() if direction == "desc" else column.asc()

    def _select(self, Model: Type[Any], args: Dict[str, Any], parent: Any = None, rel: Any = None) -> Any:
        stmt = select(Model)
        if parent is not None:
            stmt = stmt.where(with_parent(parent, getattr(type(parent), rel.key)))
        if args.get("where"):
            stmt = stmt.where(self._clause(Model, args["where"]))
        stmt = self._order(Model, stmt, args.get("orderBy"))
        if args.get("skip"):
            stmt = stmt.offset(args["skip"])
        if args.get("take") is not None:
            stmt = stmt.limit(args["take"])
        return stmt

    #
    # Result shaping: select / include / _count
    #
    def _related(self, session: Session, obj: Any, rel: Any, args: Any) -> Any:
        args = args if isinstance(args, dict) else {}
        Target = rel.mapper.class_
        rows = session.scalars(self._select(Target, args, obj, rel)).all()
        if rel.uselist:
            return [self._shape(session, Target, row, args) for row in rows]
        return self._shape(session, Target, rows[0], args) if rows else None

    def _counts(self, session: Session, Model: Type[Any], obj: Any, args: Any) -> Dict[str, int]:
        mapper = sqlalchemy.inspect(Model)
        if isinstance(args, dict) and "select" in args:
            selection = args["select"]
        else:
            selection = {rel.key: True for rel in mapper.relationships if rel.uselist}
        result = {}
        for key, value in selection.items():
            if not value:
                continue
            rel = mapper.relationships[key]
            Target = rel.mapper.class_
            stmt = select(func.count()).select_from(Target).where(with_parent(obj, getattr(Model, key)))
            if isinstance(value, dict) and value.get("where"):
                stmt = stmt.where(self._clause(Target, value["where"]))
            result[key] = session.execute(stmt).scalar_one()
        return result

    def _shape(self, session: Session, Model: Type[Any], obj: Any, args: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Convert an instance to a dict, following the select/include arguments:
        with "select" only the selected fields are returned, otherwise all the columns and the included relations
        """
        args = args or {}
        mapper = sqlalchemy.inspect(Model)
        result: Dict[str, Any] = {}
        selection = args.get("select")
        if not selection:
            for prop in mapper.column_attrs:
                result[prop.key] = getattr(obj, prop.key)
            selection = args.get("include") or {}
        for key, value in selection.items():
            if not value:
                continue
            if key == "_count":
                result["_count"] = self._counts(session, Model, obj, value)
            elif key in mapper.relationships:
                result[key] = self._related(session, obj, mapper.relationships[key], value)
            elif key in mapper.column_attrs:
                result[key] = getattr(obj, key)
            else:
                raise DbValidationError(f"Unknown field {key} of {Model.__name__}")
        return result

    #
    # Writes
    #
    def _find(self, session: Session, Model: Type[Any], where: Dict[str, Any]) -> Any:
        return session.scalars(select(Model).where(self._clause(Model, where))).first()

    def _connect_target(self, session: Session, rel: Any, where: Dict[str, Any]) -> Any:
        Target = rel.mapper.class_
        target = self._find(session, Target, where)
        if target is None:
            raise KnownRequestError(f"No '{Target.__name__}' record found for relation '{rel.key}'", DbErrorCode.RECORD_NOT_FOUND)
        return target

    def _write_relation(self, session: Session, obj: Any, rel: Any, operations: Dict[str, Any]) -> None:
        if not isinstance(operations, dict):
            raise DbValidationError(f"Invalid data for relation {rel.key}")
        for op, value in operations.items():
            if rel.uselist:
                collection = getattr(obj, rel.key)
                items = value if isinstance(value, list) else [value]
                if op == "connect":
                    for where in items:
                        target = self._connect_target(session, rel, where)
                        if target not in collection:
                            collection.append(target)
                elif op == "disconnect":
                    for where in items:
                        target = self._find(session, rel.mapper.class_, where)
                        if target is not None and target in collection:
                            collection.remove(target)
                elif op == "set":
                    setattr(obj, rel.key, [self._connect_target(session, rel, where) for where in items])
                elif op == "create":
                    for data in items:
                        collection.append(self._build(session, rel.mapper.class_, data))
                else:
                    raise DbValidationError(f"Invalid operation {op} for relation {rel.key}")
            else:
                if op == "connect":
                    setattr(obj, rel.key, self._connect_target(session, rel, value))
                elif op == "disconnect":
                    if value:
                        setattr(obj, rel.key, None)
                elif op == "create":
                    setattr(obj, rel.key, self._build(session, rel.mapper.class_, value))
                else:
                    raise DbValidationError(f"Invalid operation {op} for relation {rel.key}")

    def _assign(self, session: Session, Model: Type[Any], obj: Any, data: Dict[str, Any]) -> None:
        mapper = sqlalchemy.inspect(Model)
        for key, value in data.items():
            if key in mapper.relationships:
                self._write_relation(session, obj, mapper.relationships[key], value)
            elif key in mapper.column_attrs:
                setattr(obj, key, value)
            else:
                raise DbValidationError(f"Unknown field {key} of {Model.__name__}")

    def _build(self, session: Session, Model: Type[Any], data: Dict[str, Any]) -> Any:
        obj = Model()
        session.add(obj)
        self._assign(session, Model, obj, data)
        return obj

    #
    # Synchronous implementations of the DbClient calls, executed by _run
    #
    def _find_unique(self, session: Session, Model: Type[Any], args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        obj = self._find(session, Model, args.get("where") or {})
        return self._shape(session, Model, obj, args) if obj is not None else None

    def _find_many(self, session: Session, Model: Type[Any], args: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = session.scalars(self._select(Model, args)).all()
        return [self._shape(session, Model, row, args) for row in rows]

    def _count(self, session: Session, Model: Type[Any], args: Dict[str, Any]) -> int:
        stmt = select(func.count()).select_from(Model).where(self._clause(Model, args.get("where")))
        return session.execute(stmt).scalar_one()

    def _create(self, session: Session, Model: Type[Any], args: Dict[str, Any]) -> Dict[str, Any]:
        with session.no_autoflush:
            obj = self._build(session, Model, args.get("data") or {})
        session.flush()
        self._write_done(session)
        return self._shape(session, Model, obj, args)

    def _update(self, session: Session, Model: Type[Any], args: Dict[str, Any]) -> Dict[str, Any]:
        obj = self._find(session, Model, args.get("where") or {})
        if obj is None:
            raise KnownRequestError(f"No '{Model.__name__}' record found to update", DbErrorCode.RECORD_NOT_FOUND)
        with session.no_autoflush:
            self._assign(session, Model, obj, args.get("data") or {})
        session.flush()
        self._write_done(session)
        return self._shape(session, Model, obj, args)

    def _delete(self, session: Session, Model: Type[Any], args: Dict[str, Any]) -> Dict[str, Any]:
        obj = self._find(session, Model, args.get("where") or {})
        if obj is None:
            raise KnownRequestError(f"No '{Model.__name__}' record found to delete", DbErrorCode.RECORD_NOT_FOUND)
        result = self._shape(session, Model, obj, {})
        session.delete(obj)
        session.flush()
        self._write_done(session)
        return result

    #
    # DbClient interface
    #
    async def find_unique(self, type_name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._run(self._find_unique, self._model(type_name), args)

    async def find_many(self, type_name: str, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._run(self._find_many, self._model(type_name), args)

    async def count(self, type_name: str, args: Dict[str, Any]) -> int:
        return await self._run(self._count, self._model(type_name), args)

    async def create(self, type_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run(self._create, self._model(type_name), args)

    async def update(self, type_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run(self._update, self._model(type_name), args)

    async def delete(self, type_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run(self._delete, self._model(type_name), args)
