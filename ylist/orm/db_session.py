"""
数据库会话管理

公开 API:
- db_manager: 数据库管理器单例
- init_database(): 创建引擎与 scoped_session，并设置 CoreModel.query
- get_engine(): 获取数据库引擎
- db_session_scope(): 会话上下文管理器（自动提交/回滚/清理）
- with_db_session(): 向函数注入 session 的装饰器
- close_database(): 释放连接池并重置状态
- enable_sqlite_savepoints(): 为 SQLite 引擎启用真正的 SAVEPOINT
"""

from typing import Optional, Callable, Any, Dict, TypeVar, Generator
import logging
import os
import time
from contextlib import contextmanager
from functools import wraps

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, scoped_session, Session
from sqlalchemy.pool import QueuePool, StaticPool

from ylist.exceptions import DatabaseNotInitializedError
from ylist.log import get_logger

_logger = get_logger("ylist.orm.session")

T = TypeVar('T')

__all__ = [
    'db_manager',
    'init_database',
    'get_engine',
    'db_session_scope',
    'with_db_session',
    'close_database',
    'enable_sqlite_savepoints',
]

# DatabaseSettings 中与引擎相关的字段
_ENGINE_OPTIONS = (
    "echo", "pool_size", "max_overflow", "pool_timeout", "pool_recycle", "pool_pre_ping",
)


def enable_sqlite_savepoints(engine: Engine) -> None:
    """让 pysqlite 驱动支持 SAVEPOINT

    pysqlite 默认自行发出 BEGIN，SAVEPOINT 因此失效。
    关闭驱动的事务管理，改由 SQLAlchemy 在 begin 事件中发出 BEGIN。
    位置引擎的每个操作都在保存点内执行，SQLite 引擎必须启用。
    """
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _enable_sql_timing(engine: Engine) -> None:
    """在 sqlalchemy.engine 日志器上记录每条语句的耗时"""
    sql_logger = logging.getLogger("sqlalchemy.engine")

    @event.listens_for(engine, "before_cursor_execute")
    def _start(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def _stop(conn, cursor, statement, parameters, context, executemany):
        elapsed = time.time() - conn.info["query_start_time"].pop()
        sql_logger.debug(f"[执行耗时: {elapsed * 1000:.2f}ms]")


def _build_engine(database_url: str, echo, options: Dict[str, Any], logger: logging.Logger) -> Engine:
    """按数据库类型选择连接池并创建引擎"""
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        engine = create_engine(database_url, echo=echo, **options)
        logger.info("数据库引擎创建成功")
        return engine

    if url.database in (None, "", ":memory:"):
        # 内存数据库只能共用一个连接
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        logger.info("SQLite内存数据库引擎创建成功（StaticPool）")
    else:
        logger.info(f"SQLite文件数据库路径: {os.path.abspath(url.database)}")
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": options["pool_timeout"]},
            poolclass=QueuePool,
            **options,
        )
        logger.info(
            f"SQLite文件数据库引擎创建成功（QueuePool, pool_size={options['pool_size']}, "
            f"max_overflow={options['max_overflow']}）"
        )
    enable_sqlite_savepoints(engine)
    return engine


class DatabaseManager:
    """数据库管理器（单例）

    使用示例:
        from ylist.orm import db_manager

        db_manager.init(database_url="sqlite:///./todo.db")
        session = db_manager.get_session()
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._reset()
        return cls._instance

    def _reset(self) -> None:
        self._engine = None
        self._session_scope = None

    @property
    def engine(self) -> Engine:
        """数据库引擎

        Raises:
            DatabaseNotInitializedError: 尚未调用 init()
        """
        if self._engine is None:
            raise DatabaseNotInitializedError()
        return self._engine

    @property
    def session_scope(self) -> scoped_session:
        if self._session_scope is None:
            raise DatabaseNotInitializedError()
        return self._session_scope

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None and self._session_scope is not None

    def init(
        self,
        database_url: str = None,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        pool_pre_ping: bool = True,
        sql_log_enabled: bool = False,
        logger: logging.Logger = None,
        scopefunc: Callable = None,
        config: Any = None,
        logging_config: Any = None,
        auto_setup_query: bool = True
    ):
        """初始化数据库连接

        Args:
            database_url: 数据库连接URL
            echo ... pool_pre_ping: 引擎参数
            sql_log_enabled: 是否记录 SQL 与执行耗时
            logger: 日志记录器，默认 ylist.orm.session
            scopefunc: session 作用域函数，默认按线程隔离
            config: DatabaseSettings，提供后覆盖 database_url 与引擎参数
            logging_config: LoggingSettings，提供后覆盖 sql_log_enabled
            auto_setup_query: 是否设置 CoreModel.query

        Returns:
            tuple: (engine, session_scope)

        使用示例:
            settings = AppSettings()
            engine, session = init_database(
                config=settings.database,
                logging_config=settings.logging,
            )
        """
        options = {
            "echo": echo,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
            "pool_pre_ping": pool_pre_ping,
        }
        if config is not None:
            database_url = getattr(config, "url", database_url)
            for name in _ENGINE_OPTIONS:
                options[name] = getattr(config, name, options[name])
        if logging_config is not None:
            sql_log_enabled = getattr(logging_config, "sql_log_enabled", sql_log_enabled)

        if not database_url:
            raise ValueError("database_url 是必需的，请通过参数或 config 提供")

        logger = logger or _logger
        logger.info(f"数据库配置URL: {database_url}")

        echo = options.pop("echo")
        if sql_log_enabled:
            echo = "debug"
        try:
            self._engine = _build_engine(database_url, echo, options, logger)
        except Exception as e:
            logger.error(f"创建数据库引擎失败: {e}")
            raise

        if sql_log_enabled:
            _enable_sql_timing(self._engine)
            logger.info("SQL执行时间记录已启用")

        self._session_scope = scoped_session(
            sessionmaker(autocommit=False, autoflush=True, bind=self._engine),
            scopefunc=scopefunc,
        )

        if auto_setup_query:
            from .core_model import CoreModel
            CoreModel.query = self._session_scope.query_property()
            logger.info("CoreModel.query 属性已自动设置")

        return self._engine, self._session_scope

    def get_session(self) -> Session:
        """当前作用域的 session

        Raises:
            DatabaseNotInitializedError: 尚未调用 init()
        """
        return self.session_scope()

    def remove_session(self) -> None:
        """关闭并移除当前作用域的 session（幂等）"""
        if self._session_scope is not None:
            self._session_scope.remove()

    def close(self) -> None:
        """释放连接池并重置状态"""
        self.remove_session()
        if self._engine is not None:
            self._engine.dispose()
            _logger.info("数据库引擎已释放")
        self._reset()

        from .core_model import CoreModel
        CoreModel.query = None


db_manager = DatabaseManager()


def init_database(database_url: str = None, **kwargs):
    """初始化数据库连接，参数同 DatabaseManager.init()

    Returns:
        tuple: (engine, session_scope)
    """
    return db_manager.init(database_url=database_url, **kwargs)


def get_engine() -> Engine:
    return db_manager.engine


def close_database() -> None:
    db_manager.close()


@contextmanager
def db_session_scope(auto_commit: bool = True) -> Generator[Session, None, None]:
    """session 上下文管理器：正常结束提交，异常回滚，最后清理 session

    使用示例:
        with db_session_scope() as session:
            TodoItem.get(1).move_to_top()
    """
    session = db_manager.get_session()
    try:
        yield session
        if auto_commit:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        db_manager.remove_session()


def with_db_session(auto_commit: bool = True):
    """把 session 作为第一个位置参数注入函数

    使用示例:
        @with_db_session()
        def compact_lists(session):
            for (todo_list_id,) in session.query(TodoItem.todo_list_id).distinct():
                TodoItem.normalize_positions({"todo_list_id": todo_list_id})
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            with db_session_scope(auto_commit=auto_commit) as session:
                return func(session, *args, **kwargs)
        return wrapper

    return decorator
