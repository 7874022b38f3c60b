import os

from sqlalchemy import exc
from sqlalchemy import pool
from sqlalchemy import util
from sqlalchemy.dialects.sqlite.base import SQLiteDialect
from sqlalchemy.engine import reflection

import typedlite.dbapi


class TypedLiteDialect(SQLiteDialect):
    """SQLite dialect driven by :mod:`typedlite.dbapi` instead of ``sqlite3``.

    URLs are ``typedlite:///path/to.db`` or ``sqlite+typedlite:///path/to.db``;
    ``max_busy_retries`` and ``trace_execution`` may be given as query options.
    """

    driver = "typedlite"
    supports_statement_cache = True
    returns_native_bytes = True
    default_paramstyle = "qmark"
    description_encoding = None

    @classmethod
    def import_dbapi(cls):
        return typedlite.dbapi

    @classmethod
    def _is_url_file_db(cls, url):
        return bool(url.database) and url.database != ":memory:"

    @classmethod
    def get_pool_class(cls, url):
        if cls._is_url_file_db(url):
            return pool.QueuePool
        return pool.SingletonThreadPool

    def _get_server_version_info(self, connection):
        return self.dbapi.sqlite_version_info

    def create_connect_args(self, url):
        if url.username or url.password or url.host or url.port:
            raise exc.ArgumentError(
                "Invalid typedlite URL: %s\n"
                "Valid forms are typedlite:///:memory: (or typedlite://), "
                "typedlite:///relative/path.db and typedlite:////absolute/path.db" % (url,)
            )

        opts = {}
        util.coerce_kw_type(url.query, "max_busy_retries", int, dest=opts)
        util.coerce_kw_type(url.query, "trace_execution", bool, dest=opts)

        path = url.database or ":memory:"
        if path != ":memory:":
            path = os.path.abspath(path)
        return ([path], opts)

    def do_rollback(self, dbapi_connection):
        dbapi_connection.rollback()

    def do_commit(self, dbapi_connection):
        dbapi_connection.commit()

    def do_close(self, dbapi_connection):
        dbapi_connection.close()

    def is_disconnect(self, e, connection, cursor):
        return isinstance(e, self.dbapi.ProgrammingError) and "Connection closed" in str(e)

    def _unwrap_dbapi_connection(self, connection):
        # SQLAlchemy passes a Connection proxy; unwrap to the underlying DB-API connection.
        c = connection
        for _ in range(0, 3):
            if hasattr(c, "dbapi_connection"):
                c = c.dbapi_connection
                continue
            if hasattr(c, "connection"):
                c = c.connection
                continue
            break
        return c

    @reflection.cache
    def get_table_names(self, connection, schema=None, sqlite_include_internal=False, **kw):
        if schema is not None or sqlite_include_internal:
            return super().get_table_names(
                connection, schema=schema, sqlite_include_internal=sqlite_include_internal, **kw
            )
        return self._unwrap_dbapi_connection(connection).list_tables()

    def has_table(self, connection, table_name, schema=None, **kw):
        if schema is not None:
            return super().has_table(connection, table_name, schema=schema, **kw)
        self._ensure_has_table_connection(connection)
        return table_name in self._unwrap_dbapi_connection(connection).list_tables()


dialect = TypedLiteDialect
