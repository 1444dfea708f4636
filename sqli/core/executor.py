"""
Query execution engine

Resolves a QueryRequest (profile or URL, inline text or SQL file), runs it on
a worker thread and delivers exactly one QueryResult through a QueryHandle.

Cancellation is best-effort: ``QueryHandle.cancel()`` resolves the handle at
once with a CANCELLED result and asks the driver to interrupt, but the
database may keep working on the statement. Worker threads are daemons, so an
abandoned query never blocks process exit.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, InvalidStateError
from typing import Callable, Optional, Tuple

from sqli.core.drivers import DriverSession
from sqli.core.errors import (
    ClientError,
    DatabaseConnectionError,
    ProfileNotFound,
    QueryExecutionError,
)
from sqli.core.profiles import ProfileStore
from sqli.core.types import (
    ErrorKind,
    InlineSql,
    QueryRequest,
    QueryResult,
    SqlFileSource,
)

SessionFactory = Callable[[str], DriverSession]


class QueryHandle:
    """
    Single-slot handoff between the worker thread and the caller.

    Whichever happens first, the worker finishing or ``cancel()``, resolves
    the future; the loser's result is dropped.
    """

    def __init__(self, request: QueryRequest):
        self.request = request
        self._future: "Future[QueryResult]" = Future()
        self._lock = threading.Lock()
        self._session: Optional[DriverSession] = None
        self._started = time.perf_counter()

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> QueryResult:
        """Block until resolved; raises concurrent.futures.TimeoutError on timeout."""
        return self._future.result(timeout)

    @property
    def cancelled(self) -> bool:
        if not self.done():
            return False
        error = self.result().error
        return error is not None and error.kind is ErrorKind.CANCELLED

    def cancel(self) -> bool:
        """Stop waiting for the query. Returns False if it had already finished."""
        elapsed = time.perf_counter() - self._started
        resolved = self._resolve(QueryResult.failure(ErrorKind.CANCELLED, "Query cancelled", elapsed))
        if resolved:
            with self._lock:
                session = self._session
            if session is not None:
                session.interrupt()
        return resolved

    def _attach(self, session: DriverSession) -> None:
        with self._lock:
            self._session = session

    def _resolve(self, result: QueryResult) -> bool:
        with self._lock:
            if self._future.done():
                return False
            try:
                self._future.set_result(result)
            except InvalidStateError:
                return False
            return True


class QueryEngine:
    """
    Runs queries against profiles from a ProfileStore or ad-hoc URLs.

    Example:
        >>> engine = QueryEngine(store)
        >>> handle = engine.execute(QueryRequest.inline("SELECT 1 AS one", profile="local"))
        >>> handle.result().rows
        ((1,),)
    """

    def __init__(
        self,
        profiles: Optional[ProfileStore] = None,
        session_factory: SessionFactory = DriverSession,
        passwords: Optional[dict] = None,
    ):
        self.profiles = profiles
        self.session_factory = session_factory
        # Passwords typed at runtime for profiles that do not store one
        self.passwords = passwords if passwords is not None else {}

    def resolve(self, request: QueryRequest) -> Tuple[str, str]:
        """
        Resolve the request into a concrete ``(url, sql)`` pair.

        Raises:
            ClientError: Unknown profile, missing store or unreadable SQL file
        """
        target = request.target
        if target.url is not None:
            url = target.url
        else:
            if self.profiles is None:
                raise ClientError("No profile store configured")
            try:
                profile = self.profiles.get(target.profile)
            except ProfileNotFound as e:
                raise ClientError(str(e)) from e
            url = profile.to_url(self.passwords.get(profile.name))

        source = request.source
        if isinstance(source, InlineSql):
            sql = source.text
        elif isinstance(source, SqlFileSource):
            try:
                sql = source.path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise ClientError(f"Cannot read SQL file {source.path}: {e}") from e
        else:
            raise ClientError(f"Unsupported query source: {source!r}")

        if not sql.strip():
            raise ClientError("No query to execute")
        return url, sql

    def execute(self, request: QueryRequest) -> QueryHandle:
        """Start the query on a daemon thread and return its handle immediately."""
        handle = QueryHandle(request)
        worker = threading.Thread(
            target=self._work, args=(handle,), name="sqli-query", daemon=True
        )
        worker.start()
        return handle

    def run(self, request: QueryRequest) -> QueryResult:
        """Execute and wait for the result."""
        return self.execute(request).result()

    def _work(self, handle: QueryHandle) -> None:
        started = time.perf_counter()
        try:
            url, sql = self.resolve(handle.request)
            session = self.session_factory(url)
            handle._attach(session)
            if handle.done():
                return
            columns, rows = session.run(sql)
            result = QueryResult.success(columns, rows, time.perf_counter() - started)
        except ClientError as e:
            result = QueryResult.failure(ErrorKind.CLIENT, str(e), time.perf_counter() - started)
        except DatabaseConnectionError as e:
            result = QueryResult.failure(ErrorKind.CONNECTION, str(e), time.perf_counter() - started)
        except QueryExecutionError as e:
            result = QueryResult.failure(ErrorKind.QUERY, str(e), time.perf_counter() - started)
        except Exception as e:  # the handle must always resolve
            result = QueryResult.failure(
                ErrorKind.CLIENT, f"Unexpected error: {e}", time.perf_counter() - started
            )
        handle._resolve(result)
