"""SSH connection pool for running host commands on a remote IBM i."""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncGenerator

import structlog
from paramiko import AutoAddPolicy, SSHClient
from paramiko.ssh_exception import SSHException

from .config_loader import SourceHost
from .exceptions import SSHConnectionError

logger = structlog.get_logger()


@dataclass
class PooledConnection:
    """Wrapper for a pooled SSH connection."""

    client: SSHClient
    host: SourceHost
    created_at: datetime = field(default_factory=datetime.now)
    last_used_at: datetime = field(default_factory=datetime.now)
    in_use: bool = False
    use_count: int = 0

    def is_alive(self) -> bool:
        """Check if the connection is still alive."""
        try:
            transport = self.client.get_transport()
            if transport and transport.is_active():
                transport.send_ignore()
                return True
        except (SSHException, OSError, EOFError):
            pass
        return False

    def touch(self):
        """Update last used timestamp."""
        self.last_used_at = datetime.now()
        self.use_count += 1


class SSHConnectionPool:
    """Manages a pool of SSH connections for efficient reuse.

    Unlike a fail-fast pool, callers that find every connection for a host
    busy wait until one is released. The per-host limit therefore doubles as
    backpressure for concurrent member transfers.
    """

    def __init__(
        self,
        max_connections_per_host: int = 8,
        max_idle_time: int = 300,  # 5 minutes
        max_lifetime: int = 3600,  # 1 hour
        connect_timeout: int = 30,
    ):
        """Initialize SSH connection pool.

        Args:
            max_connections_per_host: Maximum connections per host
            max_idle_time: Maximum idle time in seconds before closing
            max_lifetime: Maximum connection lifetime in seconds
            connect_timeout: Timeout for establishing a connection
        """
        self.max_connections_per_host = max_connections_per_host
        self.max_idle_time = max_idle_time
        self.max_lifetime = max_lifetime
        self.connect_timeout = connect_timeout

        self._pools: dict[str, list[PooledConnection]] = defaultdict(list)
        self._condition = asyncio.Condition()
        self._stats = {
            "connections_created": 0,
            "connections_reused": 0,
            "connections_closed": 0,
            "connection_errors": 0,
        }

        logger.debug(
            "SSH connection pool initialized",
            max_connections_per_host=max_connections_per_host,
            max_idle_time=max_idle_time,
            max_lifetime=max_lifetime,
        )

    def _get_host_key(self, host: SourceHost) -> str:
        """Generate a unique key for a host configuration."""
        return f"{host.user}@{host.hostname}:{host.port}"

    async def _create_connection(self, host: SourceHost) -> SSHClient:
        """Create a new SSH connection to the host."""
        client = SSHClient()
        client.set_missing_host_key_policy(AutoAddPolicy())

        connect_kwargs: dict[str, Any] = {
            "hostname": host.hostname,
            "port": host.port,
            "username": host.user,
            "timeout": self.connect_timeout,
            "banner_timeout": self.connect_timeout,
            "auth_timeout": self.connect_timeout,
        }

        if host.identity_file:
            connect_kwargs["key_filename"] = host.identity_file
        elif host.password:
            connect_kwargs["password"] = host.password

        try:
            await asyncio.to_thread(client.connect, **connect_kwargs)

            transport = client.get_transport()
            if transport:
                transport.set_keepalive(30)

            self._stats["connections_created"] += 1
            logger.debug(
                "Created new SSH connection",
                host=self._get_host_key(host),
                total_created=self._stats["connections_created"],
            )
            return client

        except (SSHException, OSError) as e:
            self._stats["connection_errors"] += 1
            client.close()
            raise SSHConnectionError(f"Failed to connect to {host.hostname}: {e}") from e

    def _take_idle_connection(self, host_key: str) -> PooledConnection | None:
        """Return a reusable idle connection, discarding expired ones."""
        pool = self._pools[host_key]
        now = datetime.now()
        for conn in list(pool):
            if conn.in_use:
                continue
            idle_time = (now - conn.last_used_at).total_seconds()
            lifetime = (now - conn.created_at).total_seconds()
            if idle_time < self.max_idle_time and lifetime < self.max_lifetime and conn.is_alive():
                conn.in_use = True
                conn.touch()
                self._stats["connections_reused"] += 1
                return conn
            self._close_connection(conn)
            pool.remove(conn)
        return None

    async def _acquire(self, host: SourceHost) -> PooledConnection:
        """Get an idle connection, create one, or wait for one to be released."""
        host_key = self._get_host_key(host)
        async with self._condition:
            while True:
                conn = self._take_idle_connection(host_key)
                if conn is not None:
                    return conn
                if len(self._pools[host_key]) < self.max_connections_per_host:
                    # Reserve the slot before connecting outside the lock
                    placeholder = PooledConnection(client=SSHClient(), host=host, in_use=True)
                    self._pools[host_key].append(placeholder)
                    break
                await self._condition.wait()

        try:
            client = await self._create_connection(host)
        except SSHConnectionError:
            async with self._condition:
                self._pools[host_key].remove(placeholder)
                self._condition.notify()
            raise

        placeholder.client = client
        placeholder.touch()
        return placeholder

    async def _release(self, conn: PooledConnection, broken: bool = False) -> None:
        """Return a connection to the pool and wake a waiter."""
        host_key = self._get_host_key(conn.host)
        async with self._condition:
            conn.in_use = False
            if broken:
                self._close_connection(conn)
                if conn in self._pools[host_key]:
                    self._pools[host_key].remove(conn)
            self._condition.notify()

    def _close_connection(self, conn: PooledConnection) -> None:
        """Close an SSH connection."""
        try:
            conn.client.close()
            self._stats["connections_closed"] += 1
            logger.debug(
                "Closed SSH connection",
                host=self._get_host_key(conn.host),
                use_count=conn.use_count,
            )
        except (SSHException, OSError) as e:
            logger.warning(
                "Error closing SSH connection",
                host=self._get_host_key(conn.host),
                error=str(e),
            )

    @asynccontextmanager
    async def get_connection(self, host: SourceHost) -> AsyncGenerator[SSHClient, None]:
        """Get an SSH connection from the pool.

        Args:
            host: Host configuration

        Yields:
            SSHClient instance
        """
        conn = await self._acquire(host)
        broken = False
        try:
            yield conn.client
        except (SSHException, EOFError, SSHConnectionError, asyncio.TimeoutError):
            broken = True
            raise
        finally:
            await self._release(conn, broken=broken)

    async def execute_command(
        self,
        host: SourceHost,
        command: str,
        timeout: float = 300,
    ) -> tuple[int, str, str]:
        """Execute a command on a remote host using a pooled connection.

        Args:
            host: Host configuration
            command: Command line to execute
            timeout: Command timeout in seconds

        Returns:
            Tuple of (exit_code, stdout, stderr)

        Raises:
            SSHConnectionError: If the connection or channel fails
            asyncio.TimeoutError: If the command does not finish in time
        """
        async with self.get_connection(host) as client:

            def _execute() -> tuple[int, str, str]:
                _, stdout, stderr = client.exec_command(command, timeout=timeout)
                stdout_data = stdout.read().decode("utf-8", errors="replace")
                stderr_data = stderr.read().decode("utf-8", errors="replace")
                exit_code = stdout.channel.recv_exit_status()
                return exit_code, stdout_data, stderr_data

            try:
                result = await asyncio.wait_for(asyncio.to_thread(_execute), timeout=timeout)
            except (SSHException, OSError) as e:
                logger.error(
                    "Failed to execute SSH command",
                    host=self._get_host_key(host),
                    command=command[:100],
                    error=str(e),
                )
                raise SSHConnectionError(f"Command execution failed: {e}") from e

            logger.debug(
                "Executed SSH command",
                host=self._get_host_key(host),
                command=command[:100],
                exit_code=result[0],
            )
            return result

    async def close_all(self) -> None:
        """Close all connections."""
        async with self._condition:
            for pool in self._pools.values():
                for conn in pool:
                    self._close_connection(conn)
            self._pools.clear()
            self._condition.notify_all()

        logger.debug("SSH connection pool closed", stats=self._stats)

    def get_stats(self) -> dict[str, Any]:
        """Get connection pool statistics."""
        return {
            **self._stats,
            "active_pools": len(self._pools),
            "total_connections": sum(len(p) for p in self._pools.values()),
            "active_connections": sum(
                sum(1 for c in p if c.in_use) for p in self._pools.values()
            ),
        }

