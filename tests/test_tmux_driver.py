"""Tests for TmuxDriver."""

import pytest

from tsm.errors import DriverError, TmuxNotFoundError, TmuxSessionError, TmuxVersionError
from tsm.tmux import AsyncCommandExecutor, TmuxDriver


class MockCommandExecutor:
    """Mock command executor for testing."""

    def __init__(self):
        self.responses: dict[str, tuple[bytes, bytes, int]] = {}
        self.calls: list[tuple[str, ...]] = []
        self.raise_exception: Exception | None = None

    def add_response(
        self,
        command_contains: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ):
        """Add a canned response for commands containing a string."""
        self.responses[command_contains] = (
            stdout.encode(),
            stderr.encode(),
            returncode,
        )

    async def run(
        self, *args: str, check: bool = True
    ) -> tuple[bytes, bytes, int]:
        """Run command and return canned response."""
        self.calls.append(args)

        if self.raise_exception:
            raise self.raise_exception

        for key, response in self.responses.items():
            if key in " ".join(args):
                stdout, stderr, returncode = response
                if check and returncode != 0:
                    raise DriverError(f"Command failed: {stderr.decode()}")
                return response

        # Default: success with empty output
        return b"", b"", 0


@pytest.fixture
def executor():
    executor = MockCommandExecutor()
    executor.add_response("-V", "tmux 3.4")
    return executor


@pytest.fixture
def driver(executor):
    return TmuxDriver(executor=executor)


class TestTmuxDriverCreation:
    """Test TmuxDriver creation."""

    def test_create_default_executor(self):
        """Creates default executor if none provided."""
        driver = TmuxDriver()
        assert isinstance(driver._executor, AsyncCommandExecutor)

    def test_command_without_socket(self):
        driver = TmuxDriver(tmux_path="/usr/bin/tmux")
        assert driver.command("ls") == ["/usr/bin/tmux", "ls"]

    def test_command_with_socket(self):
        driver = TmuxDriver(socket_path="/tmp/test.sock")
        assert driver.command("ls") == ["tmux", "-S", "/tmp/test.sock", "ls"]


class TestVerify:
    """Test tmux version verification."""

    @pytest.mark.asyncio
    async def test_old_version_rejected(self):
        """verify() raises TmuxVersionError for old tmux."""
        executor = MockCommandExecutor()
        executor.add_response("-V", "tmux 1.8")
        driver = TmuxDriver(executor=executor)

        with pytest.raises(TmuxVersionError, match="too old"):
            await driver.verify()

    @pytest.mark.asyncio
    async def test_unparseable_version(self):
        """verify() raises DriverError if version can't be parsed."""
        executor = MockCommandExecutor()
        executor.add_response("-V", "tmux master")
        driver = TmuxDriver(executor=executor)

        with pytest.raises(DriverError, match="parse"):
            await driver.verify()

    @pytest.mark.asyncio
    async def test_verify_caches_result(self, driver, executor):
        """verify() only checks version once."""
        await driver.verify()
        await driver.list_sessions()
        await driver.session_exists("x")

        version_calls = [c for c in executor.calls if "-V" in c]
        assert len(version_calls) == 1

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        """A missing binary surfaces as TmuxNotFoundError."""
        executor = MockCommandExecutor()
        executor.raise_exception = TmuxNotFoundError("tmux not found")
        driver = TmuxDriver(executor=executor)

        with pytest.raises(TmuxNotFoundError):
            await driver.list_sessions()


class TestListSessions:
    """Test list_sessions."""

    @pytest.mark.asyncio
    async def test_parses_names(self, driver, executor):
        executor.add_response("list-sessions", "work\nsession-1-2\n")

        assert await driver.list_sessions() == ["work", "session-1-2"]

    @pytest.mark.asyncio
    async def test_no_server_is_empty(self, driver, executor):
        """No server running is not an error."""
        executor.add_response(
            "list-sessions",
            stderr="no server running on /tmp/tmux-1000/default",
            returncode=1,
        )

        assert await driver.list_sessions() == []

    @pytest.mark.asyncio
    async def test_other_failure_raises(self, driver, executor):
        executor.add_response("list-sessions", stderr="boom", returncode=1)

        with pytest.raises(DriverError, match="list-sessions failed"):
            await driver.list_sessions()


class TestSessionQueries:
    """Test per-session commands."""

    @pytest.mark.asyncio
    async def test_session_exists_uses_exact_target(self, driver, executor):
        """has-session targets =name so prefixes never match."""
        assert await driver.session_exists("session-1")
        assert ("tmux", "has-session", "-t", "=session-1") in executor.calls

    @pytest.mark.asyncio
    async def test_session_missing(self, driver, executor):
        executor.add_response("has-session", stderr="can't find session", returncode=1)

        assert not await driver.session_exists("gone")

    @pytest.mark.asyncio
    async def test_attached_client_count(self, driver, executor):
        executor.add_response("list-clients", "/dev/pts/1\n/dev/pts/4\n")

        assert await driver.attached_client_count("work") == 2

    @pytest.mark.asyncio
    async def test_attached_client_count_none(self, driver, executor):
        executor.add_response("list-clients", "")

        assert await driver.attached_client_count("work") == 0

    @pytest.mark.asyncio
    async def test_attached_client_count_vanished(self, driver, executor):
        """A session that vanished raises TmuxSessionError."""
        executor.add_response(
            "list-clients", stderr="can't find session: work", returncode=1
        )

        with pytest.raises(TmuxSessionError):
            await driver.attached_client_count("work")

    @pytest.mark.asyncio
    async def test_kill_session(self, driver, executor):
        await driver.kill_session("session-1")

        assert ("tmux", "kill-session", "-t", "=session-1") in executor.calls

    @pytest.mark.asyncio
    async def test_kill_vanished_session(self, driver, executor):
        executor.add_response(
            "kill-session", stderr="can't find session: session-1", returncode=1
        )

        with pytest.raises(TmuxSessionError):
            await driver.kill_session("session-1")

    @pytest.mark.asyncio
    async def test_kill_failure(self, driver, executor):
        executor.add_response("kill-session", stderr="permission denied", returncode=1)

        with pytest.raises(DriverError) as exc_info:
            await driver.kill_session("session-1")
        assert not isinstance(exc_info.value, TmuxSessionError)

    @pytest.mark.asyncio
    async def test_new_session_detached(self, driver, executor):
        await driver.new_session("session-1-2")

        assert ("tmux", "new-session", "-d", "-s", "session-1-2") in executor.calls

    @pytest.mark.asyncio
    async def test_new_session_failure(self, driver, executor):
        executor.add_response("new-session", stderr="duplicate session", returncode=1)

        with pytest.raises(DriverError):
            await driver.new_session("session-1-2")


class TestOptions:
    """Test per-session user options."""

    @pytest.mark.asyncio
    async def test_get_option(self, driver, executor):
        executor.add_response("show-options", "1700000000\n")

        assert await driver.get_option("s", "@detached_time") == "1700000000"
        assert (
            "tmux", "show-options", "-qv", "-t", "=s:", "@detached_time"
        ) in executor.calls

    @pytest.mark.asyncio
    async def test_get_unset_option(self, driver, executor):
        """Empty output means unset."""
        assert await driver.get_option("s", "detached_time") is None

    @pytest.mark.asyncio
    async def test_set_option_adds_prefix(self, driver, executor):
        await driver.set_option("s", "detached_time", "0")

        assert ("tmux", "set-option", "-t", "=s:", "@detached_time", "0") in executor.calls

    @pytest.mark.asyncio
    async def test_set_option_on_vanished_session(self, driver, executor):
        """tmux reports "no such session" for option commands."""
        executor.add_response(
            "set-option", stderr="no such session: =s:", returncode=1
        )

        with pytest.raises(TmuxSessionError):
            await driver.set_option("s", "detached_time", "0")


class TestClientCommands:
    """Test commands acting on the current client."""

    @pytest.mark.asyncio
    async def test_current_session_name(self, driver, executor):
        executor.add_response("#S", "session-5\n")

        assert await driver.current_session_name() == "session-5"

    @pytest.mark.asyncio
    async def test_display_message(self, driver, executor):
        await driver.display_message("hello")

        assert ("tmux", "display-message", "hello") in executor.calls

    @pytest.mark.asyncio
    async def test_send_keys_and_select_pane(self, driver, executor):
        await driver.send_keys("C-h")
        await driver.select_pane("L")

        assert ("tmux", "send-keys", "C-h") in executor.calls
        assert ("tmux", "select-pane", "-L") in executor.calls


class TestAsyncCommandExecutor:
    """Test the real executor against harmless binaries."""

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        executor = AsyncCommandExecutor()

        with pytest.raises(TmuxNotFoundError):
            await executor.run("/nonexistent/tmux-binary", "-V")

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self):
        executor = AsyncCommandExecutor()

        with pytest.raises(DriverError):
            await executor.run("false")

    @pytest.mark.asyncio
    async def test_nonzero_exit_unchecked(self):
        executor = AsyncCommandExecutor()

        _, _, returncode = await executor.run("false", check=False)
        assert returncode != 0
