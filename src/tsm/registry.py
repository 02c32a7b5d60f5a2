"""Pin registry and session metadata store.

Pinned ("persistent") session names live in a line-oriented text file, one
name per line. Writes never leave a partial line behind:

- pin() appends a single line with one O_APPEND write
- unpin() writes a temp file in the same directory and renames it over the
  registry

so a sweep reading the file concurrently sees either the old or the new set.
Writers serialize on an exclusive fcntl lock on a sibling lock file, so an
unpin never drops a name pinned from another terminal mid-rewrite.

Per-session metadata (the detach timestamp) is not stored here; it is kept
as a tmux user option on the session itself and vanishes with it.
"""

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from tsm.errors import RegistryIOError
from tsm.protocols import PinStoreProtocol, SessionDriverProtocol

logger = logging.getLogger(__name__)


def _validate_name(name: str) -> None:
    if not name:
        raise ValueError("Session name must not be empty")
    if "\n" in name or "\r" in name:
        raise ValueError(f"Session name must not contain newlines: {name!r}")


class PinRegistry:
    """File-backed set of pinned session names.

    Membership is an exact line match. Stale entries for sessions that no
    longer exist are harmless and are never pruned.
    """

    def __init__(self, path: Path | str):
        """Initialize the registry.

        Args:
            path: Registry file (e.g. ~/.local/share/tmux/persistent-sessions).
        """
        self._path = Path(path).expanduser()
        self._lock_file = self._path.with_name(self._path.name + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    def ensure(self) -> None:
        """Create the registry directory and an empty file if missing.

        Raises:
            RegistryIOError: If either cannot be created.
        """
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.touch(exist_ok=True)
        except OSError as e:
            raise RegistryIOError(f"Could not create {self._path}: {e}") from e

    def names(self) -> list[str]:
        """Return pinned names in insertion order, without duplicates.

        Raises:
            RegistryIOError: If the file exists but cannot be read.
        """
        try:
            content = self._path.read_text()
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            raise RegistryIOError(f"Could not read {self._path}: {e}") from e

        seen: dict[str, None] = {}
        for line in content.splitlines():
            if line:
                seen.setdefault(line, None)
        return list(seen)

    def is_pinned(self, name: str) -> bool:
        """Check whether name is pinned.

        Raises:
            RegistryIOError: If the file exists but cannot be read.
        """
        return name in self.names()

    def pin(self, name: str) -> None:
        """Add name to the registry. No-op if already present.

        Raises:
            ValueError: If name is empty or contains a newline.
            RegistryIOError: If the file cannot be written.
        """
        _validate_name(name)
        with self._exclusive():
            if self.is_pinned(name):
                return

            line = f"{name}\n".encode()
            try:
                fd = os.open(
                    str(self._path), os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644
                )
                try:
                    if self._lacks_trailing_newline(fd):
                        line = b"\n" + line
                    os.write(fd, line)
                finally:
                    os.close(fd)
            except OSError as e:
                raise RegistryIOError(f"Could not write {self._path}: {e}") from e

        logger.debug(f"Pinned session {name}")

    def unpin(self, name: str) -> None:
        """Remove every line equal to name. No-op if absent.

        Raises:
            RegistryIOError: If the file cannot be read or replaced.
        """
        if not self._path.exists():
            return

        with self._exclusive():
            try:
                content = self._path.read_text()
            except FileNotFoundError:
                return
            except (OSError, UnicodeDecodeError) as e:
                raise RegistryIOError(f"Could not read {self._path}: {e}") from e

            lines = content.splitlines()
            kept = [line for line in lines if line and line != name]
            if len(kept) == len([line for line in lines if line]):
                return

            new_content = "".join(f"{line}\n" for line in kept)
            try:
                self._atomic_write(new_content)
            except OSError as e:
                raise RegistryIOError(f"Could not write {self._path}: {e}") from e

        logger.debug(f"Unpinned session {name}")

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold an exclusive lock on the sibling lock file.

        Raises:
            RegistryIOError: If the lock file cannot be opened.
        """
        try:
            self._lock_file.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self._lock_file), os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise RegistryIOError(f"Could not lock {self._path}: {e}") from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            try:
                fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)

    def _atomic_write(self, content: str) -> None:
        """Write atomically via temp file and rename."""
        temp_path = self._path.with_name(f".{self._path.name}.{os.getpid()}.tmp")
        try:
            temp_path.write_text(content)
            os.replace(temp_path, self._path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

    def _lacks_trailing_newline(self, fd: int) -> bool:
        """True if a hand-edited file does not end with a newline."""
        size = os.fstat(fd).st_size
        if size == 0:
            return False
        with open(self._path, "rb") as f:
            f.seek(size - 1)
            return f.read(1) != b"\n"


class RegistryStore:
    """What the lifecycle controller persists: pins and session metadata.

    Pins go to a PinStoreProtocol (the file registry, or an in-memory fake
    in tests). Metadata is proxied to the session driver's per-session
    option store.
    """

    def __init__(self, pins: PinStoreProtocol, driver: SessionDriverProtocol):
        self._pins = pins
        self._driver = driver

    @property
    def pins(self) -> PinStoreProtocol:
        return self._pins

    def is_pinned(self, name: str) -> bool:
        return self._pins.is_pinned(name)

    def pin(self, name: str) -> None:
        self._pins.pin(name)

    def unpin(self, name: str) -> None:
        self._pins.unpin(name)

    async def get_metadata(self, name: str, key: str) -> Optional[str]:
        return await self._driver.get_option(name, key)

    async def set_metadata(self, name: str, key: str, value: str) -> None:
        await self._driver.set_option(name, key, value)
