# remote_store.py
# Description: Contract for the flat, path-addressed remote file store used by the sync engine
#
# Imports
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional
#
########################################################################################################################
#
# Classes:

@dataclass(frozen=True)
class RemoteEntry:
    """One top-level item in the remote namespace."""
    name: str
    path: str
    revision: Optional[str]
    kind: str = "file"

    @property
    def is_file(self) -> bool:
        return self.kind == "file"


@dataclass(frozen=True)
class RemoteFile:
    """Raw bytes of a remote file plus the revision they were read at."""
    path: str
    content: bytes
    revision: Optional[str]


class RemoteStore(ABC):
    """
    A namespace of named byte blobs inside one repository.

    Every method may raise NetworkError, RateLimitError, NotFoundError or
    AuthError; writes and deletes may also raise ConflictError when the
    supplied revision is stale.
    """

    @abstractmethod
    async def fetch_identity(self) -> str:
        """Return the owner login the credential belongs to."""

    @abstractmethod
    def bind_owner(self, owner: str) -> None:
        """Set the owner whose repository subsequent calls address."""

    @abstractmethod
    async def ensure_container_exists(self) -> bool:
        """
        Create the repository if missing.

        Returns:
            True if it was created, False if it already existed
        """

    @abstractmethod
    async def list_entries(self) -> List[RemoteEntry]:
        """List everything at the top level of the repository."""

    @abstractmethod
    async def get_file(self, path: str) -> RemoteFile:
        """Fetch a file's bytes and current revision."""

    @abstractmethod
    async def put_file(self, path: str, content: bytes, revision: Optional[str] = None,
                       message: Optional[str] = None) -> Optional[str]:
        """
        Create or update a file.

        Args:
            path: Relative path inside the repository
            content: New file bytes
            revision: Revision the caller last saw; must still be current.
                      None means create, or overwrite unconditionally.
            message: Commit message where the backend records one

        Returns:
            The new revision token
        """

    @abstractmethod
    async def delete_file(self, path: str, revision: str, message: Optional[str] = None) -> None:
        """Delete a file at the given revision."""

    async def close(self) -> None:
        """Release transport resources."""
        return None

#
# End of remote_store.py
########################################################################################################################
