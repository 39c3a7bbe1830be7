"""
Capability interface each storage backend implements for multipart uploads.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Optional

from cloudfile.models.upload_model import CompletedPart, UploadedObject


class ProviderAdapter(ABC):
    """
    Translate multipart upload primitives into one backend's native API.

    Adapters receive already-resolved credentials in their constructor and hold
    no per-upload state; the orchestrator owns the session.
    """

    # Smallest size the backend accepts for any part but the last
    min_part_size: int = 1

    @abstractmethod
    async def create_session(self, bucket: str, key: str, content_type: Optional[str] = None) -> str:
        """
        Open a multipart session.

        Returns:
            The backend-assigned upload id

        Raises:
            SessionInitError: On transport or authorization failure
        """

    @abstractmethod
    async def upload_part(self, bucket: str, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        """
        Upload one part.

        Returns:
            The ETag the backend issued for the part

        Raises:
            PartUploadError: Carrying the part number and the cause
        """

    @abstractmethod
    async def complete_session(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> UploadedObject:
        """
        Assemble the uploaded parts into the final object.

        Raises:
            CompleteError: If the backend rejects the part list
        """

    @abstractmethod
    async def abort_session(self, bucket: str, key: str, upload_id: str) -> None:
        """
        Discard an unfinished session and its parts.

        Raises:
            AbortFailedError: If cleanup fails
        """

    @abstractmethod
    async def simple_upload(self, bucket: str, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        """
        Upload a small object in a single request.

        Raises:
            StorageError: On failure
        """

    async def wait_idle(self) -> None:
        """
        Return once no ``upload_part`` call started by this adapter is still running.

        Cancelling the awaiting task does not stop a part that a blocking SDK is
        already sending from a worker thread. The orchestrator waits here before
        aborting so that no part lands after the session is gone.
        """
