"""Single-document upload to the remote store."""

from .base import NetworkFailure, RemoteStoreClient
from ..storage.models import Document
from ..utils.logging import get_logger


HTTP_CONFLICT = 409


class DocumentPusher:
    """Uploads one document per call and flips its ``synced`` flag on success.

    By default documents are created with ``POST /{db}`` and the remote store
    picks the key. A push whose success response was lost will therefore be
    repeated on the next sync and create a second remote copy. With
    ``idempotent=True`` the document is written with ``PUT /{db}/{id}`` so
    repeats collapse onto the local id; a 409 conflict then means the
    document is already there.
    """

    def __init__(self, client: RemoteStoreClient, timeout_seconds: float = 30.0, idempotent: bool = False):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.idempotent = idempotent
        self.logger = get_logger(self.__class__.__name__)

    async def push(self, document: Document, remote_collection: str) -> bool:
        """Upload ``document`` into ``remote_collection``.

        Sets ``document.synced = True`` on success; the caller persists it.
        Failures are logged and reported as False, never raised.
        """
        if document.synced:
            return True

        try:
            if self.idempotent:
                await self.client.request(
                    "PUT", remote_collection, document.id,
                    json=document.to_remote_body(),
                    timeout=self.timeout_seconds
                )
            else:
                await self.client.request(
                    "POST", remote_collection,
                    json=document.to_remote_body(),
                    timeout=self.timeout_seconds
                )
        except NetworkFailure as e:
            if self.idempotent and e.status == HTTP_CONFLICT:
                self.logger.info(
                    "Document already present remotely",
                    document_id=document.id,
                    collection=remote_collection
                )
            else:
                self.logger.warning(
                    "Push failed, document stays unsynced",
                    document_id=document.id,
                    collection=remote_collection,
                    status=e.status,
                    error=str(e)
                )
                return False

        document.synced = True
        self.logger.info("Document synced to remote", document_id=document.id, collection=remote_collection)
        return True
