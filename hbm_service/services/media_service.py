"""
Media Service

Records for files already placed in object storage. Staff uploads are
stamped with uploaded_by, customer uploads with uploaded_by_customer; the
latter is the ownership key. The storage backend itself is injected.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Union

from hbm_service.core.auth_context import AuthContext, requires_staff_access
from hbm_service.core.config import settings
from hbm_service.core.permissions import Action, Resource
from hbm_service.models import Media
from hbm_service.schemas.common import PaginatedResult, QueryOptions
from hbm_service.schemas.media import MediaCreate
from hbm_service.services.base_service import AuthorizedService, PermissionResult, validate_payload

logger = logging.getLogger(__name__)


class MediaStorage(Protocol):
    async def get_download_url(self, key: str, expires_in: int) -> str:
        ...

    async def delete_file(self, key: str) -> None:
        ...

    async def health_check(self) -> Dict[str, Any]:
        """{"status": "healthy" | "unhealthy", "error": optional message}"""
        ...


@dataclass
class StorageHealth:
    healthy: bool
    message: Optional[str] = None


def file_type_for_mime(mime_type: str) -> str:
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    if mime_type.startswith("audio/"):
        return "audio"
    if mime_type == "application/pdf":
        return "pdf"
    return "document"


class MediaService(AuthorizedService[Media]):
    resource = Resource.MEDIA

    def __init__(self, repository, storage: MediaStorage):
        super().__init__(repository)
        self.storage = storage

    def check_customer_permission(self, context: AuthContext, action: Action) -> PermissionResult:
        if action in (Action.READ, Action.CREATE, Action.DELETE):
            return PermissionResult(allowed=True)
        return PermissionResult(
            allowed=False,
            reason=f"Customers cannot perform {action.value} operations on media",
        )

    def check_customer_access(self, context: AuthContext, entity: Media) -> bool:
        if context.is_customer:
            return entity.uploaded_by_customer is not None and context.user_id == str(entity.uploaded_by_customer)
        return True

    def apply_customer_filters(self, context: AuthContext, options: QueryOptions) -> QueryOptions:
        return options.with_filters(uploaded_by_customer=context.user_id)

    async def register_media(self, context: AuthContext, data: Union[MediaCreate, Dict[str, Any]]) -> Media:
        """
        Record a stored object.

        file_type may be omitted in a dict payload; it is then derived from
        the mime type.
        """
        self.require_permission(context, Action.CREATE)
        if isinstance(data, dict) and not data.get("file_type") and data.get("mime_type"):
            data = {**data, "file_type": file_type_for_mime(data["mime_type"])}
        payload = validate_payload(MediaCreate, data)

        record = payload.model_dump()
        record["uploaded_by"] = context.user_id if context.is_staff else None
        record["uploaded_by_customer"] = context.user_id if context.is_customer else None

        media = await self.repository.create(record)
        self.log_operation(
            "register_media",
            context,
            {"entity_id": str(media.id), "file_size": payload.file_size, "mime_type": payload.mime_type},
        )
        return media

    async def get_media(self, context: AuthContext, media_id) -> Optional[Media]:
        return await self.find_by_id(context, media_id)

    async def get_media_with_signed_url(
        self,
        context: AuthContext,
        media_id,
        expires_in: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Media record fields plus a time-limited download URL."""
        media = await self.load_authorized(context, media_id, Action.READ)
        expires_in = expires_in or settings.MEDIA_SIGNED_URL_TTL_SECONDS
        signed_url = await self.storage.get_download_url(media.file_path, expires_in)
        return {
            "id": str(media.id),
            "original_name": media.original_name,
            "file_name": media.file_name,
            "file_path": media.file_path,
            "file_size": media.file_size,
            "mime_type": media.mime_type,
            "file_type": media.file_type,
            "alt_text": media.alt_text,
            "signed_url": signed_url,
            "expires_in": expires_in,
        }

    async def list_media(self, context: AuthContext, options: Optional[QueryOptions] = None) -> PaginatedResult:
        return await self.find_all(context, options)

    async def delete_media(self, context: AuthContext, media_id) -> bool:
        """Remove the stored object first, then the record."""
        media = await self.load_authorized(context, media_id, Action.DELETE)
        await self.storage.delete_file(media.file_path)

        deleted = await self.repository.delete(media_id)
        self.log_operation("delete_media", context, {"entity_id": str(media_id), "file_path": media.file_path})
        return deleted

    @requires_staff_access()
    async def get_storage_health(self, context: AuthContext) -> StorageHealth:
        try:
            status = await self.storage.health_check()
        except Exception as e:
            logger.error(f"Storage health check failed: {e}")
            return StorageHealth(healthy=False, message=str(e))
        return StorageHealth(healthy=status.get("status") == "healthy", message=status.get("error"))
