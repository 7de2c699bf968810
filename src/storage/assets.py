"""
Asset uploads to Supabase Storage.

Uploaded files are referenced by their public URL. Replacing an asset uploads
the new object first and removes the old one only after that succeeded.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar, Union

from rich.console import Console

from src.backend.supabase_client import AdminContext
from src.errors import UploadError

console = Console()

T = TypeVar("T")

PUBLIC_PREFIX = "/storage/v1/object/public/"


@dataclass
class AssetFile:
    """A user-selected file."""

    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def extension(self) -> Optional[str]:
        if "." not in self.filename:
            return None
        ext = self.filename.rsplit(".", 1)[-1].lower()
        return ext or None


def path_from_public_url(public_url: str) -> Optional[tuple[str, str]]:
    """
    Split a public URL into (bucket, object path).

    Example:
        https://x.supabase.co/storage/v1/object/public/cms/thumbs/1.jpg
        -> ("cms", "thumbs/1.jpg")
    """
    if not public_url:
        return None
    idx = public_url.find(PUBLIC_PREFIX)
    if idx == -1:
        return None
    rest = public_url[idx + len(PUBLIC_PREFIX):].split("?", 1)[0]
    bucket, _, path = rest.partition("/")
    if not bucket or not path:
        return None
    return bucket, path


class AssetUploader:
    """
    Uploads files to named buckets and cleans up superseded objects.

    - Logos may overwrite an existing object, everything else may not
    - Cleanup failures are printed and swallowed
    """

    def __init__(self, context: AdminContext):
        self.context = context
        self.storage_config = context.config.storage

    def object_path(
        self,
        folder: str,
        file: AssetFile,
        owner_id: Union[int, str, None] = None,
        default_ext: str = "jpg",
    ) -> str:
        """
        Build a collision-resistant object path.

        With an owner: folder/{owner}_{millis}.{ext}
        Without one:   folder/{millis}_{random}.{ext}
        """
        ext = file.extension or default_ext
        millis = int(time.time() * 1000)
        if owner_id is not None:
            name = f"{owner_id}_{millis}"
        else:
            name = f"{millis}_{secrets.token_hex(4)}"
        return f"{folder}/{name}.{ext}"

    def upload(
        self,
        file: AssetFile,
        bucket: str,
        folder: str,
        owner_id: Union[int, str, None] = None,
        overwrite: bool = False,
    ) -> str:
        """
        Upload a file and return its public URL.

        Raises:
            UploadError: The storage service rejected the upload
        """
        path = self.object_path(folder, file, owner_id)
        file_options = {
            "cache-control": self.storage_config.cache_control,
            "upsert": "true" if overwrite else "false",
        }
        if file.content_type:
            file_options["content-type"] = file.content_type

        try:
            self.context.client.storage.from_(bucket).upload(
                path, file.content, file_options
            )
        except Exception as e:
            raise UploadError(f"Upload failed: {e}") from e

        public_url = self.context.client.storage.from_(bucket).get_public_url(path)
        console.print(f"[dim]  Uploaded: {bucket}/{path}[/dim]")
        return public_url

    def replace(
        self,
        previous_url: Optional[str],
        file: AssetFile,
        bucket: str,
        folder: str,
        persist: Callable[[str], T],
        owner_id: Union[int, str, None] = None,
        overwrite: bool = False,
    ) -> T:
        """
        Swap an asset: upload, store the new reference, delete the old object.

        Args:
            previous_url: Reference being superseded (may be None)
            persist: Writes the new URL to the owning record

        If the upload fails nothing else happens. If persist fails the new
        object is removed again and the old one is kept.
        """
        new_url = self.upload(file, bucket, folder, owner_id, overwrite)
        try:
            result = persist(new_url)
        except Exception:
            self.delete_by_public_url(new_url)
            raise
        if previous_url and previous_url != new_url:
            self.delete_by_public_url(previous_url)
        return result

    def delete_by_public_url(self, public_url: Optional[str]) -> bool:
        """
        Best-effort delete of the object behind a public URL.

        Returns:
            True if a delete call succeeded
        """
        location = path_from_public_url(public_url or "")
        if not location:
            return False
        bucket, path = location
        try:
            self.context.client.storage.from_(bucket).remove([path])
            return True
        except Exception as e:
            console.print(
                f"[yellow]Warning: Could not delete {bucket}/{path}: {e}[/yellow]"
            )
            return False
