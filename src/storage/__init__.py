from .assets import AssetFile, AssetUploader, path_from_public_url

__all__ = ["AssetFile", "AssetUploader", "path_from_public_url"]
