from .supabase_client import AdminContext

__all__ = ["AdminContext"]
