"""
Supabase connection shared by every controller.

The context is constructed once at process start and passed down explicitly.
Multi-user front ends (the panel) fork it per request so each caller talks
to the backend with their own auth session.
"""

from typing import Callable, Optional

from rich.console import Console
from supabase import Client, ClientOptions, create_client

from config.settings import AdminConfig, config as default_config
from src.errors import ConfigurationError

console = Console()


class AdminContext:
    """
    Backend handle plus configuration.

    - client -> supabase Client (tables, rpc, storage, auth)
    - config -> AdminConfig (buckets, feature flags, list limits, routes)
    - client_factory -> builds another client for fork()
    """

    def __init__(
        self,
        client: Client,
        admin_config: Optional[AdminConfig] = None,
        client_factory: Optional[Callable[[], Client]] = None,
    ):
        self.client = client
        self.config = admin_config or default_config
        self.client_factory = client_factory

    @classmethod
    def from_config(cls, admin_config: Optional[AdminConfig] = None) -> "AdminContext":
        """
        Create the Supabase client from configuration.

        Raises:
            ConfigurationError: SUPABASE_URL or SUPABASE_KEY is not set
        """
        admin_config = admin_config or default_config
        missing = admin_config.missing_credentials()
        if missing:
            raise ConfigurationError(
                f"Supabase credentials required. Set {' and '.join(missing)} "
                "environment variables."
            )

        def client_factory() -> Client:
            options = ClientOptions(
                auto_refresh_token=admin_config.supabase.auto_refresh_token,
                persist_session=admin_config.supabase.persist_session,
            )
            return create_client(
                admin_config.supabase.url, admin_config.supabase.key, options=options
            )

        return cls(client_factory(), admin_config, client_factory)

    def fork(self) -> "AdminContext":
        """
        Same configuration over a new client with an empty auth session.

        Raises:
            ConfigurationError: The context was built without a client factory
        """
        if self.client_factory is None:
            raise ConfigurationError("This backend context cannot open new sessions.")
        return AdminContext(self.client_factory(), self.config, self.client_factory)

    @property
    def features(self):
        return self.config.features

    @property
    def routes(self):
        return self.config.routes

    def table(self, name: str):
        return self.client.table(name)

    def check_health(self) -> list[tuple[str, bool, str]]:
        """
        Check configuration and backend reachability.

        Returns:
            List of (check, ok, detail) tuples
        """
        checks = [
            ("SUPABASE_URL set", bool(self.config.supabase.url), ""),
            ("SUPABASE_KEY set", bool(self.config.supabase.key), ""),
        ]
        try:
            self.client.table("brands").select("id").limit(1).execute()
            checks.append(("SELECT brands", True, "OK"))
        except Exception as e:
            checks.append(("SELECT brands", False, str(e)))
        return checks
