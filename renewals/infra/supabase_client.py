# module renewals.infra.supabase_client
from typing import Optional
from supabase import create_client, Client, ClientOptions
from renewals import config
from renewals.errors import ConfigError

_service_supabase: Optional[Client] = None

def get_service_supabase() -> Client:
    """
    Shared PostgREST client with the service-role key.
    - Created on first use, then reused by every request.
    - Calls give up after SUPABASE_TIMEOUT seconds.
    """
    global _service_supabase
    if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_KEY:
        raise ConfigError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
    if _service_supabase is None:
        _service_supabase = create_client(
            config.SUPABASE_URL,
            config.SUPABASE_SERVICE_KEY,
            options=ClientOptions(postgrest_client_timeout=config.SUPABASE_TIMEOUT),
        )
    return _service_supabase
