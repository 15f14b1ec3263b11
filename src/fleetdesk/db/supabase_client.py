from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

logger = logging.getLogger(__name__)

_REQUIRED_ENV = ("SUPABASE_URL", "SUPABASE_KEY")


@lru_cache(maxsize=1)
def get_client() -> Any:
    """Shared Supabase client for the repositories.

    Only built when FLEETDESK_STORAGE_BACKEND=supabase; the in-memory
    backend never imports the package.
    """
    missing = [name for name in _REQUIRED_ENV if not os.getenv(name)]
    if missing:
        raise RuntimeError(f"Supabase storage needs {', '.join(missing)} to be set")

    from supabase import create_client

    logger.info("Connecting repositories to Supabase at %s", os.environ["SUPABASE_URL"])
    return create_client(os.environ["SUPABASE_URL"], os.environ["SUPABASE_KEY"])
