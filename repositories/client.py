"""
Supabase client initialization.

This module contains *only* the database connection setup. The application
creates one async client at startup and hands it to the repositories; nothing
here holds a module-level client.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import AsyncClient, acreate_client  # type: ignore[import-not-found]

# Look for .env in the project root
env_path = Path(__file__).parent.parent / ".env"


def read_credentials() -> tuple[str, str]:
    """Read and validate the Supabase credentials from the environment."""

    load_dotenv(dotenv_path=env_path)

    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_KEY")

    if not supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return supabase_url, supabase_key


async def create_supabase_client() -> AsyncClient:
    """Create the async Supabase client used by every repository."""

    supabase_url, supabase_key = read_credentials()
    return await acreate_client(supabase_url, supabase_key)


__all__ = ["create_supabase_client", "read_credentials"]
