"""
Database client configuration.
Uses Supabase for PostgreSQL + Storage.

The pipeline itself never touches the database; only the persistence and
attachment sinks do. When SUPABASE_URL / SUPABASE_SERVICE_KEY are not set
the admin client is None and the sinks skip their work.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from supabase import Client, create_client

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

# Admin client for service-level operations (bypasses RLS)
supabase_admin: Optional[Client] = (
    create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    if SUPABASE_URL and SUPABASE_SERVICE_KEY
    else None
)
