"""Job store adapters."""

from spark_worker.store.base import JobStore
from spark_worker.store.memory import InMemoryJobStore
from spark_worker.store.supabase import SupabaseJobStore

__all__ = ["InMemoryJobStore", "JobStore", "SupabaseJobStore"]
