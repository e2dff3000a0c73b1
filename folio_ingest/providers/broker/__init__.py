"""Job broker implementations.

    RedisJobBroker    - durable, survives restarts, shared by every worker process
    InMemoryJobBroker - single process only; state is lost on exit
"""

from folio_ingest.providers.broker.memory_job_broker import InMemoryJobBroker
from folio_ingest.providers.broker.redis_job_broker import RedisJobBroker

__all__ = ["InMemoryJobBroker", "RedisJobBroker"]
