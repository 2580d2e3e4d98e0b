from request_relay.infrastructure.job_store.redis_job_store import CLAIM_SCRIPT, RedisJobStore

__all__ = ["RedisJobStore", "CLAIM_SCRIPT"]
