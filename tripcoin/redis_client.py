import redis
import redis.asyncio as aioredis

from tripcoin.config import settings

# async client for the web process, sync client for celery workers
redis_client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
sync_redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
