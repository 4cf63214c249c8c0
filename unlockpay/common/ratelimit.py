"""Redis token bucket used to throttle order creation per client."""

from time import time


class TokenBucket:
    """Capacity = refill rate = `limit_per_minute` tokens."""

    def __init__(self, rdb, limit_per_minute: int, prefix: str = "tokenbucket") -> None:
        self.rdb = rdb
        self.limit_per_minute = limit_per_minute
        self.prefix = prefix

    def allow(self, client_key: str) -> bool:
        """Consume one token for `client_key`; False when the bucket is empty."""

        key = f"{self.prefix}:{client_key}"
        now = time()
        capacity = float(self.limit_per_minute)
        refill_per_sec = capacity / 60.0

        values = self.rdb.hmget(key, "tokens", "updated_at")
        tokens = float(values[0]) if values[0] is not None else capacity
        updated_at = float(values[1]) if values[1] is not None else now
        elapsed = max(0.0, now - updated_at)
        tokens = min(capacity, tokens + elapsed * refill_per_sec)

        if tokens < 1.0:
            self.rdb.hset(key, mapping={"tokens": tokens, "updated_at": now})
            self.rdb.expire(key, 120)
            return False
        tokens -= 1.0
        self.rdb.hset(key, mapping={"tokens": tokens, "updated_at": now})
        self.rdb.expire(key, 120)
        return True
