import random

from pydantic import BaseModel, ConfigDict, Field

from ..config import SYNC_MAX_ATTEMPTS, SYNC_RETRY_DELAY_SECONDS


class BackoffPolicy(BaseModel):
    """Exponential retry delays: ``base * 2**attempt``.

    ``jitter`` adds up to that fraction of the delay at random; it is off by
    default so delays are exact.
    """

    model_config = ConfigDict(frozen=True)

    base: float = Field(default=SYNC_RETRY_DELAY_SECONDS, gt=0, description="Delay before the first retry")
    max_attempts: int = Field(default=SYNC_MAX_ATTEMPTS, ge=0, description="Retries before giving up")
    jitter: float = Field(default=0.0, ge=0.0, le=1.0)

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        if attempt < 0:
            raise ValueError("attempt must be >= 0")
        delay = self.base * 2 ** attempt
        if self.jitter:
            delay += random.uniform(0, self.jitter * delay)
        return delay

    def should_retry(self, attempt: int) -> bool:
        """True if retry number ``attempt`` (0-based) is still allowed."""
        return attempt < self.max_attempts

    def delays(self) -> list[float]:
        return [self.delay(attempt) for attempt in range(self.max_attempts)]
