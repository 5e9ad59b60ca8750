"""Additive-increase / multiplicative-decrease concurrency control."""

from dataclasses import dataclass


MAX_CONCURRENCY = 5
MIN_CONCURRENCY = 2


@dataclass
class RateLimitState:
    """Fetch concurrency for one adapter run.

    Owned by a single AdaptiveFetcher and only updated after a whole
    batch has settled, so it never needs a lock.
    """

    concurrency: int = MAX_CONCURRENCY
    consecutive_errors: int = 0

    def record_batch(self, size: int, failures: int) -> bool:
        """Adjust concurrency from one settled batch.

        Args:
            size: Number of requests in the batch
            failures: How many of them raised

        Returns:
            True if the batch crossed the failure threshold and the caller
            should pause before the next batch
        """
        if size <= 0:
            return False

        if failures * 2 > size:
            self.concurrency = max(MIN_CONCURRENCY, self.concurrency - 1)
            self.consecutive_errors += 1
            return True

        if failures == 0:
            self.consecutive_errors = 0
            if self.concurrency < MAX_CONCURRENCY:
                self.concurrency += 1
        else:
            self.consecutive_errors += 1
        return False
