"""
Injectable randomness for ranking.
The exploration term and tiered shuffle draw from a per-request
generator created here, never from the module-level `random` state.
"""
import random
from typing import Optional


class RandomSourceFactory:
    """
    Creates one `random.Random` per feed request.

    With a seed every request replays the same draws (tests, debugging);
    without one each generator is seeded from OS entropy.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self._seed = seed

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def create(self) -> random.Random:
        if self._seed is None:
            return random.Random()
        return random.Random(self._seed)
