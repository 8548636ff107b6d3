"""
Feature flag service implementation.
Controls affinity-ranking rollout and kill switch.
"""
import hashlib
from typing import Optional

from clipfeed.config import get_settings
from clipfeed.models.interfaces import FeatureFlagService


def rollout_bucket(viewer_id: str) -> int:
    """Stable bucket in [0, 100) from the first four bytes of the viewer id's MD5."""
    digest = hashlib.md5(viewer_id.encode()).digest()
    return int.from_bytes(digest[:4], byteorder="big") % 100


class ConfigBasedFeatureFlagService(FeatureFlagService):
    """
    Feature flag service backed by application settings.
    Supports percentage-based rollout using consistent hashing.
    """

    def __init__(self, rollout_percentage: Optional[float] = None) -> None:
        """
        Initialize feature flag service.

        Args:
            rollout_percentage: Percentage of viewers to enable (0-100);
                None reads ROLLOUT_PERCENTAGE from settings on every check
        """
        self._rollout_percentage = rollout_percentage

    @property
    def rollout_percentage(self) -> float:
        if self._rollout_percentage is not None:
            return self._rollout_percentage
        return get_settings().ROLLOUT_PERCENTAGE

    def is_personalization_enabled(self, viewer_id: str) -> bool:
        """
        Check if affinity ranking is enabled for this viewer.

        Uses consistent hashing so the same viewer always lands in the
        same bucket.
        """
        settings = get_settings()

        # Global kill switch takes precedence
        if self.is_kill_switch_active():
            return False

        if not settings.PERSONALIZATION_ENABLED:
            return False

        if self.rollout_percentage < 100.0:
            return self._is_viewer_in_rollout(viewer_id)

        return True

    def is_kill_switch_active(self) -> bool:
        """Check if global kill switch is activated."""
        return get_settings().KILL_SWITCH_ACTIVE

    def _is_viewer_in_rollout(self, viewer_id: str) -> bool:
        return rollout_bucket(viewer_id) < self.rollout_percentage

    def set_rollout_percentage(self, percentage: float) -> None:
        """Update rollout percentage (for dynamic configuration)."""
        self._rollout_percentage = max(0.0, min(100.0, percentage))
