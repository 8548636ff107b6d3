"""
In-memory repository implementations.
Used for prototyping and testing.
Production would replace these with Postgres/Redis implementations.
"""
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from clipfeed.models.media import AdaptiveMedia, OptimizedMedia, RawMedia
from clipfeed.models.schemas import Candidate, ViewHistory

CDN_BASE = "https://cdn.example.com/v"


def _media_for(video_id: str, optimized: bool) -> list:
    media = [RawMedia(url=f"{CDN_BASE}/{video_id}/original.mp4")]
    if optimized:
        media.append(OptimizedMedia(url=f"{CDN_BASE}/{video_id}/720p.mp4"))
        media.append(AdaptiveMedia(url=f"{CDN_BASE}/{video_id}/master.m3u8"))
    return media


class InMemoryCatalogRepository:
    """
    In-memory implementation of CatalogRepository.
    Simulates the videos table with its engagement counters.
    """

    def __init__(self, videos: Optional[Iterable[Candidate]] = None) -> None:
        self._videos: Dict[str, Candidate] = {}
        self._lock = Lock()
        if videos is None:
            self._initialize_mock_data()
        else:
            for video in videos:
                self._videos[video.id] = video

    def _initialize_mock_data(self) -> None:
        """Load a small mock catalog spread over the last few weeks."""
        now = datetime.now(timezone.utc)
        creators = ["c_ana", "c_ben", "c_cam", "c_dee", "c_eli", "c_fay"]
        tag_sets = [
            ["comedy", "pets"],
            ["dance", "music"],
            ["cooking"],
            ["sports", "football"],
            ["travel", "food"],
            ["music"],
            ["pets"],
            ["comedy"],
        ]
        for i in range(30):
            video_id = f"v{i + 1}"
            self._videos[video_id] = Candidate(
                id=video_id,
                creator_id=creators[i % len(creators)],
                title=f"Clip {i + 1}",
                created_at=now - timedelta(hours=11 * i + 1),
                tags=tag_sets[i % len(tag_sets)],
                view_count=(i * 37) % 500,
                like_count=(i * 11) % 60,
                comment_count=(i * 3) % 15,
                media=_media_for(video_id, optimized=i % 3 != 0),
            )

    def add(self, video: Candidate) -> None:
        """Insert or replace a catalog entry."""
        with self._lock:
            self._videos[video.id] = video

    async def fetch_candidates(
        self,
        since: datetime,
        excluded: Set[str],
        limit: int,
    ) -> List[Candidate]:
        """Fetch recent videos newest-first, omitting excluded ids in the query."""
        with self._lock:
            rows = [
                video
                for video in self._videos.values()
                if video.created_at >= since and video.id not in excluded
            ]
        rows.sort(key=lambda v: v.created_at, reverse=True)
        return rows[:limit]

    async def count_videos(self) -> int:
        """Total catalog size."""
        with self._lock:
            return len(self._videos)


class InMemoryPreferenceRepository:
    """
    In-memory implementation of PreferenceRepository.
    Simulates the per-viewer category preference table.
    """

    def __init__(self, scores: Optional[Dict[str, Dict[str, float]]] = None) -> None:
        self._scores: Dict[str, Dict[str, float]] = {}
        if scores is None:
            self._initialize_mock_data()
        else:
            self._scores.update(scores)

    def _initialize_mock_data(self) -> None:
        """Load mock preferences for a couple of known viewers."""
        self._scores = {
            "viewer_pets": {"pets": 60.0, "comedy": 30.0, "music": 10.0},
            "viewer_sports": {"sports": 80.0, "football": 70.0},
        }

    def set_scores(self, viewer_id: str, scores: Dict[str, float]) -> None:
        self._scores[viewer_id] = dict(scores)

    async def get_category_scores(self, viewer_id: str) -> Dict[str, float]:
        """Fetch raw interaction scores; cold-start viewers get {}."""
        return dict(self._scores.get(viewer_id, {}))


class InMemoryViewHistoryRepository:
    """
    In-memory implementation of ViewHistoryRepository.
    Simulates the append-only views log.
    """

    def __init__(self) -> None:
        self._views: Dict[str, List[Tuple[str, datetime]]] = defaultdict(list)
        self._lock = Lock()

    def record_view(
        self,
        viewer_id: str,
        video_id: str,
        viewed_at: Optional[datetime] = None,
    ) -> None:
        """Append a view event."""
        with self._lock:
            self._views[viewer_id].append(
                (video_id, viewed_at or datetime.now(timezone.utc))
            )

    async def get_view_history(
        self,
        viewer_id: str,
        since: Optional[datetime] = None,
    ) -> ViewHistory:
        """Distinct videos viewed since the cutoff."""
        with self._lock:
            events = list(self._views.get(viewer_id, []))
        return ViewHistory(
            viewed_ids={
                video_id
                for video_id, viewed_at in events
                if since is None or viewed_at >= since
            }
        )


class InMemoryRateLimitStore:
    """
    In-memory implementation of RateLimitStore.
    Keeps one timestamp deque per requester key; keys whose hits have all
    left the window are dropped on a sweep at most once per window.
    """

    def __init__(self) -> None:
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = Lock()
        self._last_sweep: Optional[float] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def acquire(self, key: str, now: float, window_sec: float, limit: int) -> float:
        """Admit and record a hit, or return seconds until the oldest hit expires."""
        cutoff = now - window_sec
        with self._lock:
            self._sweep(now, window_sec, cutoff)
            bucket = self._hits.get(key)
            if bucket is None:
                bucket = self._hits[key] = deque()
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()
            if len(bucket) >= limit:
                return bucket[0] + window_sec - now
            bucket.append(now)
            return 0.0

    def _sweep(self, now: float, window_sec: float, cutoff: float) -> None:
        # Caller holds the lock.
        if self._last_sweep is not None and now - self._last_sweep < window_sec:
            return
        self._last_sweep = now
        stale = [key for key, bucket in self._hits.items() if not bucket or bucket[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
                self._last_sweep = None
            else:
                self._hits.pop(key, None)
