"""
Media source variants.
A closed set of playable renditions for one clip, discriminated on `kind`,
with an explicit preference order instead of URL sniffing.
"""
from typing import Annotated, Dict, List, Literal, Union

from pydantic import BaseModel, Field


class RawMedia(BaseModel):
    """Original upload, always playable but not optimized for streaming."""

    kind: Literal["raw"] = "raw"
    url: str = Field(..., description="Original upload URL")


class OptimizedMedia(BaseModel):
    """Transcoded progressive MP4 (faststart, capped bitrate)."""

    kind: Literal["optimized"] = "optimized"
    url: str = Field(..., description="Optimized MP4 URL")


class AdaptiveMedia(BaseModel):
    """Adaptive bitrate stream (HLS manifest)."""

    kind: Literal["adaptive"] = "adaptive"
    url: str = Field(..., description="HLS manifest URL")


MediaSource = Annotated[
    Union[RawMedia, OptimizedMedia, AdaptiveMedia],
    Field(discriminator="kind"),
]

# Lower rank is preferred
MEDIA_PREFERENCE: Dict[str, int] = {
    "adaptive": 0,
    "optimized": 1,
    "raw": 2,
}


def order_media_sources(sources: List[MediaSource]) -> List[MediaSource]:
    """
    Return sources best-first, keeping the first source seen of each kind.

    Clients try entries in order, so the raw upload (when present) is
    always the last resort.
    """
    first_by_kind: Dict[str, MediaSource] = {}
    for source in sources:
        first_by_kind.setdefault(source.kind, source)
    return sorted(first_by_kind.values(), key=lambda s: MEDIA_PREFERENCE[s.kind])


def has_fast_delivery(sources: List[MediaSource]) -> bool:
    """True when an optimized or adaptive rendition is ready."""
    return any(source.kind != "raw" for source in sources)
