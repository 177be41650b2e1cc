"""Read-only dashboard view over an owner's memories."""
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from .models import Memory


def map_points(memories: Sequence[Memory]) -> List[Dict[str, Any]]:
    """Memories that carry a location, projected for the map."""
    out: List[Dict[str, Any]] = []
    for m in memories:
        if m.location is None:
            continue
        data = m.to_json()
        out.append({
            "id": data["id"],
            "title": data["title"],
            "location": data["location"],
            "type": data["type"],
            "createdAt": data["createdAt"],
        })
    return out


def build_dashboard(memories: Sequence[Memory]) -> Dict[str, Any]:
    """Compose timeline, map points and summary stats.

    ``memories`` is expected newest first (as ``MemoryStore.list_by_owner``
    returns it); the timeline keeps that order untouched.
    """
    locations = map_points(memories)
    stats = {
        "totalMemories": len(memories),
        "totalImages": sum(len(m.images or []) for m in memories),
        "totalVideos": sum(len(m.videos or []) for m in memories),
        "locationsVisited": len(locations),
    }
    return {
        "memories": [m.to_json() for m in memories],
        "locations": locations,
        "stats": stats,
    }
