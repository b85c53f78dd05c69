"""Builders for raw upstream records used across the test suite."""

from datetime import datetime, timezone

NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)
NOW_TS = int(NOW.timestamp())


def make_tag(tag_id: int, tag_type: str, name: str, count: int = 100) -> dict:
    return {"id": tag_id, "type": tag_type, "name": name, "url": f"/{tag_type}/{name}/", "count": count}


def make_record(
    gallery_id: int,
    *,
    title: str | None = None,
    media_id: int | None = None,
    num_pages: int = 3,
    tags: list[dict] = (),
    favorites: int = 0,
    upload_date: int | None = NOW_TS,
    token: str = "j",
) -> dict:
    """Build a raw upstream gallery record."""
    return {
        "id": gallery_id,
        "media_id": str(media_id if media_id is not None else gallery_id * 10),
        "title": {
            "english": title or f"Gallery {gallery_id}",
            "japanese": "",
            "pretty": title or f"Gallery {gallery_id}",
        },
        "images": {
            "pages": [{"t": token, "w": 1280, "h": 1810} for _ in range(num_pages)],
            "cover": {"t": token, "w": 350, "h": 495},
            "thumbnail": {"t": token, "w": 250, "h": 354},
        },
        "scanlator": "",
        "upload_date": upload_date,
        "tags": list(tags),
        "num_pages": num_pages,
        "num_favorites": favorites,
    }
