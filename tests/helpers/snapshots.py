"""Snapshot file fixtures in the platform's row shapes."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


def sample_document() -> dict[str, list[dict[str, object]]]:
    """One identity missing both records, a duplicate member pair and an orphaned profile."""

    return {
        "identities": [
            {
                "id": "u1",
                "email": "a@x.com",
                "email_confirmed_at": "2024-01-01T09:00:00Z",
                "created_at": "2024-01-01T09:00:00Z",
                "user_metadata": {"full_name": "Ada Obi"},
            },
            {
                "id": "u2",
                "email": "b@x.com",
                "created_at": "2024-01-02T09:00:00Z",
                "user_metadata": {},
            },
        ],
        "profiles": [
            {"id": "u2", "email": "b@x.com", "full_name": None, "role": "admin"},
            {"id": "orphan1", "email": "gone@x.com", "role": "pastor"},
        ],
        "members": [
            {
                "id": "m1",
                "user_id": "u2",
                "email": "b@x.com",
                "fullname": "Bo",
                "category": "Workers",
                "isactive": True,
                "created_at": "2024-01-02T09:00:00Z",
            },
            {
                "id": "m2",
                "user_id": "u2",
                "email": "B@x.com",
                "fullname": "Bo",
                "phone": "555",
                "churchunits": ["choir"],
                "joindate": "2023-04-01",
                "created_at": "2024-01-03T09:00:00Z",
            },
        ],
    }


def write_document(path: Path, document: dict[str, list[dict[str, object]]]) -> Path:
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def read_document(path: Path) -> dict[str, list[dict[str, object]]]:
    return json.loads(path.read_text(encoding="utf-8"))
