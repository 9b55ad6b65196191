"""Member profiles shown next to listings and order threads."""

from __future__ import annotations

from promptmarket.models.schemas import Profile
from promptmarket.orchestrator.errors import NotFoundError, ValidationError
from promptmarket.store.order_store import OrderStore
from promptmarket.utils.logger import get_logger

log = get_logger(__name__, component="profiles")


class ProfileDirectory:
    def __init__(self, store: OrderStore) -> None:
        self._store = store
        self._db = store.db

    async def upsert_profile(
        self,
        user_id: str,
        display_name: str,
        *,
        avatar_url: str = "",
        bio: str = "",
        is_creator: bool = False,
    ) -> Profile:
        """Create the profile for *user_id* or replace its editable fields."""
        name = (display_name or "").strip()
        if not name:
            raise ValidationError("Display name is required")

        existing = await self._db.fetch_one("SELECT id FROM profiles WHERE id = ?", (user_id,))
        if existing is None:
            profile = Profile(
                id=user_id,
                display_name=name,
                avatar_url=avatar_url,
                bio=bio,
                is_creator=is_creator,
            )
            await self._store.insert("profiles", profile)
            log.info("profile.created", user_id=user_id, is_creator=is_creator)
            return profile

        await self._store.update(
            "profiles",
            user_id,
            {
                "display_name": name,
                "avatar_url": avatar_url,
                "bio": bio,
                "is_creator": is_creator,
            },
        )
        log.info("profile.updated", user_id=user_id)
        return await self.get_profile(user_id)

    async def get_profile(self, user_id: str) -> Profile:
        row = await self._db.fetch_one("SELECT * FROM profiles WHERE id = ?", (user_id,))
        if row is None:
            raise NotFoundError(f"Profile not found: {user_id}")
        return Profile.model_validate(row)
