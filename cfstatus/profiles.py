"""Named API-token profiles kept in the secret store."""

import json
import logging
from typing import List, Optional

from cfstatus.models import Profile
from cfstatus.stores import PreferenceStore, SecretStore

logger = logging.getLogger(__name__)

PROFILES_KEY = "com.cloudflarestatusbar.profiles"
ACTIVE_PROFILE_ID_KEY = "activeProfileId"


class ProfileStore:
    """Manages the profile list and the active-profile pointer.

    The whole list is rewritten to the secret store on every mutation, so a
    ``list()`` after ``add``/``update``/``delete`` always sees the change.
    """

    def __init__(self, secrets: SecretStore, preferences: PreferenceStore):
        self.secrets = secrets
        self.preferences = preferences

    def list(self) -> List[Profile]:
        data = self.secrets.load(PROFILES_KEY)
        if data is None:
            return []
        try:
            raw = json.loads(data.decode("utf-8"))
            if not isinstance(raw, list):
                raise TypeError("profile list must be a JSON array")
            return [Profile.from_dict(item) for item in raw]
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning("Discarding unreadable profile list: %s", exc)
            return []

    def _save(self, profiles: List[Profile]) -> None:
        payload = json.dumps([profile.to_dict() for profile in profiles])
        self.secrets.save(PROFILES_KEY, payload.encode("utf-8"))

    def get(self, profile_id: str) -> Optional[Profile]:
        for profile in self.list():
            if profile.id == profile_id:
                return profile
        return None

    def add(self, profile: Profile) -> None:
        profiles = self.list()
        if any(existing.id == profile.id for existing in profiles):
            raise ValueError(f"Profile {profile.id} already exists")
        profiles.append(profile)
        self._save(profiles)

    def update(self, profile: Profile) -> bool:
        profiles = self.list()
        for index, existing in enumerate(profiles):
            if existing.id == profile.id:
                profiles[index] = profile
                self._save(profiles)
                return True
        return False

    def delete(self, profile_id: str) -> bool:
        profiles = self.list()
        remaining = [profile for profile in profiles if profile.id != profile_id]
        removed = len(remaining) != len(profiles)
        if removed:
            self._save(remaining)

        if self.get_active_id() == profile_id:
            self.set_active_id(None)
        return removed

    def get_active_id(self) -> Optional[str]:
        return self.preferences.get(ACTIVE_PROFILE_ID_KEY)

    def set_active_id(self, profile_id: Optional[str]) -> None:
        self.preferences.set(ACTIVE_PROFILE_ID_KEY, profile_id)

    def get_active_profile(self) -> Optional[Profile]:
        active_id = self.get_active_id()
        if active_id is None:
            return None
        return self.get(active_id)

    @property
    def is_using_profiles(self) -> bool:
        return self.get_active_profile() is not None
