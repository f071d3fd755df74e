"""
Configuration management for dashboard profiles.

This module handles saving, loading, and exporting dashboard profiles
including JSON serialization and download link generation.
"""

import base64
import json
import logging
from datetime import datetime

from models import DashboardProfile

from .exceptions import ProfileConfigError

logger = logging.getLogger(__name__)


class ProfileConfigManager:
    """Manages saving and loading of dashboard profiles"""

    @staticmethod
    def save_profile(profile: DashboardProfile) -> str:
        """Save dashboard profile to JSON string"""
        profile_data = {
            "profile": profile.to_dict(),
            "saved_at": datetime.now().isoformat(),
        }
        return json.dumps(profile_data, indent=2)

    @staticmethod
    def load_profile(profile_json: str) -> DashboardProfile:
        """Load dashboard profile from JSON string (wrapped or bare profile object)"""
        try:
            profile_data = json.loads(profile_json)
        except (TypeError, ValueError) as e:
            raise ProfileConfigError(f"Profile is not valid JSON: {e}") from e

        if not isinstance(profile_data, dict):
            raise ProfileConfigError("Profile JSON must be an object")
        raw = profile_data.get("profile", profile_data)

        try:
            profile = DashboardProfile.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProfileConfigError(f"Malformed profile: {e!r}") from e

        logger.info(f"Loaded profile '{profile.profile_name}' with {len(profile.panels)} panels")
        return profile

    @staticmethod
    def create_download_link(profile_json: str, filename: str) -> str:
        """Create download link for a saved profile"""
        b64 = base64.b64encode(profile_json.encode()).decode()
        return f'<a href="data:application/json;base64,{b64}" download="{filename}">Download Profile</a>'
