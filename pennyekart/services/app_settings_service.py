# pennyekart/services/app_settings_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pennyekart.config import Config
from pennyekart.models import AppSetting

logger = logging.getLogger(__name__)


class PortalStatus:
    READY = "ready"
    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class PortalState:
    """What the customer food-delivery page should render."""

    status: str
    url: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class AppSettingsService:
    """Key/value app settings edited from the admin panel"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_setting(self, key: str) -> Optional[str]:
        row = self.db.query(AppSetting).filter_by(key=key).first()
        if row is None or row.value is None:
            return None
        return row.value.strip() or None

    def get_settings(self, *keys: str) -> Dict[str, Optional[str]]:
        rows = self.db.query(AppSetting).filter(AppSetting.key.in_(keys)).all()
        values = {row.key: (row.value or "").strip() or None for row in rows}
        return {key: values.get(key) for key in keys}

    def update_setting(self, key: str, value: Optional[str]) -> Tuple[bool, str, Optional[AppSetting]]:
        """Upsert a single setting row; the value is stored trimmed."""
        if not key:
            return False, "Setting key is required", None
        cleaned = (value or "").strip()
        try:
            row = self.db.query(AppSetting).filter_by(key=key).first()
            if row is None:
                row = AppSetting(key=key, value=cleaned)
                self.db.add(row)
            else:
                row.value = cleaned
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error saving setting {key}: {e}")
            return False, f"Error saving setting: {e}", None

        logger.info("Updated app setting %s", key)
        return True, "Settings saved!", row

    def get_app_download_links(self) -> Dict[str, Any]:
        links = self.get_settings(Config.ANDROID_APP_URL_KEY, Config.IOS_APP_URL_KEY)
        android_url = links[Config.ANDROID_APP_URL_KEY]
        ios_url = links[Config.IOS_APP_URL_KEY]
        available = bool(android_url or ios_url)
        return {
            "android_url": android_url,
            "ios_url": ios_url,
            "available": available,
            "message": None if available else "No app downloads available yet",
        }

    def get_food_delivery_portal(self) -> PortalState:
        try:
            url = self.get_setting(Config.FOOD_DELIVERY_URL_KEY)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error loading food delivery portal: {e}")
            return PortalState(PortalStatus.UNAVAILABLE, message="Could not load PennyCarbs. Please try again later.")

        if not url:
            return PortalState(
                PortalStatus.NOT_CONFIGURED,
                message="PennyCarbs is not configured yet. Please check back soon.",
            )
        return PortalState(PortalStatus.READY, url=url)

    def update_food_delivery_url(self, url: Optional[str]) -> Tuple[bool, str, Optional[AppSetting]]:
        """A blank URL clears the portal; anything else must be absolute http(s)."""
        cleaned = (url or "").strip()
        if cleaned and not is_http_url(cleaned):
            return False, "Enter a full URL starting with http:// or https://", None
        return self.update_setting(Config.FOOD_DELIVERY_URL_KEY, cleaned)

    @staticmethod
    def probe_url(url: Optional[str], timeout: Optional[float] = None) -> Tuple[bool, str]:
        cleaned = (url or "").strip()
        if not cleaned or not is_http_url(cleaned):
            return False, "Enter a full URL starting with http:// or https://"

        try:
            response = requests.head(
                cleaned,
                allow_redirects=True,
                timeout=timeout or Config.URL_PROBE_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.warning("URL probe failed for %s: %s", cleaned, e)
            return False, f"Could not reach {cleaned}"

        if response.status_code >= 400:
            return False, f"{cleaned} responded with HTTP {response.status_code}"
        return True, f"{cleaned} is reachable"
