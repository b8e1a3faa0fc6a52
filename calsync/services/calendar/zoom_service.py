# calsync/services/calendar/zoom_service.py
from datetime import datetime, timedelta
from typing import Dict, Optional
import logging

import requests

from calsync.config.settings import get_settings
from calsync.exceptions import ProviderError, ProviderNotFoundError, error_for_status
from calsync.models.base import utcnow
from calsync.services.calendar.base import CreatedEvent

logger = logging.getLogger(__name__)


class ZoomService:
    """Server-to-Server OAuth Zoom client. Zoom hosts meetings only, it is never a calendar."""

    provider = "zoom"
    video_provider = "zoom"
    TOKEN_URL = 'https://zoom.us/oauth/token'
    API_BASE = 'https://api.zoom.us/v2'

    def __init__(self):
        settings = get_settings()
        self.client_id = settings.ZOOM_CLIENT_ID
        self.client_secret = settings.ZOOM_CLIENT_SECRET
        self.account_id = settings.ZOOM_ACCOUNT_ID
        self.timeout = settings.PROVIDER_REQUEST_TIMEOUT_SECONDS
        self.refresh_buffer = timedelta(minutes=settings.TOKEN_REFRESH_BUFFER_MINUTES)
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.account_id)

    def get_access_token(self) -> str:
        if not self.is_configured():
            raise ProviderError("Zoom credentials are not configured", provider=self.provider)

        if self._token and self._token_expires_at > utcnow() + self.refresh_buffer:
            return self._token

        response = requests.post(
            self.TOKEN_URL,
            data={'grant_type': 'account_credentials', 'account_id': self.account_id},
            auth=(self.client_id, self.client_secret),
            timeout=self.timeout
        )
        if response.status_code != 200:
            self._token = None
            logger.error(f"Failed to get Zoom token: {response.text}")
            raise error_for_status(response.status_code, f"Zoom token error: {response.text}", provider=self.provider)

        data = response.json()
        self._token = data['access_token']
        self._token_expires_at = utcnow() + timedelta(seconds=data.get('expires_in', 3600))
        return self._token

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        headers = {
            'Authorization': f'Bearer {self.get_access_token()}',
            'Content-Type': 'application/json',
        }
        response = requests.request(method, f"{self.API_BASE}{path}", headers=headers, timeout=self.timeout, **kwargs)
        if response.status_code >= 400:
            raise error_for_status(response.status_code, f"Zoom API error: {response.text}", provider=self.provider)
        return response

    def verify_credentials(self) -> Optional[Dict[str, str]]:
        """Account email/id when the configured credentials work, else None"""
        if not self.is_configured():
            return None
        try:
            data = self._request('GET', '/users/me').json()
        except ProviderError as e:
            logger.warning(f"Zoom credential check failed: {e}")
            return None
        return {'email': data.get('email'), 'id': data.get('id')}

    @staticmethod
    def _duration_minutes(start: datetime, end: datetime) -> int:
        return max(1, round((end - start).total_seconds() / 60))

    def create_meeting(self, title: str, start: datetime, end: datetime, timezone: str = "UTC") -> CreatedEvent:
        data = self._request('POST', '/users/me/meetings', json={
            'topic': title,
            'type': 2,  # scheduled meeting
            'start_time': start.isoformat(),
            'duration': self._duration_minutes(start, end),
            'timezone': timezone or 'UTC',
            'settings': {
                'join_before_host': True,
                'waiting_room': False,
                'mute_upon_entry': True,
                'host_video': True,
                'participant_video': True,
                'auto_recording': 'none',
            },
        }).json()
        logger.info(f"Created Zoom meeting {data.get('id')}")
        return CreatedEvent(external_id=str(data['id']), link=data.get('join_url'), video_link=data.get('join_url'))

    def update_meeting(self, meeting_id: str, title: Optional[str] = None, start: Optional[datetime] = None,
                       end: Optional[datetime] = None, timezone: Optional[str] = None) -> None:
        updates = {}
        if title:
            updates['topic'] = title
        if start:
            updates['start_time'] = start.isoformat()
        if start and end:
            updates['duration'] = self._duration_minutes(start, end)
        if timezone:
            updates['timezone'] = timezone
        if updates:
            self._request('PATCH', f'/meetings/{meeting_id}', json=updates)

    def delete_meeting(self, meeting_id: str) -> bool:
        try:
            self._request('DELETE', f'/meetings/{meeting_id}')
        except ProviderNotFoundError:
            logger.info(f"Zoom meeting {meeting_id} already deleted")
            return False
        return True
