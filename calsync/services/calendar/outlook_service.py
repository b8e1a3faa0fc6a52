# calsync/services/calendar/outlook_service.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID
import json
import logging
import re

import msal
import requests
from sqlalchemy.orm import Session

from calsync.config.redis import get_redis, RedisKeys
from calsync.config.settings import get_settings
from calsync.exceptions import CursorExpiredError, ProviderError, error_for_status
from calsync.models.base import utcnow
from calsync.models.calendar_integration import CalendarIntegration
from calsync.schemas.calendar_events import TimeSlot
from calsync.services.calendar.base import (
    CalendarProviderAdapter,
    ChangePage,
    ConnectedAccount,
    CreatedEvent,
    EventPayload,
    ProviderEvent,
    TokenGrant,
)
from calsync.services.calendar.integration_service import IntegrationService

logger = logging.getLogger(__name__)

# Named-property namespace for our private metadata on Graph events
EXTENDED_PROPERTY_ID = "String {{66f5a359-4659-4830-9070-00047ec6ac6e}} Name {name}"
_EXTENDED_PROPERTY_RE = re.compile(r"^String \{66f5a359-4659-4830-9070-00047ec6ac6e\} Name (.+)$")
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")

SELECT_FIELDS = ",".join([
    "id", "subject", "body", "start", "end", "location", "attendees", "organizer",
    "onlineMeeting", "isOnlineMeeting", "onlineMeetingProvider", "webLink", "isCancelled",
    "isAllDay", "seriesMasterId", "showAs", "responseStatus",
])
PAGE_SIZE = 250


def _parse_graph_time(value: Dict[str, Any]) -> datetime:
    raw = _FRACTION_RE.sub(r".\1", value["dateTime"])
    # Graph omits the offset; we always ask for UTC
    if not raw.endswith("Z") and "+" not in raw[10:]:
        raw += "Z"
    return datetime.fromisoformat(raw.replace("Z", "+00:00")).astimezone(timezone.utc)


def _format_graph_time(value: datetime, all_day: bool) -> Dict[str, str]:
    value = value.astimezone(timezone.utc)
    if all_day:
        return {"dateTime": value.strftime("%Y-%m-%dT00:00:00"), "timeZone": "UTC"}
    return {"dateTime": value.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": "UTC"}


class OutlookCalendarService(CalendarProviderAdapter):
    provider = "microsoft_outlook"
    DEFAULT_CALENDAR_ID = None  # /me/calendar
    native_video_provider = "microsoft_teams"

    SCOPES = ['Calendars.ReadWrite', 'User.Read']
    AUTHORITY = 'https://login.microsoftonline.com/common'
    GRAPH_ENDPOINT = 'https://graph.microsoft.com/v1.0'
    AUTH_FLOW_TTL = 600  # 10 minutes

    def __init__(self):
        settings = get_settings()
        self.client_id = settings.MICROSOFT_CLIENT_ID
        self.client_secret = settings.MICROSOFT_CLIENT_SECRET
        self.redirect_uri = settings.MICROSOFT_REDIRECT_URI
        self.timeout = settings.PROVIDER_REQUEST_TIMEOUT_SECONDS

    def _msal_app(self) -> msal.ConfidentialClientApplication:
        return msal.ConfidentialClientApplication(
            self.client_id,
            authority=self.AUTHORITY,
            client_credential=self.client_secret
        )

    # ---- OAuth ---------------------------------------------------------------

    async def generate_authorization_url(self, company_id: str) -> str:
        """Generate Microsoft OAuth URL; the auth-code flow is parked in Redis until the callback"""
        auth_flow = self._msal_app().initiate_auth_code_flow(
            scopes=self.SCOPES,
            redirect_uri=self.redirect_uri,
            state=company_id
        )

        redis_client = await get_redis()
        try:
            key = RedisKeys.OUTLOOK_AUTH_FLOW.format(company_id=company_id)
            await redis_client.setex(key, self.AUTH_FLOW_TTL, json.dumps(auth_flow))
            logger.info(f"Stored auth flow in Redis with key: {key}")
        finally:
            await redis_client.close()

        return auth_flow['auth_uri']

    async def exchange_code(self, code: str, state: str) -> ConnectedAccount:
        redis_client = await get_redis()
        try:
            key = RedisKeys.OUTLOOK_AUTH_FLOW.format(company_id=state)
            auth_flow_json = await redis_client.get(key)
            if not auth_flow_json:
                logger.error(f"Auth flow not found in Redis for key: {key}")
                raise ValueError("Auth flow not found. Please restart the authorization process.")
            auth_flow = json.loads(auth_flow_json)
            await redis_client.delete(key)
        finally:
            await redis_client.close()

        result = self._msal_app().acquire_token_by_auth_code_flow(
            auth_code_flow=auth_flow,
            auth_response={'code': code, 'state': state}
        )
        if "error" in result:
            logger.error(f"Token exchange error: {result.get('error_description')}")
            raise ValueError(f"Auth error: {result.get('error_description')}")

        access_token = result['access_token']
        profile = self._request('GET', f"{self.GRAPH_ENDPOINT}/me", access_token).json()
        calendars = self._request('GET', f"{self.GRAPH_ENDPOINT}/me/calendars", access_token).json().get('value', [])

        return ConnectedAccount(
            access_token=access_token,
            refresh_token=result.get('refresh_token'),
            expires_at=utcnow() + timedelta(seconds=result.get('expires_in', 3600)),
            email=profile.get('mail') or profile.get('userPrincipalName'),
            user_name=profile.get('displayName'),
            calendar_id=None,
            calendar_list=[{'id': cal['id'], 'name': cal.get('name')} for cal in calendars],
        )

    async def handle_oauth_callback(self, code: str, state: str, db: Session) -> CalendarIntegration:
        company_id = UUID(state)
        account = await self.exchange_code(code, state)
        logger.info(f"Microsoft Outlook connected for company {company_id}")
        return IntegrationService.save_connection(db, company_id, self.provider, account)

    def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        result = self._msal_app().acquire_token_by_refresh_token(
            refresh_token=refresh_token,
            scopes=self.SCOPES
        )
        if "error" in result:
            raise ProviderError(
                f"Token refresh failed: {result.get('error_description')}", provider=self.provider
            )
        return TokenGrant(
            access_token=result['access_token'],
            expires_at=utcnow() + timedelta(seconds=result.get('expires_in', 3600)),
            refresh_token=result.get('refresh_token'),
        )

    # ---- API plumbing ----------------------------------------------------------

    def _request(self, method: str, url: str, access_token: str, **kwargs) -> requests.Response:
        headers = {
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json',
            'Prefer': 'outlook.timezone="UTC"',
        }
        headers.update(kwargs.pop('headers', {}))
        response = requests.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        if response.status_code >= 400:
            logger.error(f"Microsoft Graph API error {response.status_code}: {response.text}")
            raise error_for_status(
                response.status_code,
                f"Microsoft Graph API error: {response.text}",
                provider=self.provider
            )
        return response

    def _calendar_path(self, calendar_id: Optional[str]) -> str:
        if calendar_id:
            return f"{self.GRAPH_ENDPOINT}/me/calendars/{calendar_id}"
        return f"{self.GRAPH_ENDPOINT}/me/calendar"

    # ---- contract ------------------------------------------------------------

    def fetch_busy(self, access_token: str, calendar_id: Optional[str],
                   start: datetime, end: datetime) -> List[TimeSlot]:
        url = f"{self._calendar_path(calendar_id)}/calendarView"
        params = {
            'startDateTime': start.astimezone(timezone.utc).isoformat(),
            'endDateTime': end.astimezone(timezone.utc).isoformat(),
            '$top': str(PAGE_SIZE),
            '$select': SELECT_FIELDS,
        }
        busy = []
        while url:
            data = self._request('GET', url, access_token, params=params).json()
            for item in data.get('value', []):
                if item.get('isCancelled') or item.get('showAs') == 'free':
                    continue
                if item.get('responseStatus', {}).get('response') == 'declined':
                    continue
                try:
                    busy.append(TimeSlot(start=_parse_graph_time(item['start']), end=_parse_graph_time(item['end'])))
                except (KeyError, ValueError) as e:
                    logger.warning(f"Skipping malformed Graph event {item.get('id')}: {e}")
            # nextLink already carries the query string
            url = data.get('@odata.nextLink')
            params = None
        return busy

    def fetch_changes(self, access_token: str, calendar_id: Optional[str],
                      cursor: Optional[str] = None, page_token: Optional[str] = None) -> ChangePage:
        headers = {'Prefer': f'outlook.timezone="UTC", odata.maxpagesize={PAGE_SIZE}'}
        if page_token:
            data = self._request('GET', page_token, access_token, headers=headers).json()
        elif cursor:
            try:
                data = self._request('GET', cursor, access_token, headers=headers).json()
            except ProviderError as e:
                if e.status_code in (404, 410):
                    raise CursorExpiredError("Microsoft delta link expired", provider=self.provider,
                                             status_code=e.status_code)
                raise
        else:
            now = utcnow()
            params = {
                'startDateTime': now.isoformat(),
                'endDateTime': (now + timedelta(days=get_settings().SYNC_WINDOW_DAYS)).isoformat(),
            }
            data = self._request(
                'GET', f"{self._calendar_path(calendar_id)}/calendarView/delta", access_token,
                headers=headers, params=params
            ).json()

        return ChangePage(
            items=data.get('value', []),
            next_page_token=data.get('@odata.nextLink'),
            next_cursor=data.get('@odata.deltaLink'),
        )

    def build_body(self, payload: EventPayload, partial: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if payload.title is not None:
            body['subject'] = payload.title
        if payload.description is not None:
            body['body'] = {'contentType': 'text', 'content': payload.description}
        if payload.location is not None:
            body['location'] = {'displayName': payload.location}
        if payload.start is not None:
            body['start'] = _format_graph_time(payload.start, payload.all_day)
        if payload.end is not None:
            body['end'] = _format_graph_time(payload.end, payload.all_day)
        if payload.start is not None or not partial:
            body['isAllDay'] = payload.all_day
        if payload.attendees:
            body['attendees'] = [
                {'emailAddress': {'address': a['email'], 'name': a.get('name')}, 'type': 'required'}
                for a in payload.attendees if a.get('email')
            ]
        if payload.properties:
            body['singleValueExtendedProperties'] = [
                {'id': EXTENDED_PROPERTY_ID.format(name=name), 'value': str(value)}
                for name, value in payload.properties.items()
            ]
        if not partial:
            body['reminderMinutesBeforeStart'] = 10
            body['isReminderOn'] = True
            body['isOnlineMeeting'] = bool(payload.request_conference)
            if payload.request_conference:
                body['onlineMeetingProvider'] = 'teamsForBusiness'
        return body

    def insert_event(self, access_token: str, calendar_id: Optional[str],
                     payload: EventPayload) -> CreatedEvent:
        body = self.build_body(payload)
        created = self._request('POST', f"{self._calendar_path(calendar_id)}/events", access_token, json=body).json()

        video_link = None
        if payload.request_conference:
            video_link = (created.get('onlineMeeting') or {}).get('joinUrl')
            if not video_link:
                # Teams links are sometimes attached after the create call returns
                refreshed = self._request(
                    'GET', f"{self.GRAPH_ENDPOINT}/me/events/{created['id']}", access_token,
                    params={'$select': 'id,onlineMeeting'}
                ).json()
                video_link = (refreshed.get('onlineMeeting') or {}).get('joinUrl')

        return CreatedEvent(external_id=created['id'], link=created.get('webLink'), video_link=video_link)

    def patch_event(self, access_token: str, calendar_id: Optional[str],
                    external_id: str, payload: EventPayload) -> None:
        self._request(
            'PATCH', f"{self.GRAPH_ENDPOINT}/me/events/{external_id}", access_token,
            json=self.build_body(payload, partial=True)
        )

    def remove_event(self, access_token: str, calendar_id: Optional[str], external_id: str) -> None:
        self._request('DELETE', f"{self.GRAPH_ENDPOINT}/me/events/{external_id}", access_token)

    def to_canonical(self, item: Dict[str, Any]) -> ProviderEvent:
        external_id = item['id']
        if '@removed' in item or item.get('isCancelled'):
            return ProviderEvent(external_id=external_id, cancelled=True)

        properties = {}
        for prop in item.get('singleValueExtendedProperties', []):
            match = _EXTENDED_PROPERTY_RE.match(prop.get('id', ''))
            if match:
                properties[match.group(1)] = prop.get('value')

        body = item.get('body') or {}
        return ProviderEvent(
            external_id=external_id,
            start=_parse_graph_time(item['start']),
            end=_parse_graph_time(item['end']),
            title=item.get('subject') or "(No title)",
            description=body.get('content') if body.get('contentType') == 'text' else item.get('bodyPreview'),
            location=(item.get('location') or {}).get('displayName') or None,
            timezone="UTC",
            all_day=bool(item.get('isAllDay')),
            video_link=(item.get('onlineMeeting') or {}).get('joinUrl'),
            attendees=[
                {
                    'email': a['emailAddress'].get('address'),
                    'name': a['emailAddress'].get('name'),
                    'response_status': (a.get('status') or {}).get('response'),
                    'organizer': False,
                }
                for a in item.get('attendees', []) if (a.get('emailAddress') or {}).get('address')
            ],
            recurring_event_id=item.get('seriesMasterId'),
            properties=properties,
        )
