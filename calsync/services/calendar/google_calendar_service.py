# calsync/services/calendar/google_calendar_service.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

import httplib2
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy.orm import Session

from calsync.config.settings import get_settings
from calsync.exceptions import CursorExpiredError, error_for_status
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

CONFERENCE_REQUEST_ID_PREFIX = "calsync-meet-"
PAGE_SIZE = 250


def _parse_google_time(value: Dict[str, Any]) -> datetime:
    if value.get("dateTime"):
        parsed = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    if value.get("date"):
        return datetime.fromisoformat(value["date"]).replace(tzinfo=timezone.utc)
    raise ValueError("Google event time has neither dateTime nor date")


def _format_google_time(value: datetime, all_day: bool, tz_name: str) -> Dict[str, str]:
    if all_day:
        return {"date": value.date().isoformat()}
    return {"dateTime": value.isoformat(), "timeZone": tz_name or "UTC"}


def _meet_link(item: Dict[str, Any]) -> Optional[str]:
    for entry in (item.get("conferenceData") or {}).get("entryPoints", []):
        if entry.get("entryPointType") == "video":
            return entry.get("uri")
    return item.get("hangoutLink")


class GoogleCalendarService(CalendarProviderAdapter):
    provider = "google_calendar"
    DEFAULT_CALENDAR_ID = "primary"
    native_video_provider = "google_meet"

    SCOPES = ['https://www.googleapis.com/auth/calendar']
    TOKEN_URI = "https://oauth2.googleapis.com/token"

    def __init__(self):
        settings = get_settings()
        self.timeout = settings.PROVIDER_REQUEST_TIMEOUT_SECONDS
        self.client_config = {
            "web": {
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "redirect_uris": [settings.GOOGLE_REDIRECT_URI],
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": self.TOKEN_URI,
            }
        }

    # ---- OAuth ---------------------------------------------------------------

    def _flow(self) -> Flow:
        redirect_uri = self.client_config['web']['redirect_uris'][0]
        if not redirect_uri:
            raise ValueError("GOOGLE_REDIRECT_URI is not set")
        return Flow.from_client_config(self.client_config, scopes=self.SCOPES, redirect_uri=redirect_uri)

    def generate_authorization_url(self, company_id: str) -> str:
        """Step 1: OAuth consent URL; the company id travels in ``state``"""
        authorization_url, _ = self._flow().authorization_url(
            access_type='offline',  # refresh token
            include_granted_scopes='true',
            prompt='consent',
            state=company_id
        )
        logger.info(f"Generated Google authorization URL for company {company_id}")
        return authorization_url

    def exchange_code(self, code: str) -> ConnectedAccount:
        """Step 2: exchange the authorization code and describe the connected account"""
        flow = self._flow()
        flow.fetch_token(code=code)
        credentials = flow.credentials

        service = self._service(credentials.token)
        calendars = self._execute(service.calendarList().list()).get('items', [])
        primary = next((cal for cal in calendars if cal.get('primary')), None)

        expiry = credentials.expiry
        return ConnectedAccount(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expires_at=expiry.replace(tzinfo=timezone.utc) if expiry else utcnow() + timedelta(hours=1),
            email=primary['id'] if primary else None,
            user_name=primary.get('summary') if primary else None,
            calendar_id=self.DEFAULT_CALENDAR_ID,
            calendar_list=[{'id': cal['id'], 'name': cal.get('summary')} for cal in calendars],
        )

    def handle_oauth_callback(self, code: str, state: str, db: Session) -> CalendarIntegration:
        company_id = UUID(state)
        account = self.exchange_code(code)
        logger.info(f"Google Calendar connected for company {company_id}")
        return IntegrationService.save_connection(db, company_id, self.provider, account)

    def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self.TOKEN_URI,
            client_id=self.client_config['web']['client_id'],
            client_secret=self.client_config['web']['client_secret']
        )
        credentials.refresh(Request())
        expiry = credentials.expiry.replace(tzinfo=timezone.utc) if credentials.expiry else utcnow() + timedelta(hours=1)
        return TokenGrant(access_token=credentials.token, expires_at=expiry)

    # ---- API plumbing ----------------------------------------------------------

    def _service(self, access_token: str):
        http = AuthorizedHttp(Credentials(token=access_token), http=httplib2.Http(timeout=self.timeout))
        return build('calendar', 'v3', http=http, cache_discovery=False)

    def _execute(self, request):
        try:
            return request.execute()
        except HttpError as e:
            raise error_for_status(e.resp.status, f"Google Calendar API error: {e}", provider=self.provider)

    # ---- contract ------------------------------------------------------------

    def fetch_busy(self, access_token: str, calendar_id: Optional[str],
                   start: datetime, end: datetime) -> List[TimeSlot]:
        service = self._service(access_token)
        busy = []
        page_token = None
        while True:
            response = self._execute(service.events().list(
                calendarId=calendar_id or self.DEFAULT_CALENDAR_ID,
                timeMin=start.isoformat(),
                timeMax=end.isoformat(),
                singleEvents=True,
                orderBy='startTime',
                maxResults=PAGE_SIZE,
                pageToken=page_token
            ))
            for item in response.get('items', []):
                if item.get('status') == 'cancelled' or item.get('transparency') == 'transparent':
                    continue
                try:
                    busy.append(TimeSlot(start=_parse_google_time(item['start']), end=_parse_google_time(item['end'])))
                except (KeyError, ValueError) as e:
                    logger.warning(f"Skipping malformed Google event {item.get('id')}: {e}")
            page_token = response.get('nextPageToken')
            if not page_token:
                return busy

    def fetch_changes(self, access_token: str, calendar_id: Optional[str],
                      cursor: Optional[str] = None, page_token: Optional[str] = None) -> ChangePage:
        params = {
            'calendarId': calendar_id or self.DEFAULT_CALENDAR_ID,
            'maxResults': PAGE_SIZE,
            'singleEvents': True,
        }
        if cursor:
            params['syncToken'] = cursor
        else:
            now = utcnow()
            params['timeMin'] = now.isoformat()
            params['timeMax'] = (now + timedelta(days=get_settings().SYNC_WINDOW_DAYS)).isoformat()
            params['orderBy'] = 'startTime'
        if page_token:
            params['pageToken'] = page_token

        try:
            response = self._service(access_token).events().list(**params).execute()
        except HttpError as e:
            if e.resp.status == 410 and cursor:
                raise CursorExpiredError("Google sync token expired", provider=self.provider, status_code=410)
            raise error_for_status(e.resp.status, f"Google Calendar API error: {e}", provider=self.provider)

        return ChangePage(
            items=response.get('items', []),
            next_page_token=response.get('nextPageToken'),
            next_cursor=response.get('nextSyncToken'),
        )

    def build_body(self, payload: EventPayload, partial: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if payload.title is not None:
            body['summary'] = payload.title
        if payload.description is not None:
            body['description'] = payload.description
        if payload.location is not None:
            body['location'] = payload.location
        if payload.start is not None:
            body['start'] = _format_google_time(payload.start, payload.all_day, payload.timezone)
        if payload.end is not None:
            body['end'] = _format_google_time(payload.end, payload.all_day, payload.timezone)
        if payload.attendees:
            body['attendees'] = [
                {'email': a['email'], 'displayName': a.get('name')} for a in payload.attendees if a.get('email')
            ]
        if payload.properties:
            body['extendedProperties'] = {'private': dict(payload.properties)}
        if payload.cancelled:
            body['status'] = 'cancelled'
        if not partial:
            body['reminders'] = {
                'useDefault': False,
                'overrides': [
                    {'method': 'popup', 'minutes': 30},
                    {'method': 'popup', 'minutes': 10},
                ],
            }
            if payload.request_conference and not payload.all_day:
                body['conferenceData'] = {
                    'createRequest': {
                        'requestId': f"{CONFERENCE_REQUEST_ID_PREFIX}{payload.conference_request_id}",
                        'conferenceSolutionKey': {'type': 'hangoutsMeet'},
                    }
                }
        return body

    def insert_event(self, access_token: str, calendar_id: Optional[str],
                     payload: EventPayload) -> CreatedEvent:
        body = self.build_body(payload)
        calendar_id = calendar_id or self.DEFAULT_CALENDAR_ID
        wants_meet = 'conferenceData' in body
        service = self._service(access_token)
        created = self._execute(service.events().insert(
            calendarId=calendar_id,
            body=body,
            conferenceDataVersion=1 if wants_meet else 0,
            sendUpdates='all'
        ))
        video_link = _meet_link(created) if wants_meet else None
        if wants_meet and not video_link:
            # Meet creation is asynchronous; the insert response can still report it as pending
            created = self._execute(service.events().get(calendarId=calendar_id, eventId=created['id']))
            video_link = _meet_link(created)
            if not video_link:
                logger.warning(f"Google Meet link not ready for event {created['id']}")
        return CreatedEvent(
            external_id=created['id'],
            link=created.get('htmlLink'),
            video_link=video_link,
        )

    def patch_event(self, access_token: str, calendar_id: Optional[str],
                    external_id: str, payload: EventPayload) -> None:
        self._execute(self._service(access_token).events().patch(
            calendarId=calendar_id or self.DEFAULT_CALENDAR_ID,
            eventId=external_id,
            body=self.build_body(payload, partial=True),
            sendUpdates='all'
        ))

    def remove_event(self, access_token: str, calendar_id: Optional[str], external_id: str) -> None:
        self._execute(self._service(access_token).events().delete(
            calendarId=calendar_id or self.DEFAULT_CALENDAR_ID,
            eventId=external_id,
            sendUpdates='all'
        ))

    def to_canonical(self, item: Dict[str, Any]) -> ProviderEvent:
        external_id = item['id']
        if item.get('status') == 'cancelled':
            return ProviderEvent(external_id=external_id, cancelled=True)

        start = item['start']
        return ProviderEvent(
            external_id=external_id,
            start=_parse_google_time(start),
            end=_parse_google_time(item['end']),
            title=item.get('summary') or "(No title)",
            description=item.get('description'),
            location=item.get('location'),
            timezone=start.get('timeZone') or "UTC",
            all_day='date' in start and 'dateTime' not in start,
            video_link=_meet_link(item),
            attendees=[
                {
                    'email': a.get('email'),
                    'name': a.get('displayName'),
                    'response_status': a.get('responseStatus'),
                    'organizer': a.get('organizer', False),
                }
                for a in item.get('attendees', []) if a.get('email')
            ],
            recurrence_rule=(item.get('recurrence') or [None])[0],
            recurring_event_id=item.get('recurringEventId'),
            properties=(item.get('extendedProperties') or {}).get('private', {}),
        )
