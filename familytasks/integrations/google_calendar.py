"""Google Calendar integration for FamilyTasks."""

import asyncio
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from dotenv import load_dotenv

from familytasks.engine.errors import ProviderUnavailable
from familytasks.integrations.calendar_provider import CalendarProvider
from familytasks.models.calendar import BusyInterval
from familytasks.models.scheduled_block import ScheduledBlock, Phase

load_dotenv()

logger = logging.getLogger(__name__)

# Google Calendar API scopes
SCOPES = ['https://www.googleapis.com/auth/calendar']

# Private extended properties marking events this system created
TASK_ID_PROPERTY = "familytasks_task_id"
BLOCK_ID_PROPERTY = "familytasks_block_id"

PHASE_COLOR_IDS = {
    Phase.INCUBATION.value: "1",
    Phase.DESIGN.value: "2",
    Phase.IMPLEMENTATION.value: "3",
    Phase.IMPROVEMENT.value: "4",
}

EVENT_LIST_FIELDS = "items(id,status,transparency,start,end,extendedProperties(private)),nextPageToken"

# Network, TLS and credential-refresh failures raised below the API client
TRANSPORT_ERRORS = (OSError, httplib2.HttpLib2Error, GoogleAuthError)


class GoogleCalendarProvider(CalendarProvider):
    """Calendar provider backed by the Google Calendar v3 API."""

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        credentials_path: Optional[str] = None,
        calendar_id: Optional[str] = None,
        token_path: str = "token.json",
        time_zone: str = "UTC",
    ):
        """Initialize Google Calendar provider.

        Args:
            credentials: Ready OAuth2 credentials. If None, authenticates with
                         `token_path` / `credentials_path`.
            credentials_path: Path to OAuth2 client secrets JSON file.
                             If None, reads from GOOGLE_CALENDAR_CREDENTIALS_PATH env var.
            calendar_id: Google Calendar ID to use.
                        If None, reads from GOOGLE_CALENDAR_ID env var (defaults to 'primary').
            token_path: Path to store OAuth2 token (defaults to 'token.json').
            time_zone: IANA zone in which naive scheduling datetimes are expressed.
        """
        self.credentials_path = credentials_path or os.getenv("GOOGLE_CALENDAR_CREDENTIALS_PATH", "credentials.json")
        self.calendar_id = calendar_id or os.getenv("GOOGLE_CALENDAR_ID", "primary")
        self.token_path = token_path
        self.time_zone = time_zone
        self.tz = ZoneInfo(time_zone)
        self.creds = credentials or self._authenticate()
        self.service = build('calendar', 'v3', credentials=self.creds)

    def _authenticate(self) -> Credentials:
        """Load, refresh or obtain OAuth2 credentials."""
        creds = None

        if os.path.exists(self.token_path):
            creds = Credentials.from_authorized_user_file(self.token_path, SCOPES)

        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                if not os.path.exists(self.credentials_path):
                    raise FileNotFoundError(
                        f"Google Calendar credentials not found at {self.credentials_path}. "
                        "Please download OAuth2 credentials from Google Cloud Console."
                    )
                flow = InstalledAppFlow.from_client_secrets_file(self.credentials_path, SCOPES)
                creds = flow.run_local_server(port=0)

            with open(self.token_path, 'w') as token:
                token.write(creds.to_json())

        return creds

    def _to_rfc3339(self, dt: datetime) -> str:
        return dt.replace(tzinfo=self.tz).isoformat()

    def _from_rfc3339(self, value: str) -> datetime:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            return parsed
        return parsed.astimezone(self.tz).replace(tzinfo=None)

    async def _execute(self, request, operation: str) -> Any:
        try:
            return await asyncio.to_thread(request.execute)
        except HttpError as error:
            raise ProviderUnavailable(f"Failed to {operation}: {error}", operation=operation) from error
        except TRANSPORT_ERRORS as error:
            raise ProviderUnavailable(
                f"Failed to {operation}: {type(error).__name__}: {str(error)}", operation=operation
            ) from error

    async def list_busy_intervals(
        self,
        calendar_id: str,
        range_start: datetime,
        range_end: datetime,
        exclude_task_id: Optional[str] = None,
    ) -> List[BusyInterval]:
        """Busy intervals from timed, opaque events.

        Mirrored blocks count as busy except those of `exclude_task_id`.
        """
        intervals: List[BusyInterval] = []
        page_token = None
        while True:
            request = self.service.events().list(
                calendarId=calendar_id,
                timeMin=self._to_rfc3339(range_start),
                timeMax=self._to_rfc3339(range_end),
                singleEvents=True,
                orderBy="startTime",
                fields=EVENT_LIST_FIELDS,
                pageToken=page_token,
            )
            response = await self._execute(request, "list calendar events")
            for item in response.get("items", []):
                interval = self._busy_interval(item)
                if interval is not None and (exclude_task_id is None or interval.task_id != exclude_task_id):
                    intervals.append(interval)
            page_token = response.get("nextPageToken")
            if not page_token:
                return intervals

    def _busy_interval(self, item: Dict[str, Any]) -> Optional[BusyInterval]:
        if item.get("status") == "cancelled" or item.get("transparency") == "transparent":
            return None
        start = (item.get("start") or {}).get("dateTime")
        end = (item.get("end") or {}).get("dateTime")
        # All-day events carry only `date`
        if not start or not end:
            return None
        private = (item.get("extendedProperties") or {}).get("private") or {}
        return BusyInterval(
            start=self._from_rfc3339(start),
            end=self._from_rfc3339(end),
            task_id=private.get(TASK_ID_PROPERTY),
        )

    def _event_body(self, block: ScheduledBlock, task_title: str) -> Dict[str, Any]:
        return {
            'summary': f"{task_title} ({block.phase})",
            'description': f"Task: {task_title}\nPhase: {block.phase}",
            'start': {
                'dateTime': self._to_rfc3339(block.start_time),
                'timeZone': self.time_zone,
            },
            'end': {
                'dateTime': self._to_rfc3339(block.end_time),
                'timeZone': self.time_zone,
            },
            'colorId': PHASE_COLOR_IDS.get(str(block.phase), "1"),
            'extendedProperties': {
                'private': {
                    TASK_ID_PROPERTY: block.task_id,
                    BLOCK_ID_PROPERTY: block.id,
                }
            },
        }

    async def create_event(self, block: ScheduledBlock, task_title: str) -> str:
        request = self.service.events().insert(
            calendarId=self.calendar_id,
            body=self._event_body(block, task_title),
        )
        event = await self._execute(request, "create calendar event")
        logger.debug(f"Created calendar event {event['id']} for block {block.id}")
        return event['id']

    async def update_event(self, event_id: str, block: ScheduledBlock, task_title: str) -> None:
        request = self.service.events().update(
            calendarId=self.calendar_id,
            eventId=event_id,
            body=self._event_body(block, task_title),
        )
        await self._execute(request, "update calendar event")

    async def delete_event(self, event_id: str) -> None:
        request = self.service.events().delete(calendarId=self.calendar_id, eventId=event_id)
        try:
            await self._execute(request, "delete calendar event")
        except ProviderUnavailable as error:
            cause = error.__cause__
            if isinstance(cause, HttpError) and cause.resp.status in (404, 410):
                logger.debug(f"Calendar event {event_id} already gone")
                return
            raise

    async def is_slot_free(self, start: datetime, end: datetime, exclude_task_id: Optional[str] = None) -> bool:
        busy = await self.list_busy_intervals(self.calendar_id, start, end, exclude_task_id=exclude_task_id)
        return not any(b.start < end and b.end > start for b in busy)
