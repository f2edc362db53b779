from datetime import datetime, timedelta, time as dtime
from typing import Optional, Dict, Any, Tuple
import json
import logging
import os

import pytz
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from availability import to_local_date
from config import (
    TIMEZONE,
    CALENDAR_ID,
    DEFAULT_APPOINTMENT_DURATION_MIN,
)
from errors import PricingError
from quote_logic import ARTIST_NAMES, parse_artist

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]

# Used when the client hasn't picked a ready time yet
DEFAULT_READY_TIME = dtime(12, 0)


def get_calendar_service():
    """
    Load Calendar API credentials.

    - Deployed: from GOOGLE_CALENDAR_TOKEN_JSON env var
    - Locally: from token.json
    """
    token_env = os.getenv("GOOGLE_CALENDAR_TOKEN_JSON")

    if token_env:
        data = json.loads(token_env)
        creds = Credentials.from_authorized_user_info(data, SCOPES)
    else:
        creds = Credentials.from_authorized_user_file("token.json", SCOPES)

    return build("calendar", "v3", credentials=creds)


def _parse_ready_time(value: Optional[str]) -> dtime:
    """'14:30' -> time(14, 30); blank or malformed -> DEFAULT_READY_TIME"""
    text = (value or "").strip()
    if not text:
        return DEFAULT_READY_TIME
    try:
        hour, minute = text.split(":")[:2]
        return dtime(int(hour), int(minute))
    except ValueError:
        logger.warning("Unreadable ready_time %r, using default", value)
        return DEFAULT_READY_TIME


def appointment_window(
    event_date,
    ready_time: Optional[str],
    duration_min: int = DEFAULT_APPOINTMENT_DURATION_MIN,
) -> Tuple[datetime, datetime]:
    """
    The bride must be ready by `ready_time`, so the appointment ends then
    and starts `duration_min` earlier (studio timezone).
    """
    day = to_local_date(event_date)
    if day is None:
        raise ValueError("Booking has no event date")

    tz = pytz.timezone(TIMEZONE)
    end_dt = tz.localize(datetime.combine(day, _parse_ready_time(ready_time)))
    start_dt = end_dt - timedelta(minutes=duration_min)
    return start_dt, end_dt


def build_event_body(booking: Dict[str, Any]) -> Dict[str, Any]:
    start_dt, end_dt = appointment_window(booking.get("event_date"), booking.get("ready_time"))

    name = booking.get("name") or booking.get("client_name") or "Client"
    service_type = booking.get("service_type") or "Service"
    try:
        artist_name = ARTIST_NAMES[parse_artist(booking.get("artist"))]
    except PricingError:
        artist_name = "TBD"

    description_lines = [
        f"Service: {service_type}",
        f"Artist: {artist_name}",
        f"Client: {name}",
    ]
    if booking.get("email"):
        description_lines.append(f"Email: {booking['email']}")
    if booking.get("phone"):
        description_lines.append(f"Phone: {booking['phone']}")
    if booking.get("venue_address"):
        description_lines.append(
            "Address: "
            f"{booking.get('venue_address')}, {booking.get('venue_city', '')}, "
            f"{booking.get('venue_province', '')} {booking.get('venue_postal', '')}".strip()
        )
    if booking.get("booking_id"):
        description_lines.append(f"Booking ID: {booking['booking_id']}")

    return {
        "summary": f"{service_type} - {name}",
        "description": "\n".join(description_lines),
        "start": {"dateTime": start_dt.isoformat(), "timeZone": TIMEZONE},
        "end": {"dateTime": end_dt.isoformat(), "timeZone": TIMEZONE},
    }


def create_appointment_event(
    booking: Dict[str, Any],
    calendar_id: str = CALENDAR_ID,
):
    """
    Put a booking whose deposit has landed on the studio calendar.
    """
    service = get_calendar_service()
    event_body = build_event_body(booking)

    email = booking.get("email")
    if email:
        event_body["attendees"] = [{"email": email}]

    return service.events().insert(
        calendarId=calendar_id,
        body=event_body,
        sendUpdates="all",
    ).execute()


def schedule_appointment(booking: Dict[str, Any]) -> None:
    """Background-task wrapper: a calendar outage must not fail the webhook."""
    try:
        event = create_appointment_event(booking)
        logger.info("Calendar event %s created for booking %s", event.get("id"), booking.get("booking_id"))
    except Exception as e:
        logger.exception("Could not create calendar event for booking %s: %s", booking.get("booking_id"), e)
