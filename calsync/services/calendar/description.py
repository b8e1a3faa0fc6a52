# calsync/services/calendar/description.py
from typing import Optional

from calsync.models.calendar_event import CalendarEvent

VIDEO_PROVIDER_LABELS = {
    "google_meet": "Google Meet",
    "zoom": "Zoom",
    "microsoft_teams": "Microsoft Teams",
}

FOOTER = "Managed by calsync"


def build_event_description(event: CalendarEvent, native_video_provider: Optional[str] = None) -> str:
    """Plain-text body pushed to a provider calendar.

    The video link is written out only when the receiving calendar did not
    generate it itself.
    """
    lines = [f"[{(event.event_type or 'meeting').replace('_', ' ').upper()}]"]

    if event.video_link and event.video_provider != native_video_provider:
        label = VIDEO_PROVIDER_LABELS.get(event.video_provider, "Video")
        lines.append(f"{label} Meeting: {event.video_link}")

    if event.contact_name:
        lines.append(f"Contact: {event.contact_name}")
    if event.contact_phone:
        lines.append(f"Phone: {event.contact_phone}")
    if event.contact_email:
        lines.append(f"Email: {event.contact_email}")
    if event.agent_name:
        lines.append(f"Agent: {event.agent_name}")
    if event.confirmation_status and event.confirmation_status != "unconfirmed":
        lines.append(f"Confirmation: {event.confirmation_status}")
    if event.notes:
        lines.append(f"Notes: {event.notes}")
    if event.ai_notes:
        lines.append(f"AI Notes: {event.ai_notes}")
    if event.description:
        lines.append("")
        lines.append(event.description)

    lines.append("")
    lines.append("---")
    lines.append(FOOTER)
    return "\n".join(lines)
