'''
Small helpers shared across test modules.
'''
import datetime
from zoneinfo import ZoneInfo

from drivebook_backend.database.db_enums import UserRole
from drivebook_backend.services.security import JWTHandler

LONDON = ZoneInfo("Europe/London")


def auth_headers(user_id, role: UserRole) -> dict[str, str]:
    token = JWTHandler.create_access_token(subject=user_id, role=role)
    return {"Authorization": f"Bearer {token}"}


def next_weekday(weekday: int, weeks_ahead: int = 1) -> datetime.date:
    """A date at least `weeks_ahead` weeks from today falling on `weekday` (0=Mon)."""
    today = datetime.date.today()
    days = (weekday - today.weekday()) % 7
    return today + datetime.timedelta(days=days + 7 * weeks_ahead)


def london(day: datetime.date, hour: int, minute: int = 0) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time(hour, minute), tzinfo=LONDON)


def hours_from_now(hours: float) -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(hours=hours)
