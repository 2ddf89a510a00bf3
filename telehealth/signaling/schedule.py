from datetime import date, datetime, time, timedelta

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
TIME_FORMATS = ('%I:%M %p', '%I:%M%p', '%H:%M')


def weekday_name(value: date) -> str:
    return WEEKDAYS[value.weekday()]


def split_slot_label(label: str) -> tuple[str | None, str]:
    """Split ``"Monday 10:00 AM"`` into ``("Monday", "10:00 AM")``.

    Labels without a leading day name return ``None`` for the day.
    """
    normalized = ' '.join(label.split())
    head, _, rest = normalized.partition(' ')
    if head.capitalize() in WEEKDAYS and rest:
        return head.capitalize(), rest
    return None, normalized


def parse_clock_time(value: str) -> time:
    normalized = value.strip().upper()
    for time_format in TIME_FORMATS:
        try:
            return datetime.strptime(normalized, time_format).time()
        except ValueError:
            continue
    raise ValueError(f'Unrecognized time of day: {value!r}')


def format_slot_label(day: str, clock_time: str) -> str:
    return f'{day.strip().capitalize()} {clock_time.strip()}'


def window_bounds(appointment_date: date, time_slot: str, window_minutes: int) -> tuple[datetime, datetime]:
    _, clock_label = split_slot_label(time_slot)
    start = datetime.combine(appointment_date, parse_clock_time(clock_label))
    return start, start + timedelta(minutes=window_minutes)
