"""
Utility functions for the Duty Roster Scheduler.
Handles date operations, holiday tables, roster data and table helpers.
"""

import calendar
import logging
import re
from datetime import date
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple
import pandas as pd

logger = logging.getLogger(__name__)


SATURDAY = 5
SUNDAY = 6
TUESDAY = 1

# Indonesian national holidays 2026 ("MM-DD")
HOLIDAYS_2026: FrozenSet[str] = frozenset({
    "01-01",  # Tahun Baru Masehi
    "01-16",  # Isra Mikraj
    "02-17",  # Tahun Baru Imlek
    "03-19",  # Nyepi
    "03-21",  # Idulfitri
    "03-22",  # Idulfitri
    "04-03",  # Wafat Yesus Kristus
    "04-05",  # Paskah
    "05-01",  # Hari Buruh
    "05-14",  # Kenaikan Yesus Kristus
    "05-27",  # Iduladha
    "05-31",  # Waisak
    "06-01",  # Hari Lahir Pancasila
    "06-16",  # Tahun Baru Islam
    "08-17",  # Proklamasi Kemerdekaan
    "08-25",  # Maulid Nabi
    "12-25",  # Natal
})

HOLIDAY_TABLES: Dict[int, FrozenSet[str]] = {
    2026: HOLIDAYS_2026,
}

DEFAULT_CAPPED_PERSON_ID = "m12"

RANK_PREFIX_PATTERN = re.compile(r"^(Letda|Lettu|Serka|Serma|Mayor|Serda)\s+Bakamla\s+")

WEEKDAY_NAMES = ["Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu"]


def get_month_dates(year: int, month: int) -> List[date]:
    """Get all dates in a given month."""
    num_days = calendar.monthrange(year, month)[1]
    return [date(year, month, day) for day in range(1, num_days + 1)]


def is_weekend(d: date) -> bool:
    """Check if a date is a weekend."""
    return d.weekday() in (SATURDAY, SUNDAY)


def month_day_key(d: date) -> str:
    """Holiday table key for a date, e.g. "01-16"."""
    return d.strftime("%m-%d")


def is_red_date(d: date, holidays: Iterable[str] = HOLIDAYS_2026) -> bool:
    """Check if a date is a red date (weekend or public holiday)."""
    if is_weekend(d):
        return True
    return month_day_key(d) in holidays


def days_until_tuesday(d: date) -> int:
    """Days from d to the coming Tuesday (3 for a Saturday)."""
    return (TUESDAY - d.weekday()) % 7


def get_holidays(year: int) -> FrozenSet[str]:
    """Return the holiday table for a year, empty if none is known."""
    holidays = HOLIDAY_TABLES.get(year)
    if holidays is None:
        logger.warning("No holiday table for %d; only weekends count as red dates", year)
        return frozenset()
    return holidays


def get_day_name(d: date) -> str:
    """Get the Indonesian day name."""
    return WEEKDAY_NAMES[d.weekday()]


def get_short_name(full_name: str) -> str:
    """
    Strip the rank/unit prefix and keep the first given name.
    "Mayor Bakamla Yuhanes Antara, S.Pd" -> "Yuhanes"
    """
    stripped = RANK_PREFIX_PATTERN.sub("", full_name)
    return stripped.split(" ")[0].rstrip(",")


def parse_holiday_list(holiday_str: str) -> Set[str]:
    """
    Parse a comma-separated string of holidays into "MM-DD" keys.
    Supports formats:
    - "01-01,08-17" - month-day pairs
    - "2026-01-01" - full dates (year is dropped)
    Semicolons are accepted as separators; malformed entries are skipped.
    """
    if not holiday_str or holiday_str.strip() == "":
        return set()

    if holiday_str.strip().lower() == "nan":
        return set()

    holidays = set()
    for part in holiday_str.replace(";", ",").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if part.count("-") == 2:
                holidays.add(month_day_key(date.fromisoformat(part)))
            else:
                month_str, day_str = part.split("-")
                # Validate against a leap year so 02-29 is accepted
                holidays.add(month_day_key(date(2000, int(month_str), int(day_str))))
        except (ValueError, TypeError):
            continue
    return holidays


def resolve_holidays(year: int, holidays: Optional[Iterable[str]] = None) -> FrozenSet[str]:
    """
    Holiday table to use for a year.
    None selects the built-in table; a string is parsed with parse_holiday_list.
    """
    if holidays is None:
        return get_holidays(year)
    if isinstance(holidays, str):
        return frozenset(parse_holiday_list(holidays))
    return frozenset(holidays)


def get_default_roster_data() -> pd.DataFrame:
    """Default roster, in declaration order."""
    data = {
        "Id": [
            "f1", "f2", "f3", "f4", "f5", "f6", "f7",
            "m1", "m2", "m3", "m4", "m5", "m6", "m7",
            "m8", "m9", "m10", "m11", "m12", "m13",
        ],
        "Name": [
            "Letda Bakamla Rina Setiawati",
            "Letda Bakamla Erin Putri Fadhilah",
            "Letda Bakamla Rita Mulliyana",
            "Lettu Bakamla Rindi Nurlaila Sari",
            "Letda Bakamla Isnaini PJ",
            "Letda Bakamla Xena Zitni R",
            "Serka Bakamla Dita Putri Cahyani",
            "Mayor Bakamla Yuhanes Antara, S.Pd",
            "Lettu Bakamla Taufiq Hariz Septiawan, S.T.",
            "Serma Bakamla Hadiyanto",
            "Serma Bakamla Asmawi",
            "Serka Bakamla Yaumil Akbar Syahputra",
            "Serka Bakamla Aziz Nurfalah",
            "Letda Bakamla Ridwan Hadi",
            "Serma Bakamla Rohman",
            "Letda Bakamla Ahmad Ishak Muharom",
            "Serda Bakamla Shandy Syahputra",
            "Serka Bakamla Syaoqi Sudarajat",
            "Letda Bakamla Giffari Said",
            "Letda Bakamla Restu Tea Dinata",
        ],
        "Group": ["Perempuan"] * 7 + ["Laki-laki"] * 13,
    }
    return pd.DataFrame(data)


def validate_roster_data(df: pd.DataFrame, group_values: Iterable[str] = ("Perempuan", "Laki-laki")) -> Tuple[bool, str]:
    """
    Validate roster DataFrame has required columns and sane values.

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_cols = ["Id", "Name", "Group"]
    missing = [col for col in required_cols if col not in df.columns]

    if missing:
        return False, f"Missing required columns: {', '.join(missing)}"

    if df.empty:
        return False, "Roster is empty"

    if df["Id"].duplicated().any():
        return False, "Duplicate personnel ids found"

    unknown = sorted(set(df["Group"]) - set(group_values))
    if unknown:
        return False, f"Unknown groups: {', '.join(map(str, unknown))}"

    return True, ""


def create_schedule_dataframe(schedule: list, holidays: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """
    Create a DataFrame from a month of daily schedules.

    Args:
        schedule: List of DailySchedule, ordered by date
        holidays: Holiday table used to flag red dates; defaults to
            the table for each day's year, as the scheduler uses

    Returns:
        DataFrame with one row per day
    """
    tables = {}
    rows = []
    for day in schedule:
        year = day.date.year
        if year not in tables:
            tables[year] = resolve_holidays(year, holidays)
        rows.append({
            "Date": day.date,
            "Day": get_day_name(day.date),
            "RedDate": is_red_date(day.date, tables[year]),
            "Slot1": day.slot1,
            "Slot2": day.slot2,
            "Slot3": day.slot3,
            "Resting": "; ".join(day.off_personnel),
        })

    columns = ["Date", "Day", "RedDate", "Slot1", "Slot2", "Slot3", "Resting"]
    return pd.DataFrame(rows, columns=columns)


def create_statistics_dataframe(staff_stats: dict) -> pd.DataFrame:
    """
    Create statistics DataFrame from staff stats.

    Args:
        staff_stats: Dict with staff statistics, keyed by name

    Returns:
        DataFrame with statistics, in roster order
    """
    rows = []
    for name, stats in staff_stats.items():
        rows.append({
            "Name": name,
            "Total": stats.get("total", 0),
            "Slot3": stats.get("slot3_count", 0),
            "Saturday": stats.get("saturday_count", 0),
            "RedDate": stats.get("red_date_count", 0),
        })

    return pd.DataFrame(rows, columns=["Name", "Total", "Slot3", "Saturday", "RedDate"])


def create_yearly_dataframe(yearly_stats: Dict[str, List[int]]) -> pd.DataFrame:
    """Person x month table of red-date shifts, with a Total column."""
    columns = [calendar.month_abbr[m] for m in range(1, 13)]
    df = pd.DataFrame.from_dict(yearly_stats, orient="index", columns=columns)
    df.index.name = "Name"
    df["Total"] = df.sum(axis=1)
    return df
