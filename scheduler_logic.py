"""
Core Scheduler Logic for the Duty Roster Scheduler.
Implements the day-by-day greedy assignment with monthly caps, rest rules
and the yearly red-date fairness carry-over.
"""

import logging
import statistics
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from duty_utils import (
    DEFAULT_CAPPED_PERSON_ID,
    SATURDAY,
    SUNDAY,
    days_until_tuesday,
    get_default_roster_data,
    get_month_dates,
    is_red_date,
    resolve_holidays,
    validate_roster_data,
)

logger = logging.getLogger(__name__)


class Group(Enum):
    FEMALE = "Perempuan"
    MALE = "Laki-laki"


class Slot(Enum):
    FIRST = 1
    SECOND = 2
    THIRD = 3  # night duty


ASC = 1
DESC = -1

# Ordered (stat, direction) pairs per slot; earlier pairs dominate.
# On red dates red_date_count is evaluated first.
SLOT_PRIORITIES: Dict[Slot, Tuple[Tuple[str, int], ...]] = {
    Slot.FIRST: (("total", ASC),),
    Slot.SECOND: (("total", ASC), ("slot3_count", DESC)),
    Slot.THIRD: (("slot3_count", ASC), ("total", ASC)),
}
RED_DATE_PRIORITY = ("red_date_count", ASC)

SLOT_GROUPS = {
    Slot.FIRST: Group.FEMALE,
    Slot.SECOND: Group.MALE,
    Slot.THIRD: Group.MALE,
}


@dataclass(frozen=True)
class Personnel:
    """A roster member. Never mutated once defined."""
    id: str
    name: str
    group: Group

    @property
    def rank(self) -> str:
        return self.name.split(" ", 1)[0]


@dataclass
class ShiftStats:
    """Running statistics for one person during one month run."""
    total: int = 0
    slot3_count: int = 0
    saturday_count: int = 0
    red_date_count: int = 0

    def get_stats_dict(self) -> dict:
        """Return stats as dictionary."""
        return {
            "total": self.total,
            "slot3_count": self.slot3_count,
            "saturday_count": self.saturday_count,
            "red_date_count": self.red_date_count,
        }


@dataclass(frozen=True)
class DailySchedule:
    """One day's assignment: three names plus who is resting."""
    date: date
    slot1: str
    slot2: str
    slot3: str
    off_personnel: Tuple[str, ...] = ()

    @property
    def assignees(self) -> Tuple[str, str, str]:
        return (self.slot1, self.slot2, self.slot3)


class RestLedger:
    """Day number -> person ids forced off duty that day."""

    def __init__(self):
        # dict keys keep insertion order for the emitted off-lists
        self._off: Dict[int, Dict[str, None]] = {}

    def mark(self, day: int, person_id: str):
        self._off.setdefault(day, {})[person_id] = None

    def off_on(self, day: int) -> List[str]:
        return list(self._off.get(day, ()))

    def is_off(self, day: int, person_id: str) -> bool:
        return person_id in self._off.get(day, ())


@dataclass
class Roster:
    """
    Two ordered lists of personnel. Declaration order is the final
    tie-break and decides the fallback picks, so each group needs at
    least two members.
    """
    female: List[Personnel]
    male: List[Personnel]

    MIN_GROUP_SIZE = 2

    def __post_init__(self):
        for group, members in ((Group.FEMALE, self.female), (Group.MALE, self.male)):
            if len(members) < self.MIN_GROUP_SIZE:
                raise ValueError(
                    f"Roster needs at least {self.MIN_GROUP_SIZE} {group.name} members, got {len(members)}"
                )
            for person in members:
                if person.group != group:
                    raise ValueError(f"{person.name} ({person.id}) is not in group {group.name}")

        ids = [p.id for p in self.all_personnel]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate personnel ids in roster")

    @property
    def all_personnel(self) -> List[Personnel]:
        return self.female + self.male

    def members(self, group: Group) -> List[Personnel]:
        return self.female if group == Group.FEMALE else self.male

    def by_id(self) -> Dict[str, Personnel]:
        return {p.id: p for p in self.all_personnel}


class MonthScheduler:
    """
    Greedy single-pass scheduler for one calendar month.

    Days are processed in order. Each day slot 1, 2 and 3 are picked from
    the current statistics and rest ledger, then stats and rest marks are
    applied for the three assignees in slot order.
    """

    DISTINGUISHED_MONTHLY_CAP = 2
    SENIOR_MONTHLY_CAP = 3
    SENIOR_RANK_PREFIXES = ("Mayor", "Lettu")

    # Used only when no candidate is eligible; index into the group list
    FALLBACK_INDEX = {
        Slot.FIRST: 0,
        Slot.SECOND: 0,
        Slot.THIRD: 1,
    }

    def __init__(
        self,
        year: int,
        month: int,
        roster: Optional[Roster] = None,
        holidays: Optional[Iterable[str]] = None,
        cumulative_red_stats: Optional[Dict[str, int]] = None,
        capped_person_id: Optional[str] = DEFAULT_CAPPED_PERSON_ID,
    ):
        if not 1 <= month <= 12:
            raise ValueError(f"month must be in 1..12, got {month}")

        self.year = year
        self.month = month
        self.roster = roster or get_default_roster()
        self.holidays = resolve_holidays(year, holidays)
        self.cumulative_red_stats = cumulative_red_stats
        self.capped_person_id = capped_person_id

        self.dates = get_month_dates(year, month)
        self.days_in_month = len(self.dates)
        self.personnel = self.roster.by_id()

        self.stats: Dict[str, ShiftStats] = {}
        for person in self.roster.all_personnel:
            seed = (cumulative_red_stats or {}).get(person.id, 0)
            self.stats[person.id] = ShiftStats(red_date_count=seed)

        self.rest_ledger = RestLedger()
        self.schedule: List[DailySchedule] = []

    def is_red_date(self, d: date) -> bool:
        """Check if date is a weekend or holiday."""
        return is_red_date(d, self.holidays)

    def _is_capped(self, person: Personnel) -> bool:
        total = self.stats[person.id].total
        if person.id == self.capped_person_id and total >= self.DISTINGUISHED_MONTHLY_CAP:
            return True
        if (
            person.group == Group.MALE
            and person.name.startswith(self.SENIOR_RANK_PREFIXES)
            and total >= self.SENIOR_MONTHLY_CAP
        ):
            return True
        return False

    def get_available(
        self, group: Group, day: int, exclude_ids: Sequence[str] = ()
    ) -> List[Personnel]:
        """Members of group eligible on day, in declaration order."""
        return [
            p for p in self.roster.members(group)
            if not self.rest_ledger.is_off(day, p.id)
            and p.id not in exclude_ids
            and not self._is_capped(p)
        ]

    def _sort_key(self, slot: Slot, is_red: bool):
        priorities = SLOT_PRIORITIES[slot]
        if is_red:
            priorities = (RED_DATE_PRIORITY,) + priorities

        def key(person: Personnel) -> Tuple[int, ...]:
            stats = self.stats[person.id]
            return tuple(getattr(stats, attr) * direction for attr, direction in priorities)

        return key

    def _select_candidate(
        self, slot: Slot, day: int, is_red: bool, exclude_ids: Sequence[str] = ()
    ) -> Personnel:
        """Pick the best eligible person for a slot, or the fixed fallback."""
        group = SLOT_GROUPS[slot]
        candidates = self.get_available(group, day, exclude_ids)

        if not candidates:
            fallback = self.roster.members(group)[self.FALLBACK_INDEX[slot]]
            logger.warning(
                "No eligible %s candidate for slot %d on %04d-%02d-%02d; falling back to %s",
                group.name, slot.value, self.year, self.month, day, fallback.name,
            )
            return fallback

        # sorted() is stable, so equal keys keep roster order
        return sorted(candidates, key=self._sort_key(slot, is_red))[0]

    def _mark_rest(self, day: int, person_id: str):
        if day <= self.days_in_month:
            self.rest_ledger.mark(day, person_id)

    def _assign_shift(self, person: Personnel, slot: Slot, d: date, is_red: bool):
        """Update stats and rest marks for one assignment."""
        stats = self.stats[person.id]
        stats.total += 1

        if slot == Slot.THIRD:
            stats.slot3_count += 1
        if d.weekday() == SATURDAY:
            stats.saturday_count += 1
        if is_red:
            stats.red_date_count += 1
            if self.cumulative_red_stats is not None:
                self.cumulative_red_stats[person.id] = self.cumulative_red_stats.get(person.id, 0) + 1

        day = d.day
        if slot in (Slot.SECOND, Slot.THIRD):
            self._mark_rest(day + 1, person.id)

        if d.weekday() == SATURDAY:
            tuesday = day + days_until_tuesday(d)
            if tuesday > day:
                self._mark_rest(tuesday, person.id)

        if d.weekday() == SUNDAY:
            self._mark_rest(day + 1, person.id)

    def generate_schedule(self) -> List[DailySchedule]:
        """Generate the month, one DailySchedule per day in date order."""
        self.schedule = []

        for d in self.dates:
            day = d.day
            is_red = self.is_red_date(d)

            first = self._select_candidate(Slot.FIRST, day, is_red)
            second = self._select_candidate(Slot.SECOND, day, is_red)
            third = self._select_candidate(Slot.THIRD, day, is_red, exclude_ids=[second.id])

            for person, slot in ((first, Slot.FIRST), (second, Slot.SECOND), (third, Slot.THIRD)):
                self._assign_shift(person, slot, d, is_red)

            off_names = tuple(
                self.personnel[pid].name
                for pid in self.rest_ledger.off_on(day)
                if pid in self.personnel
            )
            self.schedule.append(DailySchedule(d, first.name, second.name, third.name, off_names))
            logger.debug("%s: %s / %s / %s (red=%s)", d, first.id, second.id, third.id, is_red)

        logger.info("Generated schedule for %04d-%02d (%d days)", self.year, self.month, len(self.schedule))
        return self.schedule

    def get_staff_stats(self) -> Dict[str, dict]:
        """Return statistics for all staff, keyed by name."""
        return {
            p.name: self.stats[p.id].get_stats_dict()
            for p in self.roster.all_personnel
        }

    def get_assignment_summary(self) -> Dict[str, dict]:
        """Per-person count of shifts, slot-2 and slot-3 duties this month."""
        counts = {p.name: {"total": 0, "slot2": 0, "slot3": 0} for p in self.roster.all_personnel}
        for day in self.schedule:
            for name in day.assignees:
                if name in counts:
                    counts[name]["total"] += 1
            if day.slot2 in counts:
                counts[day.slot2]["slot2"] += 1
            if day.slot3 in counts:
                counts[day.slot3]["slot3"] += 1
        return counts

    def get_fairness_metrics(self) -> dict:
        """Calculate fairness metrics for the schedule."""
        totals = [s.total for s in self.stats.values()]
        slot3 = [s.slot3_count for s in self.stats.values()]
        red = [s.red_date_count for s in self.stats.values()]

        def safe_stdev(data):
            return statistics.stdev(data) if len(data) > 1 else 0

        return {
            "total_shifts_mean": statistics.mean(totals),
            "total_shifts_stdev": safe_stdev(totals),
            "slot3_mean": statistics.mean(slot3),
            "slot3_stdev": safe_stdev(slot3),
            "red_date_mean": statistics.mean(red),
            "red_date_stdev": safe_stdev(red),
        }

    def validate_hard_constraints(self) -> Tuple[bool, List[str]]:
        """
        Re-check the generated schedule.
        Returns (is_valid, list_of_violations).

        Checked:
        1. Slot groups, and slot 2 != slot 3
        2. Rest day after slot 2/3
        3. Saturday -> Tuesday and Sunday -> Monday rest
        4. Monthly caps
        """
        violations = []
        by_name = {p.name: p for p in self.roster.all_personnel}
        by_day = {day.date.day: day for day in self.schedule}

        for day in self.schedule:
            for slot, name in zip(Slot, day.assignees):
                person = by_name.get(name)
                if person is None or person.group != SLOT_GROUPS[slot]:
                    violations.append(f"VIOLATION: {name} cannot fill slot {slot.value} on {day.date}")
            if day.slot2 == day.slot3:
                violations.append(f"VIOLATION: {day.slot2} fills slots 2 and 3 on {day.date}")

            d = day.date
            next_day = by_day.get(d.day + 1)
            if next_day:
                for name in (day.slot2, day.slot3):
                    if name in next_day.assignees:
                        violations.append(f"VIOLATION: {name} works {next_day.date} right after slot 2/3 on {d}")

            rest_day = None
            if d.weekday() == SATURDAY:
                rest_day = by_day.get(d.day + days_until_tuesday(d))
            elif d.weekday() == SUNDAY:
                rest_day = next_day
            if rest_day:
                for name in day.assignees:
                    if name in rest_day.assignees:
                        violations.append(f"VIOLATION: {name} works {rest_day.date} after weekend duty on {d}")

        totals = {name: counts["total"] for name, counts in self.get_assignment_summary().items()}
        for person in self.roster.all_personnel:
            total = totals.get(person.name, 0)
            if person.id == self.capped_person_id and total > self.DISTINGUISHED_MONTHLY_CAP:
                violations.append(f"VIOLATION: {person.name} has {total} shifts (cap {self.DISTINGUISHED_MONTHLY_CAP})")
            if (
                person.group == Group.MALE
                and person.name.startswith(self.SENIOR_RANK_PREFIXES)
                and total > self.SENIOR_MONTHLY_CAP
            ):
                violations.append(f"VIOLATION: {person.name} has {total} shifts (cap {self.SENIOR_MONTHLY_CAP})")

        return len(violations) == 0, violations


def generate_month_schedule(
    year: int,
    month: int,
    cumulative_red_stats: Optional[Dict[str, int]] = None,
    roster: Optional[Roster] = None,
    holidays: Optional[Iterable[str]] = None,
) -> List[DailySchedule]:
    """
    Generate the schedule for one month (1-12).

    If cumulative_red_stats is given it seeds each person's red-date count
    and is incremented in place for every red-date shift assigned.
    """
    scheduler = MonthScheduler(
        year, month, roster=roster, holidays=holidays, cumulative_red_stats=cumulative_red_stats
    )
    return scheduler.generate_schedule()


def generate_yearly_red_date_stats(
    year: int,
    roster: Optional[Roster] = None,
    holidays: Optional[Iterable[str]] = None,
) -> Dict[str, List[int]]:
    """
    Red-date shifts per person per month for a whole year.

    Months run in order and share one cumulative tally, so heavy red-date
    duty early in the year lowers a person's priority later.
    """
    roster = roster or get_default_roster()
    holidays = resolve_holidays(year, holidays)

    yearly_data: Dict[str, List[int]] = {p.name: [0] * 12 for p in roster.all_personnel}
    cumulative_red_stats = {p.id: 0 for p in roster.all_personnel}

    for month in range(1, 13):
        month_schedule = generate_month_schedule(
            year, month, cumulative_red_stats, roster=roster, holidays=holidays
        )
        for day in month_schedule:
            if is_red_date(day.date, holidays):
                for name in day.assignees:
                    if name in yearly_data:
                        yearly_data[name][month - 1] += 1

    logger.info("Generated yearly red-date stats for %d", year)
    return yearly_data


def create_roster_from_dataframe(df) -> Roster:
    """
    Create a Roster from a pandas DataFrame.

    Expected columns:
    - Id: str
    - Name: str
    - Group: "Perempuan" or "Laki-laki"

    Row order is declaration order.
    """
    is_valid, message = validate_roster_data(df, [g.value for g in Group])
    if not is_valid:
        raise ValueError(message)

    female, male = [], []
    for _, row in df.iterrows():
        person = Personnel(
            id=str(row["Id"]).strip(),
            name=str(row["Name"]).strip(),
            group=Group(row["Group"]),
        )
        if person.group == Group.FEMALE:
            female.append(person)
        else:
            male.append(person)

    return Roster(female=female, male=male)


def get_default_roster() -> Roster:
    """The built-in roster."""
    return create_roster_from_dataframe(get_default_roster_data())
