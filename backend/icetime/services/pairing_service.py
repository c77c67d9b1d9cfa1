# backend/icetime/services/pairing_service.py
"""
Semi-private pairing matcher.

Waiting players of the same age category are matched on overlapping weekly
preferences. Preferred times are free-form availability windows; only a
common window that is also a shared-pool slot can be committed. A committed
pairing holds exactly one seat of the shared pool on its weekly (day, time);
both players' semi-private bookings on that slot ride on that seat.

Scoring: 20 points per common day, 20 per common time, plus 30 for the
shared category (candidates from different categories are never produced).
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, time
from itertools import combinations
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.constants import PAIRING_CATEGORY_BONUS, PAIRING_DAY_WEIGHT, PAIRING_TIME_WEIGHT
from ..core.enums import DayOfWeek, PoolName, ProgramType
from ..core.exceptions import (
    CategoryMismatchException,
    InvalidStateTransitionException,
    NotFoundException,
    StaleOpportunityException,
    ValidationException,
)
from ..core.slot_catalog import (
    SHARED_TRAINING_DAYS,
    parse_slot_time,
    window_label,
)
from ..core.timezone_utils import rink_today, utcnow
from ..events.booking_events import PairingDissolved, PairingFound
from ..models.pairing import Pairing, PairingStatus, UnpairedPlayer, UnpairedStatus
from ..models.player import Player
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .capacity_pool_service import CapacityPoolService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairingOpportunity:
    """A candidate pair with the preferences both players share."""

    player_1_id: str
    player_2_id: str
    age_category: str
    common_days: Tuple[str, ...]
    common_times: Tuple[str, ...]
    score: int
    combined_waiting_seconds: float = field(default=0.0, compare=False)

    @property
    def common_time_labels(self) -> Tuple[str, ...]:
        return tuple(window_label(parse_slot_time(value)) for value in self.common_times)

    @property
    def player_ids(self) -> Tuple[str, str]:
        return (self.player_1_id, self.player_2_id)


def _format_time(value: time) -> str:
    return value.strftime("%H:%M")


def _days_in_order(days: Iterable[str]) -> Tuple[str, ...]:
    return tuple(sorted(set(days), key=lambda value: DayOfWeek(value).index))


class PairingService(BaseService):
    """Unpaired registry, opportunity scoring, commit and dissolution."""

    def __init__(self, db: Session, pool_service: Optional[CapacityPoolService] = None):
        super().__init__(db)
        self.pool_service = pool_service or CapacityPoolService(db)
        self.pairing_repository = RepositoryFactory.create_pairing_repository(db)
        self.unpaired_repository = RepositoryFactory.create_unpaired_player_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.player_repository = RepositoryFactory.create_player_repository(db)

    # Unpaired registry

    @BaseService.measure_operation("register_unpaired")
    def register_unpaired(
        self,
        player_id: str,
        preferred_days: Sequence[str],
        preferred_times: Sequence[str],
        *,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UnpairedPlayer:
        """
        Put a player in the waiting pool, or update their preferences.

        A player already waiting keeps their place in the queue; anyone
        (re-)entering the pool starts waiting from ``now``.
        """
        now = now or utcnow()
        player = self._get_player(player_id)
        days = self.normalize_days(preferred_days)
        times = self.normalize_times(preferred_times)

        with self.transaction():
            if self.pairing_repository.get_active_for_player(player.id) is not None:
                raise ValidationException(
                    "This child is already in an active pairing",
                    code="ALREADY_PAIRED",
                    details={"player_id": player.id},
                )
            entry = self.unpaired_repository.get_for_player(player.id)
            if entry is None:
                entry = self.unpaired_repository.create(
                    player_id=player.id,
                    age_category=player.age_category,
                    preferred_days=list(days),
                    preferred_times=list(times),
                    status=UnpairedStatus.WAITING.value,
                    waiting_since=now,
                    notes=notes,
                )
            else:
                if not entry.is_waiting:
                    entry.waiting_since = now
                entry.status = UnpairedStatus.WAITING.value
                entry.age_category = player.age_category
                entry.preferred_days = list(days)
                entry.preferred_times = list(times)
                if notes is not None:
                    entry.notes = notes
                self.unpaired_repository.flush()

        prometheus_metrics.inc_pairing_action("registered")
        return entry

    def withdraw_unpaired(self, player_id: str) -> UnpairedPlayer:
        """Take a waiting player out of the matching pool."""
        entry = self.unpaired_repository.get_for_player(player_id)
        if entry is None:
            raise NotFoundException(f"Player {player_id} is not registered for pairing")
        with self.transaction():
            entry.status = UnpairedStatus.INACTIVE.value
            self.unpaired_repository.flush()
        return entry

    def list_waiting(self, age_category: Optional[str] = None) -> List[UnpairedPlayer]:
        return self.unpaired_repository.get_waiting(age_category)

    # Opportunities

    def find_opportunities(
        self,
        players: Optional[Sequence[UnpairedPlayer]] = None,
        *,
        age_category: Optional[str] = None,
    ) -> List[PairingOpportunity]:
        """
        Score every same-category pair with at least one common day and time.

        Sorted by score (desc), then by earliest combined waiting-since, then
        by player ids so the order is deterministic.
        """
        if players is None:
            players = self.unpaired_repository.get_waiting(age_category)

        by_category: Dict[str, List[UnpairedPlayer]] = defaultdict(list)
        for entry in players:
            if entry.is_waiting:
                by_category[entry.age_category].append(entry)

        ranked: List[Tuple[PairingOpportunity, float]] = []
        for category, entries in by_category.items():
            ordered = sorted(entries, key=lambda e: e.player_id)
            for first, second in combinations(ordered, 2):
                opportunity = self._score(first, second, category)
                if opportunity is not None:
                    ranked.append(opportunity)

        ranked.sort(
            key=lambda o: (-o.score, o.combined_waiting_seconds, o.player_1_id, o.player_2_id)
        )
        return ranked

    def _score(
        self, first: UnpairedPlayer, second: UnpairedPlayer, category: str
    ) -> Optional[PairingOpportunity]:
        common_days = _days_in_order(
            set(first.preferred_days or []) & set(second.preferred_days or [])
        )
        common_times = tuple(
            sorted(set(first.preferred_times or []) & set(second.preferred_times or []))
        )
        if not common_days or not common_times:
            return None
        score = (
            PAIRING_DAY_WEIGHT * len(common_days)
            + PAIRING_TIME_WEIGHT * len(common_times)
            + PAIRING_CATEGORY_BONUS
        )
        waited = first.waiting_since.timestamp() + second.waiting_since.timestamp()
        return PairingOpportunity(
            player_1_id=first.player_id,
            player_2_id=second.player_id,
            age_category=category,
            common_days=common_days,
            common_times=common_times,
            score=score,
            combined_waiting_seconds=waited,
        )

    def suggest_times(self, age_category: str, *, now: Optional[datetime] = None) -> List[dict]:
        """
        Weekly shared slots wanted by waiting players of a category that no
        pairing or booking currently blocks, most requested first.
        """
        today = rink_today(now)
        demand: Counter = Counter()
        for entry in self.unpaired_repository.get_waiting(age_category):
            for day in entry.preferred_days or []:
                for start in entry.preferred_times or []:
                    demand[(day, start)] += 1

        suggestions = []
        for (day, start), wanted_by in demand.items():
            slot = self.pool_service.get_slot(
                PoolName.SHARED, DayOfWeek(day), parse_slot_time(start)
            )
            if slot is None or not self.pool_service.is_weekly_slot_free(slot, today):
                continue
            suggestions.append(
                {
                    "day_of_week": day,
                    "start_time": start,
                    "label": window_label(slot.start_time),
                    "wanted_by": wanted_by,
                }
            )
        suggestions.sort(
            key=lambda s: (-s["wanted_by"], DayOfWeek(s["day_of_week"]).index, s["start_time"])
        )
        return suggestions

    # Commit / dissolve

    @BaseService.measure_operation("commit_pairing")
    def commit(
        self,
        player_1_id: str,
        player_2_id: str,
        day_of_week: str,
        start_time: str,
        *,
        actor: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Pairing:
        """
        Pair two waiting players on a weekly shared slot.

        Raises:
            CategoryMismatchException: the players are in different categories
            ValidationException: the day/time is not common to both players
            StaleOpportunityException: a player or the slot was taken since
                the opportunity was computed
        """
        now = now or utcnow()
        if player_1_id == player_2_id:
            raise ValidationException("A player cannot be paired with themselves")
        day = self.normalize_days([day_of_week])[0]
        start = self.normalize_times([start_time])[0]

        first = self._get_waiting_entry(player_1_id, day, start)
        second = self._get_waiting_entry(player_2_id, day, start)
        if first.age_category != second.age_category:
            raise CategoryMismatchException(first.age_category, second.age_category)
        opportunity = self._score(first, second, first.age_category)
        if opportunity is None or day not in opportunity.common_days or start not in (
            opportunity.common_times
        ):
            raise ValidationException(
                f"{day} at {start} is not a common preference of both players",
                code="NOT_A_COMMON_PREFERENCE",
                details={"day": day, "start_time": start},
            )

        slots = self.pool_service.resolve_slots(
            ProgramType.SEMI_PRIVATE, DayOfWeek(day), parse_slot_time(start)
        )
        slot = slots[0]

        with self.transaction():
            self.pool_service.lock_slots(slots)
            for entry in (first, second):
                self.unpaired_repository.refresh(entry)
                if not entry.is_waiting:
                    raise StaleOpportunityException(
                        day, start, reason="One of the players is no longer waiting for a partner"
                    )
            if not self.pool_service.is_weekly_slot_free(slot, rink_today(now)):
                raise StaleOpportunityException(day, start)

            pairing = self.pairing_repository.create(
                player_1_id=first.player_id,
                player_2_id=second.player_id,
                age_category=first.age_category,
                day_of_week=day,
                start_time=slot.start_time,
                time_slot_id=slot.id,
                status=PairingStatus.ACTIVE.value,
                paired_at=now,
                paired_by=actor,
            )
            first.status = UnpairedStatus.PAIRED.value
            second.status = UnpairedStatus.PAIRED.value
            self.unpaired_repository.flush()

            self.pool_service.announce_weekly_change(slot)
            self.emit_event(
                PairingFound(
                    pairing_id=pairing.id,
                    player_ids=pairing.player_ids,
                    age_category=pairing.age_category,
                    day_of_week=day,
                    start_time=start,
                )
            )

        prometheus_metrics.inc_pairing_action("committed")
        self.logger.info(
            "Pairing committed",
            extra={"pairing_id": pairing.id, "day": day, "start_time": start},
        )
        return pairing

    @BaseService.measure_operation("dissolve_pairing")
    def dissolve(
        self,
        pairing_id: str,
        *,
        reason: str,
        actor: Optional[str] = None,
        exclude_player_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Pairing:
        """
        Dissolve an active pairing and free its weekly seat.

        Upcoming bookings that rode on the pairing keep their dates: for each
        date one of them takes a seat of its own. Both players go back to
        waiting with a fresh waiting-since, except ``exclude_player_id``
        (who is moving to another schedule and re-registers separately).
        """
        now = now or utcnow()
        pairing = self.get_pairing(pairing_id)
        slot = self.pool_service.time_slot_repository.get_by_id(pairing.time_slot_id)
        if slot is None:
            raise NotFoundException(f"Time slot {pairing.time_slot_id} not found")

        with self.transaction():
            self.pool_service.lock_slots([slot])
            self.pairing_repository.refresh(pairing)
            if not pairing.is_active:
                raise InvalidStateTransitionException(
                    "pairing", pairing.status, PairingStatus.DISSOLVED.value
                )
            pairing.dissolve(reason=reason, actor=actor, at=now)
            self.pairing_repository.flush()

            riders_by_date = defaultdict(list)
            for booking in self.booking_repository.get_pairing_riders(
                pairing.id, rink_today(now)
            ):
                riders_by_date[booking.session_date].append(booking)
            for session_date, riders in sorted(riders_by_date.items()):
                self.pool_service.claim_seats([slot], session_date)
                holder = min(riders, key=lambda b: (b.created_at, b.id))
                holder.holds_seat = True
            self.booking_repository.flush()

            for player_id in pairing.player_ids:
                entry = self.unpaired_repository.get_for_player(player_id)
                if entry is None:
                    continue
                if player_id == exclude_player_id:
                    entry.status = UnpairedStatus.INACTIVE.value
                else:
                    entry.status = UnpairedStatus.WAITING.value
                    entry.waiting_since = now
            self.unpaired_repository.flush()

            self.pool_service.announce_weekly_change(slot)
            self.emit_event(
                PairingDissolved(
                    pairing_id=pairing.id,
                    player_ids=pairing.player_ids,
                    reason=reason,
                    actor=actor,
                )
            )

        prometheus_metrics.inc_pairing_action("dissolved")
        return pairing

    # Reads

    def get_pairing(self, pairing_id: str) -> Pairing:
        pairing = self.pairing_repository.get_by_id(pairing_id)
        if pairing is None:
            raise NotFoundException(f"Pairing {pairing_id} not found")
        return pairing

    def get_active_for_player(self, player_id: str) -> Optional[Pairing]:
        return self.pairing_repository.get_active_for_player(player_id)

    def list_pairings(self, *, status: Optional[str] = None) -> List[Pairing]:
        return self.pairing_repository.list_pairings(status=status)

    # Normalization

    @staticmethod
    def normalize_days(values: Sequence[str]) -> Tuple[str, ...]:
        """Weekday names as stored values, restricted to shared-pool training days."""
        if not values:
            raise ValidationException("At least one preferred day is required")
        days = []
        for value in values:
            try:
                day = DayOfWeek.parse(value)
            except ValueError:
                raise ValidationException(f"Unknown day of week: {value}", code="INVALID_DAY")
            if day not in SHARED_TRAINING_DAYS:
                raise ValidationException(
                    f"Semi-private sessions are not offered on {day.value}",
                    code="INVALID_DAY",
                    details={"day": day.value},
                )
            days.append(day.value)
        return _days_in_order(days)

    @staticmethod
    def normalize_times(values: Sequence[str]) -> Tuple[str, ...]:
        """
        Window starts as "HH:MM", accepting labels such as "3-4pm".

        Preferences describe when a family is free, so they are not limited to
        the slot catalog; ``commit`` checks the chosen time against it.
        """
        if not values:
            raise ValidationException("At least one preferred time is required")
        times = set()
        for value in values:
            try:
                start = parse_slot_time(value)
            except ValueError:
                raise ValidationException(f"Unknown time: {value}", code="INVALID_TIME")
            times.add(_format_time(start))
        return tuple(sorted(times))

    # Helpers

    def _get_player(self, player_id: str) -> Player:
        player = self.player_repository.get_by_id(player_id)
        if player is None:
            raise NotFoundException(f"Player {player_id} not found")
        return player

    def _get_waiting_entry(self, player_id: str, day: str, start: str) -> UnpairedPlayer:
        entry = self.unpaired_repository.get_for_player(player_id)
        if entry is None:
            raise NotFoundException(f"Player {player_id} is not registered for pairing")
        if not entry.is_waiting:
            raise StaleOpportunityException(
                day, start, reason="One of the players is no longer waiting for a partner"
            )
        return entry
