"""Storage for weekly team rating snapshots.

The rating engine only ever talks to a :class:`RatingStore`.  Backtests use
:class:`InMemoryRatingStore`; production rebuilds and the projection job use
:class:`SqlRatingStore`.  Both implement the same point-in-time query,
:meth:`RatingStore.latest_before`, which is what keeps backtests honest.

Snapshot keys are ``(team_id, season, week)``.  Week 0 is the preseason
prior written before any game of the season is applied.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from college_edge.core.sport_config import MODEL_VERSION
from college_edge.models import RatingSnapshot as RatingSnapshotRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RatingSnapshot:
    team_id: int
    season: int
    week: int
    rating: float
    games_played: int = 0


class RatingStore(ABC):
    """Read/write access to rating snapshots."""

    @abstractmethod
    def get(self, team_id: int, season: int, week: int) -> Optional[RatingSnapshot]:
        """Exact snapshot for ``(team, season, week)`` or ``None``."""

    @abstractmethod
    def put(self, snapshot: RatingSnapshot) -> None:
        """Insert or overwrite the snapshot for its key."""

    @abstractmethod
    def latest_before(self, team_id: int, season: int, week: int) -> Optional[RatingSnapshot]:
        """Most recent snapshot strictly earlier than ``(season, week)``."""

    def put_many(self, snapshots: Iterable[RatingSnapshot]) -> None:
        for snap in snapshots:
            self.put(snap)


class InMemoryRatingStore(RatingStore):
    def __init__(self) -> None:
        self._rows: Dict[int, Dict[Tuple[int, int], RatingSnapshot]] = {}

    def get(self, team_id, season, week):
        return self._rows.get(team_id, {}).get((season, week))

    def put(self, snapshot):
        self._rows.setdefault(snapshot.team_id, {})[(snapshot.season, snapshot.week)] = snapshot

    def latest_before(self, team_id, season, week):
        candidates = [
            key for key in self._rows.get(team_id, {}) if key < (season, week)
        ]
        if not candidates:
            return None
        return self._rows[team_id][max(candidates)]

    def team_ids(self) -> List[int]:
        return sorted(self._rows)

    def __len__(self) -> int:
        return sum(len(v) for v in self._rows.values())


class SqlRatingStore(RatingStore):
    """Snapshot store backed by the ``rating_snapshots`` table.

    Writes go into the caller's session; committing is the caller's job so
    a whole week can be written atomically.
    """

    def __init__(self, db: Session, sport: str, model_version: str = MODEL_VERSION) -> None:
        self.db = db
        self.sport = sport
        self.model_version = model_version

    def _query(self, team_id: int):
        return self.db.query(RatingSnapshotRow).filter(
            RatingSnapshotRow.team_id == team_id,
            RatingSnapshotRow.sport == self.sport,
            RatingSnapshotRow.model_version == self.model_version,
        )

    @staticmethod
    def _to_dto(row: RatingSnapshotRow) -> RatingSnapshot:
        return RatingSnapshot(
            team_id=row.team_id,
            season=row.season,
            week=row.week,
            rating=row.rating,
            games_played=row.games_played or 0,
        )

    def get(self, team_id, season, week):
        row = self._query(team_id).filter(
            RatingSnapshotRow.season == season, RatingSnapshotRow.week == week
        ).first()
        return self._to_dto(row) if row else None

    def put(self, snapshot):
        row = self._query(snapshot.team_id).filter(
            RatingSnapshotRow.season == snapshot.season,
            RatingSnapshotRow.week == snapshot.week,
        ).first()
        if row is None:
            row = RatingSnapshotRow(
                team_id=snapshot.team_id,
                sport=self.sport,
                season=snapshot.season,
                week=snapshot.week,
                model_version=self.model_version,
            )
            self.db.add(row)
        elif row.rating == snapshot.rating and row.games_played == snapshot.games_played:
            return
        row.rating = snapshot.rating
        row.games_played = snapshot.games_played
        self.db.flush()

    def latest_before(self, team_id, season, week):
        row = (
            self._query(team_id)
            .filter(
                or_(
                    RatingSnapshotRow.season < season,
                    and_(RatingSnapshotRow.season == season, RatingSnapshotRow.week < week),
                )
            )
            .order_by(RatingSnapshotRow.season.desc(), RatingSnapshotRow.week.desc())
            .first()
        )
        return self._to_dto(row) if row else None

    def delete_season(self, season: int) -> int:
        """Remove every snapshot of a season before a rebuild."""
        deleted = (
            self.db.query(RatingSnapshotRow)
            .filter(
                RatingSnapshotRow.sport == self.sport,
                RatingSnapshotRow.model_version == self.model_version,
                RatingSnapshotRow.season == season,
            )
            .delete(synchronize_session=False)
        )
        logger.info("Deleted %d snapshots for %s season %d", deleted, self.sport, season)
        return deleted
