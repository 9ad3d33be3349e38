"""
Mastery tracking per (user, topic, subtopic)

Every graded attempt increments the record for its key; a mastery below the
threshold immediately asks the recommendation generator for remedial work.
"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.database import commit_or_raise, utcnow
from app.exceptions import PersistenceFailure
from app.models import AttemptResult, MasteryRecord, Quiz, ReviewRecommendation
from app.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

MasteryKey = Tuple[str, str, str]


def calculate_mastery(correct_count: int, total_count: int) -> int:
    """round(correct / total * 100); 0 before the first attempt"""
    if total_count <= 0:
        return 0
    return round_half_up(correct_count / total_count * 100)


class KeyedLocks:
    """One asyncio.Lock per mastery key, dropped once nobody holds or awaits it"""

    def __init__(self):
        self._locks: Dict[MasteryKey, asyncio.Lock] = {}
        self._users: Dict[MasteryKey, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: MasteryKey):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


@dataclass
class MasteryUpdate:
    """Record after the update and the recommendations it produced"""
    record: MasteryRecord
    recommendations: List[ReviewRecommendation] = field(default_factory=list)


class MasteryTracker:
    """
    Maintains rolling correctness statistics

    Updates of one key are serialised in-process with a per-key lock and
    across processes by the record's optimistic version column: a stale
    write or a lost insert race is retried from a fresh read.
    """

    MAX_UPDATE_ATTEMPTS = 3

    def __init__(
        self,
        recommender=None,
        threshold: Optional[int] = None,
        correct_score: Optional[int] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.recommender = recommender
        self.threshold = threshold if threshold is not None else settings.MASTERY_THRESHOLD
        self.correct_score = correct_score if correct_score is not None else settings.OPEN_ANSWER_CORRECT_SCORE
        self.locks = locks or KeyedLocks()

    def _apply(self, db: Session, user_id: str, topic: str, subtopic: str, score: int) -> MasteryRecord:
        record = db.query(MasteryRecord).filter(
            MasteryRecord.user_id == user_id,
            MasteryRecord.topic == topic,
            MasteryRecord.subtopic == subtopic,
        ).first()

        if record is None:
            record = MasteryRecord(
                user_id=user_id,
                topic=topic,
                subtopic=subtopic,
                correct_count=0,
                total_count=0,
                mastery=0,
            )
            db.add(record)

        record.total_count += 1
        if score >= self.correct_score:
            record.correct_count += 1
        record.mastery = calculate_mastery(record.correct_count, record.total_count)
        record.last_quiz_date = utcnow()

        db.commit()
        db.refresh(record)
        return record

    def apply_result(self, db: Session, user_id: str, topic: str, subtopic: Optional[str], score: int) -> MasteryRecord:
        """Read-modify-write with retry on version conflicts"""
        subtopic = subtopic or ""
        for attempt in range(1, self.MAX_UPDATE_ATTEMPTS + 1):
            try:
                return self._apply(db, user_id, topic, subtopic, score)
            except (StaleDataError, IntegrityError) as e:
                db.rollback()
                if attempt == self.MAX_UPDATE_ATTEMPTS:
                    logger.error(f"Mastery update for {user_id}/{topic} kept conflicting: {str(e)}")
                    raise PersistenceFailure("Failed to update mastery record") from e
                logger.warning(f"Mastery update conflict for {user_id}/{topic}, retrying ({attempt})")
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to update mastery record: {str(e)}")
                raise PersistenceFailure("Failed to update mastery record") from e

    async def record_result(
        self,
        db: Session,
        user_id: str,
        topic: str,
        subtopic: Optional[str],
        score: int,
    ) -> MasteryUpdate:
        """
        Fold one graded result into the user's mastery

        Args:
            db: Database session
            user_id: Opaque learner id
            topic: Topic (the quiz title)
            subtopic: Optional subtopic
            score: Aggregate score 0-100

        Returns:
            MasteryUpdate with any recommendations generated
        """
        key = (user_id, topic, subtopic or "")
        async with self.locks.hold(key):
            record = self.apply_result(db, user_id, topic, subtopic, score)

        logger.info(
            f"Mastery {user_id}/{topic}: {record.correct_count}/{record.total_count} = {record.mastery}%"
        )

        recommendations: List[ReviewRecommendation] = []
        if record.mastery < self.threshold and self.recommender is not None:
            recommendations = await self.recommender.generate(db, record)
        return MasteryUpdate(record=record, recommendations=recommendations)

    def rebuild(self, db: Session, user_id: str) -> List[MasteryRecord]:
        """
        Recompute a user's mastery records from persisted attempt results

        Existing records are only raised, never lowered, so total_count
        stays monotonic.
        """
        counts: Dict[MasteryKey, List[int]] = defaultdict(lambda: [0, 0])
        rows = (
            db.query(AttemptResult, Quiz)
            .join(Quiz, Quiz.id == AttemptResult.quiz_id)
            .filter(AttemptResult.user_id == user_id)
            .order_by(AttemptResult.created_at)
            .all()
        )
        last_seen = {}
        for result, quiz in rows:
            key = (user_id, quiz.title, (quiz.quiz_metadata or {}).get("topic") or "")
            counts[key][1] += 1
            if result.aggregate_score >= self.correct_score:
                counts[key][0] += 1
            last_seen[key] = result.created_at

        records = []
        for key, (correct, total) in counts.items():
            _, topic, subtopic = key
            record = db.query(MasteryRecord).filter(
                MasteryRecord.user_id == user_id,
                MasteryRecord.topic == topic,
                MasteryRecord.subtopic == subtopic,
            ).first()
            if record is None:
                record = MasteryRecord(user_id=user_id, topic=topic, subtopic=subtopic,
                                       correct_count=0, total_count=0, mastery=0)
                db.add(record)
            if total >= record.total_count:
                record.correct_count = correct
                record.total_count = total
                record.mastery = calculate_mastery(correct, total)
                record.last_quiz_date = last_seen[key]
            records.append(record)

        commit_or_raise(db, "rebuild mastery records")
        logger.info(f"Rebuilt {len(records)} mastery records for {user_id}")
        return records
