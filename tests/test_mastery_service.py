import asyncio
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, utcnow
from app.exceptions import PersistenceFailure
from app.models import AttemptResult, MasteryRecord, Quiz, QuizAttempt
from app.services.mastery_service import KeyedLocks, MasteryTracker, calculate_mastery


class RecordingRecommender:
    def __init__(self):
        self.calls = []

    async def generate(self, db, record):
        self.calls.append((record.topic, record.mastery))
        return []


def test_calculate_mastery():
    assert calculate_mastery(5, 5) == 100
    assert calculate_mastery(0, 5) == 0
    assert calculate_mastery(3, 5) == 60
    assert calculate_mastery(0, 0) == 0
    assert calculate_mastery(1, 8) == 13  # 12.5 rounds up


async def test_counts_and_last_quiz_date(db):
    tracker = MasteryTracker(recommender=RecordingRecommender())

    first = await tracker.record_result(db, "u1", "Cells", None, 90)
    second = await tracker.record_result(db, "u1", "Cells", None, 69)

    record = second.record
    assert record.id == first.record.id
    assert (record.correct_count, record.total_count, record.mastery) == (1, 2, 50)
    assert record.subtopic == ""
    assert record.last_quiz_date is not None
    assert db.query(MasteryRecord).count() == 1


async def test_exactly_threshold_produces_no_recommendation(db):
    recommender = RecordingRecommender()
    tracker = MasteryTracker(recommender=recommender)

    for score in [100] * 17 + [0] * 3:
        await tracker.record_result(db, "u1", "Cells", "organelles", score)

    record = db.query(MasteryRecord).one()
    assert record.mastery == 85
    assert recommender.calls == []

    update = await tracker.record_result(db, "u1", "Cells", "organelles", 0)
    assert update.record.mastery == 81
    assert recommender.calls == [("Cells", 81)]


async def test_low_mastery_triggers_recommendations_immediately(db):
    recommender = RecordingRecommender()
    tracker = MasteryTracker(recommender=recommender)

    await tracker.record_result(db, "u2", "Genetics", None, 40)

    assert recommender.calls == [("Genetics", 0)]


def test_rebuild_from_attempt_results(db):
    now = utcnow()
    quiz = Quiz(id=uuid.uuid4(), title="Cells", description="", questions=[{"id": "q1"}],
                passing_score=70, quiz_metadata={"topic": "organelles"}, created_at=now, updated_at=now)
    db.add(quiz)
    for score in (100, 40, 75):
        attempt_id = uuid.uuid4()
        db.add(QuizAttempt(id=attempt_id, user_id="u4", quiz_id=quiz.id, answers=[], created_at=now))
        db.add(AttemptResult(attempt_id=attempt_id, quiz_id=quiz.id, user_id="u4", question_results=[],
                             aggregate_score=score, passing_score=70, passed=score >= 70, created_at=now))
    db.commit()

    records = MasteryTracker().rebuild(db, "u4")

    assert len(records) == 1
    record = records[0]
    assert (record.topic, record.subtopic) == ("Cells", "organelles")
    assert (record.correct_count, record.total_count, record.mastery) == (2, 3, 67)


@pytest.fixture
def session_pair(tmp_path):
    """Two independent sessions on one file-backed database"""
    engine = create_engine(f"sqlite:///{tmp_path / 'mastery.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    first, second = factory(), factory()
    yield first, second
    first.close()
    second.close()
    engine.dispose()


def interfere_before_commit(monkeypatch, session, times, write):
    """Run write() on another session right before session's next commits"""
    remaining = {"count": times}
    commit = session.commit

    def commit_after_interference():
        if remaining["count"]:
            remaining["count"] -= 1
            write()
        commit()

    monkeypatch.setattr(session, "commit", commit_after_interference)


def test_lost_insert_race_is_retried(monkeypatch, session_pair):
    mine, other = session_pair
    tracker = MasteryTracker()
    interfere_before_commit(
        monkeypatch, mine, 1, lambda: tracker.apply_result(other, "u5", "Optics", None, 100)
    )

    record = tracker.apply_result(mine, "u5", "Optics", None, 100)

    assert (record.correct_count, record.total_count) == (2, 2)
    assert mine.query(MasteryRecord).count() == 1


def test_stale_update_is_retried(monkeypatch, session_pair):
    mine, other = session_pair
    tracker = MasteryTracker()
    tracker.apply_result(other, "u6", "Optics", "lenses", 100)
    interfere_before_commit(
        monkeypatch, mine, 1, lambda: tracker.apply_result(other, "u6", "Optics", "lenses", 0)
    )

    record = tracker.apply_result(mine, "u6", "Optics", "lenses", 100)

    assert (record.correct_count, record.total_count, record.mastery) == (2, 3, 67)


def test_persistent_conflicts_raise_persistence_failure(monkeypatch, session_pair):
    mine, other = session_pair
    tracker = MasteryTracker()
    tracker.apply_result(other, "u7", "Optics", None, 100)
    interfere_before_commit(
        monkeypatch, mine, tracker.MAX_UPDATE_ATTEMPTS,
        lambda: tracker.apply_result(other, "u7", "Optics", None, 100),
    )

    with pytest.raises(PersistenceFailure):
        tracker.apply_result(mine, "u7", "Optics", None, 100)

    other.expire_all()
    record = other.query(MasteryRecord).one()
    assert record.total_count == 1 + tracker.MAX_UPDATE_ATTEMPTS


async def test_keyed_locks_serialise_holders_and_drop_idle_keys():
    locks = KeyedLocks()
    key = ("u8", "Optics", "")
    events = []

    async def hold(name):
        async with locks.hold(key):
            events.append(f"{name} in")
            await asyncio.sleep(0)
            events.append(f"{name} out")

    await asyncio.gather(hold("a"), hold("b"))

    assert events == ["a in", "a out", "b in", "b out"]
    assert len(locks) == 0


async def test_tracker_releases_lock_entries(db):
    tracker = MasteryTracker(recommender=RecordingRecommender())

    await asyncio.gather(*[
        tracker.record_result(db, f"u{i}", "Ecology", None, 100) for i in range(5)
    ])

    assert len(tracker.locks) == 0
    assert db.query(MasteryRecord).count() == 5
