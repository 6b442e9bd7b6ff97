"""Tests for detection, guided enrollment and live verification."""

import numpy as np
import pytest

from conftest import FakeCamera, FakeEngine, face, make_descriptor
from face_attendance.recognizer import (
    EnrollProgress, EnrollmentError, FaceRecognizer, UNKNOWN, VerifyResult
)

POSES = [("Center", "Look straight ahead"), ("Left", "Turn your head slightly to the left")]


def make_recognizer(engine, database, camera=None, **kwargs):
    options = dict(samples_per_pose=2, pose_instructions=POSES, tick_delay=0, pose_pause=0)
    options.update(kwargs)
    return FaceRecognizer(camera=camera or FakeCamera(), engine=engine, database=database, **options)


class StopAfter:
    """Display sink that stops the recognizer after n rendered frames."""

    def __init__(self, n):
        self.n = n
        self.frames = 0
        self.recognizer = None

    def __call__(self, frame):
        self.frames += 1
        if self.frames >= self.n:
            self.recognizer.stop()


class TestDetectOne:

    def test_requires_loaded_models(self, database):
        recognizer = make_recognizer(FakeEngine(loaded=False), database)
        with pytest.raises(RuntimeError):
            recognizer.detect_one(np.zeros((480, 640, 3), dtype=np.uint8))

    def test_init_loads_models(self, database):
        engine = FakeEngine(loaded=False)
        recognizer = make_recognizer(engine, database)
        recognizer.init()
        assert engine.is_loaded

    def test_no_face(self, database):
        recognizer = make_recognizer(FakeEngine([None]), database)
        assert recognizer.detect_one(np.zeros((480, 640, 3), dtype=np.uint8)) is None

    def test_low_score_is_rejected(self, database):
        engine = FakeEngine([[face(make_descriptor(0.1), score=0.79)]])
        recognizer = make_recognizer(engine, database)
        assert recognizer.detect_one(np.zeros((480, 640, 3), dtype=np.uint8)) is None

    def test_small_box_is_rejected(self, database):
        engine = FakeEngine([[face(make_descriptor(0.1), width=119)]])
        recognizer = make_recognizer(engine, database)
        assert recognizer.detect_one(np.zeros((480, 640, 3), dtype=np.uint8)) is None

    def test_picks_most_confident_face(self, database):
        near, far = make_descriptor(0.1), make_descriptor(0.9)
        engine = FakeEngine([[face(far, score=0.85, x=10), face(near, score=0.97, x=300)]])
        recognizer = make_recognizer(engine, database)

        detection = recognizer.detect_one(np.zeros((480, 640, 3), dtype=np.uint8))

        assert detection.score == 0.97
        assert detection.box.x == 300
        assert np.array_equal(detection.descriptor, near)

    def test_reads_camera_frame_by_default(self, database, camera):
        recognizer = make_recognizer(FakeEngine([[face(make_descriptor(0.1))]]), database, camera)
        camera.start()
        assert recognizer.detect_one() is not None
        assert camera.reads == 1


class TestEnroll:

    def test_collects_every_pose(self, database, camera):
        samples = [make_descriptor(i / 10.0) for i in range(1, 5)]
        engine = FakeEngine([[face(s)] for s in samples])
        recognizer = make_recognizer(engine, database, camera)
        events = []

        count = recognizer.enroll("Alice", on_progress=events.append)

        assert count == 4
        assert events == [
            EnrollProgress(0, 1, 1),
            EnrollProgress(0, 2, 2),
            EnrollProgress(1, 1, 3),
            EnrollProgress(1, 2, 4),
        ]
        stored = database.get("Alice")
        assert all(np.array_equal(a, b) for a, b in zip(stored, samples))
        assert camera.stopped >= 1
        assert not camera.is_open
        assert not recognizer.running

    def test_replaces_previous_samples(self, database):
        database.replace("Alice", [make_descriptor(5.0)] * 3)
        recognizer = make_recognizer(FakeEngine([[face(make_descriptor(0.1))]]), database)

        recognizer.enroll("Alice")

        stored = database.get("Alice")
        assert len(stored) == 4
        assert all(np.array_equal(d, make_descriptor(0.1)) for d in stored)

    def test_zero_samples_raises_and_keeps_store(self, database, db_path):
        old = [make_descriptor(5.0)]
        database.replace("Alice", old)
        display = StopAfter(5)
        recognizer = make_recognizer(FakeEngine([None]), database, display=display)
        display.recognizer = recognizer

        with pytest.raises(EnrollmentError):
            recognizer.enroll("Alice")

        assert display.frames == 5
        assert np.array_equal(database.get("Alice")[0], old[0])
        assert len(database.get("Alice")) == 1

    def test_zero_samples_does_not_create_user(self, database):
        display = StopAfter(3)
        recognizer = make_recognizer(FakeEngine([None]), database, display=display)
        display.recognizer = recognizer

        with pytest.raises(EnrollmentError):
            recognizer.enroll("Bob")

        assert "Bob" not in database

    def test_stop_keeps_partial_samples(self, database):
        recognizer = make_recognizer(FakeEngine([[face(make_descriptor(0.1))]]), database)

        def on_progress(progress):
            recognizer.stop()

        assert recognizer.enroll("Alice", on_progress=on_progress) == 1
        assert len(database.get("Alice")) == 1

    def test_skips_ticks_without_face(self, database):
        engine = FakeEngine([None, [face(make_descriptor(0.1))], None, [face(make_descriptor(0.2))]])
        recognizer = make_recognizer(engine, database, samples_per_pose=1)

        assert recognizer.enroll("Alice") == 2
        assert engine.detect_calls == 4

    def test_empty_username(self, database, camera):
        recognizer = make_recognizer(FakeEngine(), database, camera)
        with pytest.raises(ValueError):
            recognizer.enroll("   ")
        assert camera.started == 0

    def test_camera_released_on_error(self, database):
        camera = FakeCamera()
        recognizer = make_recognizer(FakeEngine(loaded=False), database, camera)

        with pytest.raises(RuntimeError):
            recognizer.enroll("Alice")

        assert not camera.is_open
        assert "Alice" not in database


class TestVerify:

    def run_verify(self, recognizer, ticks):
        results = []

        def on_result(result):
            results.append(result)
            if len(results) >= ticks:
                recognizer.stop()

        recognizer.verify(on_result=on_result)
        return results

    def test_match_then_no_face(self, database, camera):
        alice = make_descriptor(0.2, 0.1)
        database.replace("Alice", [alice])
        database.replace("Bob", [make_descriptor(-0.8)])
        recognizer = make_recognizer(FakeEngine([[face(alice)], None]), database, camera)

        results = self.run_verify(recognizer, 2)

        assert results[0] == VerifyResult("Alice", 0.0)
        assert results[1] == VerifyResult(UNKNOWN, 0.0)
        assert not camera.is_open
        assert recognizer.canvas is None

    def test_ambiguous_face_is_unknown_with_distance(self, database):
        database.replace("Alice", [make_descriptor(0.3)])
        database.replace("Bob", [make_descriptor(0.32)])
        recognizer = make_recognizer(FakeEngine([[face(make_descriptor())]]), database)

        result, = self.run_verify(recognizer, 1)

        assert result.name == UNKNOWN
        assert result.distance == pytest.approx(0.3)

    def test_deleted_user_is_no_longer_matched(self, database):
        alice = make_descriptor(0.2)
        database.replace("Alice", [alice])
        recognizer = make_recognizer(FakeEngine([[face(alice)]]), database)

        assert self.run_verify(recognizer, 1)[0].name == "Alice"

        recognizer.delete("Alice")
        result, = self.run_verify(recognizer, 1)

        assert result.name == UNKNOWN
        assert result.distance == float('inf')

    def test_set_thresholds_applies_immediately(self, database):
        database.replace("Alice", [make_descriptor(0.4)])
        recognizer = make_recognizer(FakeEngine([[face(make_descriptor())]]), database)

        assert self.run_verify(recognizer, 1)[0].name == "Alice"

        recognizer.set_thresholds(distance_threshold=0.3)
        assert recognizer.second_best_margin == 0.05
        assert self.run_verify(recognizer, 1)[0].name == UNKNOWN

    def test_display_receives_overlay(self, database):
        frames = []
        recognizer = make_recognizer(FakeEngine([None]), database, display=frames.append)

        self.run_verify(recognizer, 3)

        assert len(frames) == 3
        assert frames[0].shape == (480, 640, 3)
        # Red "no face" text was drawn on the blank frame
        assert frames[0].any()


class TestLoopControl:

    def test_detector_is_asked_for_min_box_width(self, database):
        engine = FakeEngine([[face(make_descriptor(0.1))]])
        recognizer = make_recognizer(engine, database, min_box_width=140)

        recognizer.detect_one(np.zeros((480, 640, 3), dtype=np.uint8))

        assert engine.min_face_sizes == [140]

    def test_stop_while_camera_opens_ends_enroll(self, database, camera):
        engine = FakeEngine([[face(make_descriptor(0.1))]])
        recognizer = make_recognizer(engine, database, camera)
        camera.on_start = recognizer.stop

        with pytest.raises(EnrollmentError):
            recognizer.enroll("Alice")

        assert camera.reads == 0
        assert engine.detect_calls == 0
        assert not camera.is_open

    def test_stop_while_camera_opens_ends_verify(self, database, camera):
        recognizer = make_recognizer(FakeEngine(), database, camera)
        camera.on_start = recognizer.stop
        results = []

        recognizer.verify(on_result=results.append)

        assert results == []
        assert camera.reads == 0
        assert not recognizer.running

    def test_failed_camera_start_leaves_recognizer_stopped(self, database, camera):
        def fail():
            raise RuntimeError("Failed to open camera at index 0")

        camera.on_start = fail
        recognizer = make_recognizer(FakeEngine(), database, camera)

        with pytest.raises(RuntimeError):
            recognizer.verify()

        assert not recognizer.running

    def test_pose_pause_only_after_finished_pose(self, database, monkeypatch):
        engine = FakeEngine([None, [face(make_descriptor(0.1))]])
        recognizer = make_recognizer(engine, database, tick_delay=0.01, pose_pause=0.5)
        waits = []

        def record_wait(timeout=None):
            waits.append(timeout)
            return recognizer._stop_event.is_set()

        monkeypatch.setattr(recognizer._stop_event, "wait", record_wait)

        assert recognizer.enroll("Alice") == 4

        # tick with no face, then per pose: sample, sample + pose pause
        assert waits == [0.01, 0.01, 0.5, 0.01, 0.01, 0.5, 0.01]
