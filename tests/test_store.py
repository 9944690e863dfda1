# tests/test_store.py

from conftest import make_segment, make_video
from models import Segment, Video


def test_list_segments_is_ordered_by_sorted_index(store, add_rows):
    add_rows(
        make_segment("seg-c", index=2),
        make_segment("seg-a", index=0),
        make_segment("seg-b", index=1),
        make_segment("other", story_id="story-2", index=0),
    )

    assert [s.id for s in store.list_segments("story-1")] == ["seg-a", "seg-b", "seg-c"]


def test_update_video_status_sets_url_only_when_given(store, add_rows, session_factory):
    add_rows(make_video("video-1"))

    assert store.update_video_status("video-1", "completed", "https://cdn.test/v.mp4")
    assert store.update_video_status("video-1", "pending")

    with session_factory() as db:
        video = db.get(Video, "video-1")
        assert video.status == "pending"
        assert video.videoURL == "https://cdn.test/v.mp4"


def test_failing_video_without_url_clears_previous_url(store, add_rows, session_factory):
    add_rows(make_video("video-1", videoURL="https://cdn.test/v.mp4", status="completed"))

    assert store.update_video_status("video-1", "failed")

    with session_factory() as db:
        video = db.get(Video, "video-1")
        assert (video.status, video.videoURL) == ("failed", None)


def test_failing_video_with_fallback_url_keeps_it(store, add_rows, session_factory):
    add_rows(make_video("video-1"))

    assert store.update_video_status("video-1", "failed", "https://cdn.test/v_fallback.mp4")

    with session_factory() as db:
        assert db.get(Video, "video-1").videoURL == "https://cdn.test/v_fallback.mp4"



def test_update_missing_video_returns_false(store):
    assert store.update_video_status("missing", "failed") is False


def test_complete_and_fail_segment(store, add_rows, session_factory):
    add_rows(make_segment("seg-1"), make_segment("seg-2", index=1))

    assert store.complete_segment("seg-1", "https://cdn.test/story-1/seg-1.mp4")
    assert store.fail_segment("seg-2")
    assert store.fail_segment("missing") is False

    with session_factory() as db:
        done = db.get(Segment, "seg-1")
        failed = db.get(Segment, "seg-2")
        assert (done.status, done.videoURL) == ("completed", "https://cdn.test/story-1/seg-1.mp4")
        assert (failed.status, failed.videoURL) == ("failed", None)


def test_segment_ids_for_video(store, add_rows):
    add_rows(make_video("video-1"), make_segment("seg-1"), make_segment("seg-2", index=1))

    assert sorted(store.segment_ids_for_video("video-1")) == ["seg-1", "seg-2"]
    assert store.segment_ids_for_video("missing") == []


def test_new_rows_start_pending(store, add_rows):
    add_rows(make_video("video-1"), make_segment("seg-1"))

    assert store.get_video("video-1").status == "pending"
    assert store.get_segment("seg-1").status == "pending"


def test_failing_a_completed_segment_clears_its_url(store, add_rows, session_factory):
    add_rows(make_segment("seg-1"))
    store.complete_segment("seg-1", "https://cdn.test/story-1/seg-1.mp4")

    assert store.fail_segment("seg-1")

    with session_factory() as db:
        segment = db.get(Segment, "seg-1")
        assert (segment.status, segment.videoURL) == ("failed", None)
