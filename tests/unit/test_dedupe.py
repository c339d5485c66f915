import pytest
from pathlib import Path
from unittest.mock import MagicMock
from folderize.domain.errors import DuplicateProbeError
from folderize.domain.models import DuplicateMatch, Outcome
from folderize.pipeline.dedupe import DuplicateDetector, group_videos


def _probe(durations):
    ffprobe = MagicMock()
    ffprobe.get_duration.side_effect = lambda p: durations.get(Path(p).name)
    return ffprobe


def _touch(directory, *names):
    paths = []
    for name in names:
        p = directory / name
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(b"v")
        paths.append(p)
    return paths


def test_group_videos_by_directory_and_lowercase_stem():
    files = [
        Path("/v/Clip.mp4"),
        Path("/v/clip.MOV"),
        Path("/v/clip.avi"),
        Path("/w/clip.mov"),
        Path("/v/other.mov"),
    ]
    groups = group_videos(files)

    group = groups[(Path("/v"), "clip")]
    assert group.target == Path("/v/Clip.mp4")
    assert group.others == [Path("/v/clip.MOV"), Path("/v/clip.avi")]
    assert group.is_candidate
    assert not groups[(Path("/w"), "clip")].is_candidate
    assert not groups[(Path("/v"), "other")].is_candidate


def test_group_videos_multiple_targets():
    groups = group_videos([Path("/v/a.mp4"), Path("/v/A.MP4"), Path("/v/a.mov")])
    group = groups[(Path("/v"), "a")]
    assert group.extra_targets == [Path("/v/A.MP4")]
    assert not group.is_candidate


def test_duration_tolerance(tmp_path):
    a_mp4, a_mov, b_mp4, b_mov = _touch(tmp_path, "a.mp4", "a.mov", "b.mp4", "b.mov")
    detector = DuplicateDetector(_probe({"a.mp4": 120.4, "a.mov": 121.0, "b.mp4": 120.4, "b.mov": 125.0}))

    matches, results = detector.find_duplicates(group_videos([a_mp4, a_mov, b_mp4, b_mov]))

    assert [m.path for m in matches] == [a_mov]
    assert matches[0].delta == pytest.approx(0.6)
    assert len(results) == 1
    assert results[0].path == b_mov
    assert results[0].outcome == Outcome.SKIPPED
    assert "differs" in results[0].reason


def test_exact_tolerance_boundary_is_duplicate(tmp_path):
    paths = _touch(tmp_path, "c.mp4", "c.mov")
    detector = DuplicateDetector(_probe({"c.mp4": 10.0, "c.mov": 11.0}), tolerance_s=1.0)
    matches, _ = detector.find_duplicates(group_videos(paths))
    assert len(matches) == 1


def test_target_probed_once_per_group(tmp_path):
    paths = _touch(tmp_path, "d.mp4", "d.mov", "d.avi")
    ffprobe = _probe({"d.mp4": 5.0, "d.mov": 5.0, "d.avi": 5.0})
    DuplicateDetector(ffprobe).find_duplicates(group_videos(paths))
    probed = [Path(c.args[0]).name for c in ffprobe.get_duration.call_args_list]
    assert probed.count("d.mp4") == 1
    assert sorted(probed) == ["d.avi", "d.mov", "d.mp4"]


def test_probe_failure_skips_member(tmp_path):
    paths = _touch(tmp_path, "e.mp4", "e.mov", "e.avi")
    detector = DuplicateDetector(_probe({"e.mp4": 5.0, "e.avi": 5.0}))

    matches, results = detector.find_duplicates(group_videos(paths))

    assert [m.path.name for m in matches] == ["e.avi"]
    assert [(r.path.name, r.outcome) for r in results] == [("e.mov", Outcome.FAILED)]


def test_probe_failure_with_stop_on_error(tmp_path):
    paths = _touch(tmp_path, "f.mp4", "f.mov")
    detector = DuplicateDetector(_probe({"f.mp4": 5.0}))
    with pytest.raises(DuplicateProbeError):
        detector.find_duplicates(group_videos(paths), stop_on_error=True)


def test_target_probe_failure_skips_group(tmp_path):
    paths = _touch(tmp_path, "g.mp4", "g.mov")
    ffprobe = _probe({"g.mov": 5.0})
    matches, results = DuplicateDetector(ffprobe).find_duplicates(group_videos(paths))
    assert matches == []
    assert results[0].path.name == "g.mp4"
    assert ffprobe.get_duration.call_count == 1


def test_ambiguous_group_is_reported_and_skipped(tmp_path):
    paths = _touch(tmp_path, "h.mp4", "sub/x.mov")
    paths += [tmp_path / "H.MP4", tmp_path / "h.mov"]
    ffprobe = _probe({})
    matches, results = DuplicateDetector(ffprobe).find_duplicates(group_videos(paths))
    assert matches == []
    assert [r.path.name for r in results] == ["h.mov"]
    assert "ambiguous" in results[0].reason
    ffprobe.get_duration.assert_not_called()


def test_delete_duplicates(tmp_path):
    mov, mp4 = _touch(tmp_path, "i.mov", "i.mp4")
    match = DuplicateMatch(path=mov, target_path=mp4, duration=5.0, target_duration=5.2)
    detector = DuplicateDetector(MagicMock())

    dry = detector.delete_duplicates([match], dry_run=True)
    assert dry[0].outcome == Outcome.SKIPPED
    assert mov.exists()

    real = detector.delete_duplicates([match])
    assert real[0].outcome == Outcome.SUCCESS
    assert not mov.exists()
    assert mp4.exists()

    again = detector.delete_duplicates([match])
    assert again[0].outcome == Outcome.FAILED


def test_run_scans_tree(tmp_path, event_bus):
    _touch(tmp_path, "trip/j.mp4", "trip/j.mov", "trip/k.mov", "trip/notes.txt", "trip/j.jpg")
    detector = DuplicateDetector(
        _probe({"j.mp4": 30.0, "j.mov": 30.2}),
        video_extensions=[".mov", ".mp4"],
        event_bus=event_bus,
    )

    results = detector.run(tmp_path)

    assert [(r.path.name, r.outcome) for r in results] == [("j.mov", Outcome.SUCCESS)]
    assert not (tmp_path / "trip" / "j.mov").exists()
    assert (tmp_path / "trip" / "k.mov").exists()
    assert (tmp_path / "trip" / "j.jpg").exists()


def test_run_dry_run_keeps_files(tmp_path):
    _touch(tmp_path, "l.mp4", "l.mov")
    detector = DuplicateDetector(_probe({"l.mp4": 1.0, "l.mov": 1.0}), video_extensions=[".mov", ".mp4"])
    results = detector.run(tmp_path, dry_run=True)
    assert results[0].reason == "dry run"
    assert (tmp_path / "l.mov").exists()
