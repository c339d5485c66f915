"""End-to-end runs over a real temp tree; only the external tools are mocked."""
import os
import time
import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch
from folderize.domain.models import Outcome
from folderize.infrastructure.ffmpeg import FFmpegAdapter
from folderize.infrastructure.ffprobe import FFprobeAdapter
from folderize.pipeline.dedupe import DuplicateDetector
from folderize.pipeline.filing import FileMover
from folderize.pipeline.normalizer import NormalizationEngine
from folderize.pipeline.orchestrator import Orchestrator

pytestmark = pytest.mark.integration

OLD = time.time() - 3600


def _write(path: Path, data: bytes = b"data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    os.utime(path, (OLD, OLD))
    return path


def _fake_ffprobe(codecs=None, durations=None):
    codecs = codecs or {}
    durations = durations or {}

    def run(cmd, capture_output=True, text=True):
        name = Path(cmd[-1]).name
        result = MagicMock()
        result.returncode = 0
        result.stderr = ""
        if "stream=codec_name" in cmd:
            value = codecs.get(name)
        else:
            value = durations.get(name, 10.0)
        if value is None:
            result.returncode = 1
            result.stdout = ""
            result.stderr = "Invalid data found when processing input"
        else:
            result.stdout = f"{value}\n"
        return result

    return run


def _fake_ffmpeg(calls):
    def popen(cmd, **kwargs):
        calls.append(cmd)
        temp = Path(cmd[-1])
        process = MagicMock()
        process.stdout = iter(["out_time_us=5000000\n", "progress=continue\n", "out_time_us=10000000\n", "progress=end\n"])
        process.returncode = 0

        def wait(timeout=None):
            temp.write_bytes(b"encoded-h264")
            return 0

        process.wait.side_effect = wait
        return process

    return popen


def _build(config, bus, source, archive=None, continuous=False):
    ffprobe = FFprobeAdapter()
    normalizer = NormalizationEngine(config, bus, ffprobe, FFmpegAdapter(bus, config.video))
    mover = FileMover(config.general.allowed_extensions, config.general.ignored_files, event_bus=bus)
    detector = DuplicateDetector(
        ffprobe,
        tolerance_s=config.video.duration_tolerance_s,
        video_extensions=config.general.video_extensions,
        ignored_names=config.general.ignored_files,
        event_bus=bus,
    )
    return Orchestrator(
        config=config,
        event_bus=bus,
        source=source,
        destination=archive,
        mover=mover,
        normalizer=normalizer,
        detector=detector,
        continuous=continuous,
    )


def test_convert_then_file(tmp_path, sample_config, event_bus):
    sample_config.general.convert_videos = True
    sample_config.general.delete_originals = True
    source = tmp_path / "import"
    archive = tmp_path / "archive"
    archive.mkdir()
    _write(source / "day1" / "beach.mov")
    _write(source / "day1" / "ready.mp4")
    _write(source / "day1" / "photo.jpg")
    calls = []

    with patch("subprocess.run", side_effect=_fake_ffprobe(codecs={"ready.mp4": "h264"})), \
            patch("subprocess.Popen", side_effect=_fake_ffmpeg(calls)):
        report = _build(sample_config, event_bus, source, archive).run_once()

    assert len(calls) == 1
    assert Path(calls[0][calls[0].index("-i") + 1]).name == "beach.mov"
    outcomes = {r.path.name: r.outcome for r in report.conversion}
    assert outcomes == {"beach.mov": Outcome.SUCCESS, "ready.mp4": Outcome.SKIPPED}

    assert report.filing_skipped is False
    filed = sorted(p.name for p in archive.rglob("*") if p.is_file())
    assert filed == ["beach.mp4", "photo.jpg", "ready.mp4"]
    beach = next(archive.rglob("beach.mp4"))
    assert beach.read_bytes() == b"encoded-h264"
    assert beach.stat().st_mtime == pytest.approx(OLD, abs=1)
    # Source tree drained and pruned
    assert list(source.iterdir()) == []


def test_failed_conversion_blocks_filing(tmp_path, sample_config, event_bus):
    sample_config.general.convert_videos = True
    source = tmp_path / "import"
    archive = tmp_path / "archive"
    archive.mkdir()
    _write(source / "broken.mov")
    _write(source / "photo.jpg")

    def failing_popen(cmd, **kwargs):
        process = MagicMock()
        process.stdout = iter(["broken.mov: moov atom not found\n"])
        process.returncode = 1
        process.wait.return_value = 1
        return process

    with patch("subprocess.run", side_effect=_fake_ffprobe()), \
            patch("subprocess.Popen", side_effect=failing_popen):
        report = _build(sample_config, event_bus, source, archive).run_once()

    assert report.conversion[0].outcome == Outcome.FAILED
    assert report.filing_skipped is True
    assert report.blocked_by == [source / "broken.mov"]
    assert (source / "photo.jpg").exists()
    assert not (source / "broken.mp4.tmp").exists()


def test_upload_in_progress_is_left_for_a_later_run(tmp_path, sample_config, event_bus):
    sample_config.general.convert_videos = True
    sample_config.general.delete_originals = True
    source = tmp_path / "import"
    archive = tmp_path / "archive"
    archive.mkdir()
    _write(source / "photo.jpg")
    upload = source / "upload.mov"
    upload.write_bytes(b"first chunk")
    calls = []

    with patch("subprocess.run", side_effect=_fake_ffprobe()), \
            patch("subprocess.Popen", side_effect=_fake_ffmpeg(calls)):
        orchestrator = _build(sample_config, event_bus, source, archive, continuous=True)
        first = orchestrator.run_once()
        os.utime(upload, (OLD, OLD))
        second = orchestrator.run_once()

    assert [(r.path.name, r.outcome, r.reason) for r in first.conversion] == [
        ("upload.mov", Outcome.SKIPPED, "unstable, deferred"),
    ]
    assert first.filing_skipped is True
    assert (source / "photo.jpg").exists()

    assert len(calls) == 1
    assert second.conversion[0].outcome == Outcome.SUCCESS
    assert second.filing_skipped is False
    assert not upload.exists()
    assert len(list(archive.rglob("upload.mp4"))) == 1
    assert len(list(archive.rglob("photo.jpg"))) == 1


def test_standalone_convert_is_idempotent(tmp_path, sample_config, event_bus):
    source = tmp_path / "videos"
    out = tmp_path / "converted"
    _write(source / "trip" / "a.mov")
    _write(source / "trip" / "b.mp4")
    calls = []

    with patch("subprocess.run", side_effect=_fake_ffprobe(codecs={"b.mp4": "h264"})), \
            patch("subprocess.Popen", side_effect=_fake_ffmpeg(calls)):
        orchestrator = _build(sample_config, event_bus, source)
        first = orchestrator.run_convert(output_root=out)
        second = orchestrator.run_convert(output_root=out)

    assert len(calls) == 1
    assert (out / "trip" / "a.mp4").read_bytes() == b"encoded-h264"
    assert (out / "trip" / "b.mp4").read_bytes() == b"data"
    assert first.count(Outcome.SUCCESS) == 2
    assert second.count(Outcome.SKIPPED) == 2
    assert (source / "trip" / "a.mov").exists()


def test_dedupe_after_conversion(tmp_path, sample_config, event_bus):
    source = tmp_path / "videos"
    _write(source / "clip.mp4")
    _write(source / "clip.mov")
    _write(source / "long.mp4")
    _write(source / "long.mov")
    durations = {"clip.mp4": 120.4, "clip.mov": 121.0, "long.mp4": 120.4, "long.mov": 125.0}

    with patch("subprocess.run", side_effect=_fake_ffprobe(durations=durations)):
        orchestrator = _build(sample_config, event_bus, source)
        preview = orchestrator.run_dedupe(dry_run=True)
        assert (source / "clip.mov").exists()
        report = orchestrator.run_dedupe()

    assert preview.count(Outcome.SKIPPED, "dedupe") == 2
    assert not (source / "clip.mov").exists()
    assert (source / "long.mov").exists()
    assert (source / "clip.mp4").exists()
    assert report.count(Outcome.SUCCESS, "dedupe") == 1
