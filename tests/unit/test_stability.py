import time
from folderize.pipeline.stability import find_unstable, is_file_stable


def test_recently_modified_file_is_unstable(tmp_path, age_file):
    f = tmp_path / "recording.mov"
    f.write_bytes(b"x")
    age_file(f, 2)
    assert not is_file_stable(f, threshold_s=5)


def test_old_file_is_stable(tmp_path, age_file):
    f = tmp_path / "done.mov"
    f.write_bytes(b"x")
    age_file(f, 10)
    assert is_file_stable(f, threshold_s=5)


def test_explicit_clock(tmp_path):
    f = tmp_path / "a.mov"
    f.write_bytes(b"x")
    mtime = f.stat().st_mtime
    assert not is_file_stable(f, 5, now=mtime + 4.5)
    assert is_file_stable(f, 5, now=mtime + 5.5)


def test_vanished_file_is_unstable(tmp_path):
    assert not is_file_stable(tmp_path / "gone.mov", 5, now=time.time())


def test_find_unstable(tmp_path, age_file):
    old = tmp_path / "old.mov"
    new = tmp_path / "new.mov"
    for f, age in ((old, 60), (new, 1)):
        f.write_bytes(b"x")
        age_file(f, age)
    assert find_unstable([old, new], threshold_s=5) == [new]
