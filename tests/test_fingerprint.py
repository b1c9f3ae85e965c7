import pytest

from mirror_copy import Fingerprint, HashlibFingerprint, available_algorithms


def test_same_content_same_fingerprint(tmp_path):
    a = tmp_path / "a.bin"
    b = tmp_path / "b.bin"
    a.write_bytes(b"x" * 10000)
    b.write_bytes(b"x" * 10000)

    fp = HashlibFingerprint()
    assert fp.compute(a) == fp.compute(b)


def test_different_content_differs(tmp_path):
    a = tmp_path / "a.bin"
    b = tmp_path / "b.bin"
    a.write_bytes(b"hello")
    b.write_bytes(b"hellO")

    fp = HashlibFingerprint("sha256")
    assert fp.compute(a) != fp.compute(b)


def test_small_chunks_match_whole_file(tmp_path):
    f = tmp_path / "f.bin"
    f.write_bytes(bytes(range(256)) * 50)

    assert HashlibFingerprint(chunk_size=7).compute(f) == HashlibFingerprint().compute(f)


def test_algorithm_is_part_of_identity():
    assert Fingerprint("md5", b"\x01" * 16) != Fingerprint("sha1", b"\x01" * 16)
    assert Fingerprint("md5", b"\x01" * 16) == Fingerprint("md5", b"\x01" * 16)


def test_fingerprint_is_not_hashable_or_ordered():
    fp = Fingerprint("md5", b"\x00" * 16)
    with pytest.raises(TypeError):
        hash(fp)
    with pytest.raises(TypeError):
        fp < fp  # noqa: B015


def test_fingerprint_repr():
    assert repr(Fingerprint("md5", b"\xab\xcd")) == "Fingerprint(md5:abcd)"


def test_missing_file_raises_oserror(tmp_path):
    with pytest.raises(OSError):
        HashlibFingerprint().compute(tmp_path / "nope")


def test_unsupported_algorithm():
    with pytest.raises(ValueError, match="Unsupported"):
        HashlibFingerprint("shake_128")
    assert "md5" in available_algorithms()
    assert not any(a.startswith("shake_") for a in available_algorithms())
