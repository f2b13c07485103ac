"""Tests for the audio probe."""
from unittest.mock import Mock, patch

import pytest

from showrelay.metadata import AudioProbe


@pytest.fixture
def probe():
    return AudioProbe()


@pytest.fixture
def mock_audio_file():
    mock = Mock()
    mock.info.length = 3600.5
    mock.info.bitrate = 320000
    mock.tags = {'TIT2': ['Sunday Session'], 'TPE1': ['DJ']}
    return mock


def test_missing_file(probe, tmp_path):
    result = probe.probe(tmp_path / "nonexistent.mp3")
    assert result["error"] == "File not found"


def test_unsupported_format(probe, tmp_path):
    test_file = tmp_path / "show.xyz"
    test_file.write_bytes(b"data")
    result = probe.probe(test_file)
    assert result["error"] == "Unsupported format: .xyz"
    assert result["format"] == "xyz"


@patch('mutagen.File')
def test_success(mock_mutagen, probe, tmp_path, mock_audio_file):
    mock_mutagen.return_value = mock_audio_file
    test_file = tmp_path / "show.mp3"
    test_file.write_bytes(b"fake mp3 data")

    result = probe.probe(test_file)

    assert result["filename"] == "show.mp3"
    assert result["format"] == "mp3"
    assert result["duration_seconds"] == 3600.5
    assert result["bitrate"] == 320000
    assert result["title"] == "Sunday Session"
    assert result["artist"] == "DJ"
    assert "error" not in result


@patch('mutagen.File')
def test_unreadable_file(mock_mutagen, probe, tmp_path):
    mock_mutagen.return_value = None
    test_file = tmp_path / "show.mp3"
    test_file.write_bytes(b"fake mp3 data")
    assert probe.probe(test_file)["error"] == "Could not read file"


@patch('mutagen.File')
def test_mutagen_errors_are_reported_not_raised(mock_mutagen, probe, tmp_path):
    mock_mutagen.side_effect = Exception("can't sync to MPEG frame")
    test_file = tmp_path / "show.mp3"
    test_file.write_bytes(b"junk")
    result = probe.probe(test_file)
    assert result["error"] == "can't sync to MPEG frame"
    assert result["filename"] == "show.mp3"


def test_junk_audio_never_raises(probe, tmp_path):
    test_file = tmp_path / "show.mp3"
    test_file.write_bytes(b"ID3" + b"\x00" * 64)
    result = probe.probe(test_file)
    assert result["filename"] == "show.mp3"
