"""
Tests for media_transcoder module.
"""
import re
import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from conftest import audio_metadata
from evidence_transcriber.exceptions import ConversionError, ProbeError
from evidence_transcriber.media_probe import MediaProber
from evidence_transcriber.media_transcoder import MediaTranscoder
from evidence_transcriber.models import ConversionOptions, VideoMetadata


def ffmpeg_creates_output(*args, **kwargs):
    """subprocess.run stand-in: write the output file (last argument)."""
    Path(args[0][-1]).write_bytes(b"encoded audio")
    return Mock(returncode=0, stderr="")


def video_metadata(has_audio=True):
    return VideoMetadata(
        format="mp4",
        duration_seconds=60.0,
        bitrate_kbps=2000.0,
        width=1280,
        height=720,
        frame_rate=30.0,
        has_audio=has_audio,
    )


@pytest.fixture
def prober():
    prober = Mock(spec=MediaProber)
    prober.probe.return_value = audio_metadata(720.0)
    return prober


@pytest.fixture
def transcoder(prober):
    return MediaTranscoder(prober=prober)


@pytest.fixture
def input_audio(tmp_path):
    path = tmp_path / "interview.wav"
    path.write_bytes(b"original audio")
    return path


@pytest.fixture
def input_video(tmp_path):
    path = tmp_path / "bodycam.mp4"
    path.write_bytes(b"original video")
    return path


class TestConvertAudio:
    """Tests for convert_audio."""

    @patch("subprocess.run")
    def test_convert_to_mp3(self, mock_run, transcoder, input_audio):
        mock_run.side_effect = ffmpeg_creates_output

        output = transcoder.convert_audio(input_audio, "mp3")

        assert output.exists()
        assert output.parent == input_audio.parent
        assert re.fullmatch(r"interview_[0-9a-f]{8}\.mp3", output.name)

        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["ffmpeg", "-i", str(input_audio)]
        assert cmd[cmd.index("-codec:a") + 1] == "libmp3lame"
        assert "-y" in cmd
        assert "-af" not in cmd

    @pytest.mark.parametrize("fmt,encoder", [
        ("aac", "aac"),
        ("flac", "flac"),
        ("ogg", "libvorbis"),
        ("wav", "pcm_s16le"),
    ])
    @patch("subprocess.run")
    def test_encoder_mapping(self, mock_run, fmt, encoder, transcoder, input_audio):
        mock_run.side_effect = ffmpeg_creates_output

        output = transcoder.convert_audio(input_audio, fmt)

        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-codec:a") + 1] == encoder
        assert output.suffix == f".{fmt}"

    @patch("subprocess.run")
    def test_options_are_applied(self, mock_run, transcoder, input_audio, tmp_path):
        mock_run.side_effect = ffmpeg_creates_output
        out_dir = tmp_path / "converted"
        options = ConversionOptions(
            sample_rate_hz=16000,
            channels=1,
            bitrate="64k",
            normalize=True,
            noise_reduction=True,
            output_dir=out_dir,
        )

        output = transcoder.convert_audio(input_audio, "mp3", options)

        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-ar") + 1] == "16000"
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert cmd[cmd.index("-b:a") + 1] == "64k"
        assert cmd.count("-af") == 1
        assert cmd[cmd.index("-af") + 1] == "afftdn=nf=-20,loudnorm"
        assert output.parent == out_dir

    @patch("subprocess.run")
    def test_normalize_only(self, mock_run, transcoder, input_audio):
        mock_run.side_effect = ffmpeg_creates_output

        transcoder.convert_audio(input_audio, "mp3", ConversionOptions(normalize=True))

        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-af") + 1] == "loudnorm"

    @patch("subprocess.run")
    def test_input_is_not_modified(self, mock_run, transcoder, input_audio):
        mock_run.side_effect = ffmpeg_creates_output

        output = transcoder.convert_audio(input_audio, "wav")

        assert output != input_audio
        assert input_audio.read_bytes() == b"original audio"

    def test_unsupported_format(self, transcoder, input_audio):
        with pytest.raises(ConversionError) as exc_info:
            transcoder.convert_audio(input_audio, "wma")

        assert "Unsupported audio format" in str(exc_info.value)

    def test_missing_input(self, transcoder, tmp_path):
        with pytest.raises(ConversionError) as exc_info:
            transcoder.convert_audio(tmp_path / "missing.wav")

        assert "not found" in str(exc_info.value)

    @patch("subprocess.run")
    def test_silent_failure_without_output(self, mock_run, transcoder, input_audio):
        """Exit code 0 without an output file is still a failure."""
        mock_run.return_value = Mock(returncode=0, stderr="")

        with pytest.raises(ConversionError) as exc_info:
            transcoder.convert_audio(input_audio)

        assert "no usable output file" in str(exc_info.value)

    @patch("subprocess.run")
    def test_empty_output_is_a_failure(self, mock_run, transcoder, input_audio):
        """Exit code 0 with a zero-byte output file is still a failure."""
        def writes_empty_file(*args, **kwargs):
            Path(args[0][-1]).write_bytes(b"")
            return Mock(returncode=0, stderr="")

        mock_run.side_effect = writes_empty_file

        with pytest.raises(ConversionError) as exc_info:
            transcoder.convert_audio(input_audio)

        assert "empty file" in str(exc_info.value)
        assert list(input_audio.parent.glob("interview_*.mp3")) == []

    @patch("subprocess.run")
    def test_nonzero_exit(self, mock_run, transcoder, input_audio):
        mock_run.return_value = Mock(returncode=1, stderr="Error while decoding stream")

        with pytest.raises(ConversionError) as exc_info:
            transcoder.convert_audio(input_audio)

        assert "exit code 1" in str(exc_info.value)
        assert "Error while decoding stream" in str(exc_info.value)

    @patch("subprocess.run")
    def test_ffmpeg_not_installed(self, mock_run, transcoder, input_audio):
        mock_run.side_effect = FileNotFoundError("ffmpeg")

        with pytest.raises(ConversionError) as exc_info:
            transcoder.convert_audio(input_audio)

        assert "FFmpeg not found" in str(exc_info.value)

    @patch("subprocess.run")
    def test_timeout(self, mock_run, transcoder, input_audio):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ffmpeg", timeout=600)

        with pytest.raises(ConversionError) as exc_info:
            transcoder.convert_audio(input_audio)

        assert "timed out" in str(exc_info.value)


class TestExtractAudioFromVideo:
    """Tests for extract_audio_from_video."""

    @patch("subprocess.run")
    def test_extract_success(self, mock_run, transcoder, prober, input_video):
        prober.probe.return_value = video_metadata()
        mock_run.side_effect = ffmpeg_creates_output

        output = transcoder.extract_audio_from_video(input_video)

        assert output.exists()
        assert re.fullmatch(r"bodycam_audio_[0-9a-f]{8}\.mp3", output.name)
        cmd = mock_run.call_args[0][0]
        assert "-vn" in cmd
        assert cmd[cmd.index("-codec:a") + 1] == "libmp3lame"
        assert input_video.read_bytes() == b"original video"

    @patch("subprocess.run")
    def test_audio_file_is_rejected(self, mock_run, transcoder, prober, input_audio):
        """Probing happens first; no ffmpeg call for a non-video input."""
        prober.probe.return_value = audio_metadata(30.0)

        with pytest.raises(ConversionError) as exc_info:
            transcoder.extract_audio_from_video(input_audio)

        assert "not a video" in str(exc_info.value)
        mock_run.assert_not_called()

    @patch("subprocess.run")
    def test_empty_extracted_audio_is_a_failure(self, mock_run, transcoder, prober, input_video):
        prober.probe.return_value = video_metadata()

        def writes_empty_file(*args, **kwargs):
            Path(args[0][-1]).touch()
            return Mock(returncode=0, stderr="")

        mock_run.side_effect = writes_empty_file

        with pytest.raises(ConversionError) as exc_info:
            transcoder.extract_audio_from_video(input_video)

        assert "Audio extraction failed" in str(exc_info.value)

    def test_probe_failure(self, transcoder, prober, input_video):
        prober.probe.side_effect = ProbeError("No streams found")

        with pytest.raises(ConversionError) as exc_info:
            transcoder.extract_audio_from_video(input_video)

        assert "No streams found" in str(exc_info.value)

    def test_missing_input(self, transcoder, tmp_path):
        with pytest.raises(ConversionError):
            transcoder.extract_audio_from_video(tmp_path / "missing.mp4")


class TestStandardizeAudio:
    """Tests for the speech preset."""

    @patch("subprocess.run")
    def test_preset_arguments(self, mock_run, transcoder, input_audio):
        mock_run.side_effect = ffmpeg_creates_output

        transcoder.standardize_audio(input_audio)

        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-ar") + 1] == "44100"
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert cmd[cmd.index("-b:a") + 1] == "128k"
        assert cmd[cmd.index("-af") + 1] == "afftdn=nf=-20,loudnorm"

    @patch("subprocess.run")
    def test_options_override_preset(self, mock_run, transcoder, input_audio, tmp_path):
        mock_run.side_effect = ffmpeg_creates_output

        output = transcoder.standardize_audio(
            input_audio, options=ConversionOptions(sample_rate_hz=16000, output_dir=tmp_path / "std")
        )

        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-ar") + 1] == "16000"
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert output.parent == tmp_path / "std"


class TestSplitAudioFile:
    """Tests for split_audio_file."""

    @patch("subprocess.run")
    def test_split_into_three_chunks(self, mock_run, transcoder, input_audio):
        mock_run.side_effect = ffmpeg_creates_output

        chunks = transcoder.split_audio_file(input_audio, 300.0)

        assert len(chunks) == 3
        assert mock_run.call_count == 3
        assert [c.index for c in chunks] == [0, 1, 2]
        assert [c.start_seconds for c in chunks] == [0.0, 300.0, 600.0]
        assert [c.duration_seconds for c in chunks] == pytest.approx([300.0, 300.0, 120.0])
        for i, chunk in enumerate(chunks):
            assert chunk.path.exists()
            assert re.fullmatch(rf"interview_segment_{i + 1}_[0-9a-f]{{8}}\.wav", chunk.path.name)

    @patch("subprocess.run")
    def test_split_commands(self, mock_run, transcoder, input_audio):
        mock_run.side_effect = ffmpeg_creates_output

        transcoder.split_audio_file(input_audio, 300.0)

        offsets = []
        for call in mock_run.call_args_list:
            cmd = call[0][0]
            offsets.append(cmd[cmd.index("-ss") + 1])
            assert cmd[cmd.index("-t") + 1] == "300.0"
            assert "-af" not in cmd
        assert offsets == ["0.0", "300.0", "600.0"]

    @patch("subprocess.run")
    def test_failed_chunk_is_skipped(self, mock_run, transcoder, input_audio):
        """A failing chunk is skipped; the others keep their ordinals."""
        def side_effect(*args, **kwargs):
            if "_segment_2_" in args[0][-1]:
                return Mock(returncode=1, stderr="boom")
            return ffmpeg_creates_output(*args, **kwargs)

        mock_run.side_effect = side_effect

        chunks = transcoder.split_audio_file(input_audio, 300.0)

        assert [c.index for c in chunks] == [0, 2]

    @patch("subprocess.run")
    def test_empty_output_is_skipped(self, mock_run, transcoder, input_audio):
        def side_effect(*args, **kwargs):
            output = Path(args[0][-1])
            output.write_bytes(b"" if "_segment_3_" in output.name else b"audio")
            return Mock(returncode=0, stderr="")

        mock_run.side_effect = side_effect

        chunks = transcoder.split_audio_file(input_audio, 300.0)

        assert [c.index for c in chunks] == [0, 1]
        assert not list(input_audio.parent.glob("*_segment_3_*"))

    @patch("subprocess.run")
    def test_missing_output_is_skipped(self, mock_run, transcoder, input_audio):
        mock_run.return_value = Mock(returncode=0, stderr="")

        assert transcoder.split_audio_file(input_audio, 300.0) == []

    @patch("subprocess.run")
    def test_missing_ffmpeg_is_fatal(self, mock_run, transcoder, input_audio):
        mock_run.side_effect = FileNotFoundError("ffmpeg")

        with pytest.raises(ConversionError) as exc_info:
            transcoder.split_audio_file(input_audio, 300.0)

        assert "FFmpeg not found" in str(exc_info.value)

    @patch("subprocess.run")
    def test_output_dir(self, mock_run, transcoder, input_audio, tmp_path):
        mock_run.side_effect = ffmpeg_creates_output
        out_dir = tmp_path / "chunks"

        chunks = transcoder.split_audio_file(input_audio, 300.0, ConversionOptions(output_dir=out_dir))

        assert all(c.path.parent == out_dir for c in chunks)

    def test_video_is_rejected(self, transcoder, prober, input_video):
        prober.probe.return_value = video_metadata()

        with pytest.raises(ConversionError):
            transcoder.split_audio_file(input_video, 300.0)

    def test_non_positive_segment_length(self, transcoder, input_audio):
        with pytest.raises(ConversionError):
            transcoder.split_audio_file(input_audio, 0)
