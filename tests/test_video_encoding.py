from __future__ import annotations

import asyncio
import io
from fractions import Fraction

import av
import numpy as np
import pytest

from canvas_record.encoders import _av
from canvas_record.encoders import hardware as hardware_module
from canvas_record.encoders.base import EncoderConfig
from canvas_record.encoders.hardware import (
    ENCODER_CHOICE_ENV,
    HardwareVideoEncoder,
    list_hardware_backends,
    normalise_encoder_choice,
    select_hardware_backend,
)
from canvas_record.encoders.software import SoftwareVideoEncoder, codec_candidates
from canvas_record.errors import EncodeError, EncoderInitError
from canvas_record.surface import ArraySurface


def run_async(coro):
    return asyncio.run(coro)


def _config(extension: str = "mp4", *, width: int = 32, height: int = 32) -> EncoderConfig:
    surface = ArraySurface(np.zeros((height, width, 4), dtype=np.uint8))
    return EncoderConfig(
        surface=surface, width=width, height=height, frame_rate=10, extension=extension
    )


def _frame(value: int, size: int = 32) -> np.ndarray:
    frame = np.full((size, size, 4), value, dtype=np.uint8)
    frame[:, :, 3] = 255
    return frame


# ------------------------------------------------------------------ helpers


def test_select_time_base_matches_frame_rate() -> None:
    assert _av.select_time_base(Fraction(30, 1)) == Fraction(1, 30)
    assert _av.select_time_base(Fraction(30000, 1001)) == Fraction(1001, 30000)


def test_select_time_base_low_frame_rates_use_millisecond_ticks() -> None:
    assert _av.select_time_base(Fraction(2, 1)) == Fraction(1, 2000)


def test_frame_rate_fraction_bounds_denominator() -> None:
    assert _av.frame_rate_fraction(29.97) == Fraction(2997, 100)
    assert _av.frame_rate_fraction(-1) == Fraction(30, 1)


def test_compose_codec_failure_message_lists_unique_attempts() -> None:
    message = _av.compose_codec_failure_message(None, ["libx264", "h264", "libx264"])

    assert message == "No usable video codec available (attempted codecs: libx264, h264)"


def test_select_stream_pixel_format_prefers_requested() -> None:
    class _Codec:
        video_formats = ("nv12", "yuv420p")

    class _Context:
        codec = _Codec()

    class _Stream:
        codec_context = _Context()

    assert _av.select_stream_pixel_format(_Stream(), "nv12") == "nv12"
    assert _av.select_stream_pixel_format(_Stream(), "rgb24") == "yuv420p"
    assert _av.select_stream_pixel_format(object(), None) == "yuv420p"


def test_container_writer_rejects_unknown_extension() -> None:
    with pytest.raises(EncoderInitError):
        _av.ContainerWriter(
            extension="avi", codecs=("mpeg4",), width=16, height=16, frame_rate=10
        )


def test_container_writer_reports_missing_codecs() -> None:
    with pytest.raises(EncoderInitError, match="attempted codecs: not-a-codec"):
        _av.ContainerWriter(
            extension="mp4", codecs=("not-a-codec",), width=16, height=16, frame_rate=10
        )


# ----------------------------------------------------------------- software


def test_codec_candidates_put_preference_first() -> None:
    assert codec_candidates("webm") == ("libvpx-vp9", "libvpx")
    assert codec_candidates("mp4", "MPEG4") == ("mpeg4", "libx264", "h264")
    assert codec_candidates("mov")[0] == "libx264"


def test_software_encoder_produces_mp4() -> None:
    encoder = SoftwareVideoEncoder()

    async def _record() -> bytes | None:
        await encoder.init(_config("mp4"))
        for index in range(5):
            await encoder.encode(_frame(index * 40), index)
        return await encoder.stop()

    payload = run_async(_record())

    assert payload
    assert b"ftyp" in payload[:64]
    with av.open(io.BytesIO(payload)) as container:
        stream = container.streams.video[0]
        assert (stream.codec_context.width, stream.codec_context.height) == (32, 32)
        frames = list(container.decode(stream))
    assert len(frames) == 5


def test_software_encoder_rounds_odd_dimensions_up() -> None:
    encoder = SoftwareVideoEncoder()

    async def _record() -> tuple[int, int, bytes | None]:
        await encoder.init(_config("mp4", width=31, height=31))
        writer = encoder._writer
        assert writer is not None
        await encoder.encode(_frame(10), 0)
        return writer.width, writer.height, await encoder.stop()

    width, height, payload = run_async(_record())

    assert (width, height) == (32, 32)
    assert payload


def test_software_encoder_rejects_bad_frames() -> None:
    encoder = SoftwareVideoEncoder()

    async def _record() -> None:
        await encoder.init(_config("mp4"))
        try:
            await encoder.encode(np.zeros((32, 32, 3), dtype=np.uint8), 0)
        finally:
            await encoder.dispose()

    with pytest.raises(EncodeError):
        run_async(_record())


def test_software_encoder_requires_init() -> None:
    with pytest.raises(EncodeError):
        run_async(SoftwareVideoEncoder().encode(_frame(0), 0))
    assert run_async(SoftwareVideoEncoder().stop()) is None


# ----------------------------------------------------------------- hardware


def test_normalise_encoder_choice(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(ENCODER_CHOICE_ENV, raising=False)
    assert normalise_encoder_choice(None) == "auto"
    assert normalise_encoder_choice(" Pi ") == "v4l2m2m"
    assert normalise_encoder_choice("hardware") == "auto"
    assert normalise_encoder_choice("libx264") == "software"
    monkeypatch.setenv(ENCODER_CHOICE_ENV, "software")
    assert normalise_encoder_choice(None) == "software"


def test_select_hardware_backend_probes_in_order(monkeypatch: pytest.MonkeyPatch) -> None:
    probed: list[str] = []

    def fake_probe(backend) -> bool:
        probed.append(backend.key)
        return backend.key == "videotoolbox"

    monkeypatch.setattr(hardware_module, "_probe_backend", fake_probe)

    backend = select_hardware_backend("auto")

    assert backend is not None and backend.codec == "h264_videotoolbox"
    assert probed == ["v4l2m2m", "nvenc", "videotoolbox"]


def test_select_hardware_backend_preference_goes_first(monkeypatch: pytest.MonkeyPatch) -> None:
    probed: list[str] = []

    def fake_probe(backend) -> bool:
        probed.append(backend.key)
        return False

    monkeypatch.setattr(hardware_module, "_probe_backend", fake_probe)

    assert select_hardware_backend("qsv") is None
    assert probed[0] == "qsv"
    assert sorted(probed) == sorted(item.key for item in list_hardware_backends())


def test_software_choice_disables_probing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        hardware_module, "_probe_backend", lambda backend: pytest.fail("probed")
    )
    monkeypatch.setenv(ENCODER_CHOICE_ENV, "software")

    assert select_hardware_backend() is None


def test_hardware_encoder_init_fails_without_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(hardware_module, "select_hardware_backend", lambda preference=None: None)

    with pytest.raises(EncoderInitError):
        run_async(HardwareVideoEncoder().init(_config("mp4")))


def test_hardware_encoder_rescales_video_frame_timestamps(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    writes: list[tuple[object, Fraction]] = []

    class _Writer:
        def __init__(self, **kwargs) -> None:
            self.kwargs = kwargs
            self.codec = kwargs["codecs"][0]

        def write(self, frame, seconds) -> None:
            writes.append((frame, seconds))

        def finalise(self) -> bytes:
            return b"mp4"

        def close(self) -> None:
            pass

    monkeypatch.setattr(hardware_module, "ContainerWriter", _Writer)
    encoder = HardwareVideoEncoder(codec="h264_qsv")

    async def _record() -> bytes | None:
        await encoder.init(_config("mp4"))
        frame = av.VideoFrame.from_ndarray(_frame(0), format="rgba")
        frame.pts = 250_000
        frame.time_base = Fraction(1, 1_000_000)
        await encoder.encode(frame, 3)
        return await encoder.stop()

    assert run_async(_record()) == b"mp4"
    assert writes[0][1] == Fraction(1, 4)
    assert encoder.codec == "h264_qsv"


def test_hardware_encoder_rejects_arrays() -> None:
    encoder = HardwareVideoEncoder(codec="h264_nvenc")
    encoder._writer = object()  # type: ignore[assignment]

    with pytest.raises(EncodeError):
        run_async(encoder.encode(_frame(0), 0))
