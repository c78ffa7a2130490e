import asyncio

import pytest

from transpane.capture import FrameChannel, ImageSequenceSource, clamp_frame_rate
from transpane.exceptions import CaptureError, CaptureUnavailableError
from transpane.imaging import encode_png
from transpane.models import CapturedFrame, CaptureTarget

from conftest import make_image


def frame(tag):
    return CapturedFrame(image=make_image(10, 10), capture_time=float(tag))


class TestFrameChannel:
    @pytest.mark.asyncio
    async def test_drops_oldest_when_full(self):
        channel = FrameChannel(capacity=2)
        assert not channel.put(frame(1))
        assert not channel.put(frame(2))
        assert channel.put(frame(3))
        assert channel.dropped == 1

        assert (await channel.get()).capture_time == 2.0
        assert (await channel.get()).capture_time == 3.0

    @pytest.mark.asyncio
    async def test_close_drains_then_ends(self):
        channel = FrameChannel()
        channel.put(frame(1))
        channel.close()
        assert (await channel.get()).capture_time == 1.0
        assert await channel.get() is None
        assert not channel.put(frame(2))

    @pytest.mark.asyncio
    async def test_close_with_error_raises_after_drain(self):
        channel = FrameChannel()
        channel.put(frame(1))
        channel.close(CaptureError("permission revoked"))
        await channel.get()
        with pytest.raises(CaptureError):
            await channel.get()

    @pytest.mark.asyncio
    async def test_get_waits_for_a_frame(self):
        channel = FrameChannel()
        waiter = asyncio.ensure_future(channel.get())
        await asyncio.sleep(0.01)
        assert not waiter.done()
        channel.put(frame(7))
        assert (await asyncio.wait_for(waiter, 1)).capture_time == 7.0

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            FrameChannel(0)


class TestImageSequenceSource:
    @pytest.mark.asyncio
    async def test_replays_images_once(self):
        source = ImageSequenceSource([make_image(), make_image(40, 20)])
        frames = [f async for f in await source.start(frame_rate=30)]
        assert [f.size for f in frames] == [(400, 200), (40, 20)]
        assert source.start_count == 1

    @pytest.mark.asyncio
    async def test_crops_to_target(self):
        source = ImageSequenceSource([make_image()])
        frames = [f async for f in await source.start(CaptureTarget(10, 10, 100, 50), frame_rate=30)]
        assert frames[0].size == (100, 50)

    @pytest.mark.asyncio
    async def test_accepts_encoded_images(self):
        source = ImageSequenceSource([encode_png(make_image(32, 16))])
        frames = [f async for f in await source.start(frame_rate=30)]
        assert frames[0].size == (32, 16)

    @pytest.mark.asyncio
    async def test_stop_ends_a_repeating_stream(self):
        source = ImageSequenceSource([make_image()], repeat=True)
        frames = await source.start(frame_rate=30)
        await frames.__anext__()
        await source.stop()
        remaining = [f async for f in frames]
        assert len(remaining) <= 1

    @pytest.mark.asyncio
    async def test_invalid_images_are_unavailable(self):
        with pytest.raises(CaptureUnavailableError):
            await ImageSequenceSource([]).start()
        with pytest.raises(CaptureUnavailableError):
            await ImageSequenceSource([b"not an image"]).start()


@pytest.mark.parametrize("requested,expected", [(0, 0.1), (1, 1.0), (120, 30.0)])
def test_frame_rate_is_clamped(requested, expected):
    assert clamp_frame_rate(requested) == expected
