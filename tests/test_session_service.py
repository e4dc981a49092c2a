import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.exceptions import (
    DevicePermissionError,
    ProviderTimeoutError,
    ProviderTransportError,
    ProviderUnavailableError,
    RecordingStateError,
)
from app.models.challenge import Level, Mode
from app.schemas import AnalysisResult
from app.services.challenge_cache import ChallengeCache
from app.services.recording_service import RecordedAudio
from app.services.session_service import (
    MIC_DENIED_MESSAGE,
    RECORDING_RETRY_MESSAGE,
    RETRY_MESSAGE,
    UNAVAILABLE_MESSAGE,
    SessionState,
    ShadowSession,
)

RESULT = AnalysisResult.model_validate({
    "score": 81,
    "words": [{"word": w, "status": "good"} for w in ("I", "wake", "up", "early")],
})


class FakePlayer:
    def __init__(self):
        self.segments = []

    async def play_segment(self, handle, start, end):
        self.segments.append((handle, round(start, 3), round(end, 3)))


def make_session(fetcher, wav_factory, analyze=None, recorder_error=None):
    recorder = MagicMock()
    recorder.stop.return_value = RecordedAudio(
        data=wav_factory(2.0, 16000), mime_type="audio/wav", duration=2.0, chunk_count=8,
    )
    if recorder_error is not None:
        recorder.start.side_effect = recorder_error
    client = MagicMock()
    client.analyze = analyze or AsyncMock(return_value=RESULT)
    player = FakePlayer()
    session = ShadowSession(ChallengeCache(fetcher), client, recorder=recorder, player=player)
    return session, recorder, client, player


def test_load_challenge_makes_session_ready(fake_fetcher, wav_factory):
    session, *_ = make_session(fake_fetcher(), wav_factory)

    challenge = asyncio.run(session.load_challenge())

    assert challenge.topic == "Beginner/Daily"
    assert session.state == SessionState.READY
    assert session.challenge is challenge
    assert session.error is None


def test_superseded_load_never_overwrites_newer_state(fake_fetcher, wav_factory):
    fetcher = fake_fetcher()
    session, *_ = make_session(fetcher, wav_factory)

    async def scenario():
        fetcher.gate = asyncio.Event()
        first = asyncio.ensure_future(session.load_challenge())
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        session.level = Level.ADVANCED
        session.mode = Mode.IELTS
        second = asyncio.ensure_future(session.load_challenge())
        await asyncio.sleep(0)
        fetcher.gate.set()
        return await first, await second

    stale, fresh = asyncio.run(scenario())

    assert stale is None
    assert fresh.topic == "Advanced/IELTS"
    assert session.challenge is fresh
    assert session.state == SessionState.READY


def test_load_failure_clears_cache_and_reports(fake_fetcher, wav_factory):
    fetcher = fake_fetcher()
    session, *_ = make_session(fetcher, wav_factory)

    async def scenario():
        await session.load_challenge()
        assert session.cache.entry is not None
        fetcher.error = ProviderTransportError("network down", provider="gemini")
        session.level = Level.INTERMEDIATE
        return await session.load_challenge()

    assert asyncio.run(scenario()) is None
    assert session.state == SessionState.ERROR
    assert session.error == RETRY_MESSAGE
    assert session.cache.entry is None
    assert session.challenge is None


def test_missing_keys_get_their_own_message(fake_fetcher, wav_factory):
    session, *_ = make_session(fake_fetcher(error=ProviderUnavailableError("no key")), wav_factory)

    asyncio.run(session.load_challenge())

    assert session.error == UNAVAILABLE_MESSAGE


def test_refresh_fetches_a_new_challenge(fake_fetcher, wav_factory):
    fetcher = fake_fetcher()
    session, *_ = make_session(fetcher, wav_factory)

    async def scenario():
        await session.load_challenge()
        await session.load_challenge()
        await session.refresh()

    asyncio.run(scenario())
    assert len(fetcher.calls) == 2


def test_microphone_denied(fake_fetcher, wav_factory):
    session, recorder, *_ = make_session(
        fake_fetcher(), wav_factory, recorder_error=DevicePermissionError("denied"),
    )
    asyncio.run(session.load_challenge())

    assert session.start_recording() is False
    assert session.state == SessionState.READY
    assert session.error == MIC_DENIED_MESSAGE


def test_failed_stop_returns_session_to_ready(fake_fetcher, wav_factory):
    session, recorder, *_ = make_session(fake_fetcher(), wav_factory)
    recorder.stop.side_effect = RuntimeError("Error stopping stream")
    asyncio.run(session.load_challenge())

    assert session.start_recording()
    assert session.stop_recording() is None

    assert session.state == SessionState.READY
    assert session.error == RECORDING_RETRY_MESSAGE
    assert session.recording is None
    recorder.stop.side_effect = None
    assert session.start_recording()
    assert session.state == SessionState.RECORDING


def test_record_then_analyze(fake_fetcher, wav_factory):
    session, recorder, client, player = make_session(fake_fetcher(), wav_factory)

    async def scenario():
        await session.load_challenge()
        assert session.start_recording()
        assert session.state == SessionState.RECORDING
        session.stop_recording()
        assert session.state == SessionState.HAS_RECORDING
        result = await session.run_analysis()
        bounds = await session.play_word(2)
        return result, bounds

    result, bounds = asyncio.run(scenario())

    assert result is RESULT
    assert session.state == SessionState.RESULTS
    args = client.analyze.await_args.args
    assert args[1] == "audio/wav"
    assert args[3] == session.challenge.text
    # 4 words over a 2 s recording and a 0.5 s reference
    assert bounds.user.start == pytest.approx(1.0)
    assert bounds.reference.start == pytest.approx(0.25)
    assert len(player.segments) == 2


def test_analysis_failure_keeps_recording(fake_fetcher, wav_factory):
    analyze = AsyncMock(side_effect=[ProviderTimeoutError("timeout", provider="gemini"), RESULT])
    session, *_ = make_session(fake_fetcher(), wav_factory, analyze=analyze)

    async def scenario():
        await session.load_challenge()
        session.start_recording()
        recording = session.stop_recording()
        failed = await session.run_analysis()
        assert failed is None
        assert session.state == SessionState.HAS_RECORDING
        assert session.recording is recording
        assert session.error
        return await session.run_analysis()

    assert asyncio.run(scenario()) is RESULT
    assert session.state == SessionState.RESULTS


def test_analysis_needs_finished_recording(fake_fetcher, wav_factory):
    session, *_ = make_session(fake_fetcher(), wav_factory)

    async def scenario():
        await session.load_challenge()
        with pytest.raises(RecordingStateError):
            await session.run_analysis()
        session.start_recording()
        with pytest.raises(RecordingStateError):
            await session.run_analysis()

    asyncio.run(scenario())


def test_reset_recording_discards_attempt(fake_fetcher, wav_factory):
    session, recorder, *_ = make_session(fake_fetcher(), wav_factory)

    async def scenario():
        await session.load_challenge()
        session.start_recording()
        session.stop_recording()
        await session.run_analysis()

    asyncio.run(scenario())
    session.reset_recording()

    assert session.state == SessionState.READY
    assert session.recording is None
    assert session.analysis is None
    with pytest.raises(RecordingStateError):
        asyncio.run(session.play_word(0))


def test_close_releases_audio(fake_fetcher, wav_factory):
    session, recorder, *_ = make_session(fake_fetcher(), wav_factory)

    async def scenario():
        await session.load_challenge()
        session.start_recording()
        session.stop_recording()
        await session.run_analysis()

    asyncio.run(scenario())
    user_audio = session.scheduler.user_audio
    reference_audio = session.scheduler.reference_audio

    session.close()

    assert user_audio.released
    assert reference_audio.released
    recorder.abort.assert_called()


def test_new_load_releases_previous_reference(fake_fetcher, wav_factory):
    session, *_ = make_session(fake_fetcher(), wav_factory)

    async def scenario():
        await session.load_challenge()
        first = session._reference_audio
        session.level = Level.ADVANCED
        await session.load_challenge()
        return first

    first = asyncio.run(scenario())
    assert first.released
    assert not session._reference_audio.released
