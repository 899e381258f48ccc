# tests/services/test_playback.py
from soulspeak.core.notices import NoticeBoard
from soulspeak.services.playback import PlaybackCoordinator, PlaybackError


class FakeAudio:
    def __init__(self, url, on_ended, *, fail=False):
        self.url = url
        self.on_ended = on_ended
        self.fail = fail
        self.current_time = 0.0
        self.playing = False
        self.plays = 0

    def play(self):
        if self.fail:
            raise PlaybackError("unsupported codec")
        self.playing = True
        self.plays += 1

    def pause(self):
        self.playing = False


class FakeAudioFactory:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.created: dict[str, FakeAudio] = {}

    def __call__(self, url, on_ended):
        audio = FakeAudio(url, on_ended, fail=url in self.failing)
        self.created[url] = audio
        return audio


def test_starting_one_item_stops_and_rewinds_the_other():
    factory = FakeAudioFactory()
    playback = PlaybackCoordinator(factory)

    assert playback.toggle("a", "https://a.mp3") == "a"
    first = factory.created["https://a.mp3"]
    first.current_time = 12.5

    assert playback.toggle("b", "https://b.mp3") == "b"

    assert not first.playing
    assert first.current_time == 0
    assert factory.created["https://b.mp3"].playing
    assert playback.playing == "b"
    assert not playback.is_playing("a")


def test_toggling_the_playing_item_stops_it():
    factory = FakeAudioFactory()
    playback = PlaybackCoordinator(factory)
    playback.toggle("a", "https://a.mp3")

    assert playback.toggle("a", "https://a.mp3") is None

    assert playback.playing is None
    assert not factory.created["https://a.mp3"].playing


def test_elements_are_reused_across_cycles():
    factory = FakeAudioFactory()
    playback = PlaybackCoordinator(factory)

    playback.toggle("a", "https://a.mp3")
    playback.toggle("a", "https://a.mp3")
    playback.toggle("a", "https://a.mp3")

    assert len(factory.created) == 1
    assert playback.element("a").plays == 2


def test_natural_end_clears_playing():
    factory = FakeAudioFactory()
    playback = PlaybackCoordinator(factory)
    playback.toggle("a", "https://a.mp3")
    playback.toggle("b", "https://b.mp3")

    # A late end event from the previous item must not clear the current one.
    factory.created["https://a.mp3"].on_ended()
    assert playback.playing == "b"

    factory.created["https://b.mp3"].on_ended()
    assert playback.playing is None


def test_play_failure_leaves_nothing_playing_and_notifies():
    notices = NoticeBoard()
    factory = FakeAudioFactory(failing={"https://bad.mp3"})
    playback = PlaybackCoordinator(factory, notices)
    playback.toggle("a", "https://a.mp3")

    assert playback.toggle("bad", "https://bad.mp3") is None

    assert playback.playing is None
    assert not factory.created["https://a.mp3"].playing
    assert notices.latest.description == "Failed to play audio"


def test_close_stops_playback_and_releases_elements():
    factory = FakeAudioFactory()
    playback = PlaybackCoordinator(factory)
    playback.toggle("a", "https://a.mp3")

    playback.close()

    assert playback.playing is None
    assert not factory.created["https://a.mp3"].playing
    assert playback.element("a") is None
