"""
Motor libVLC sobre un módulo `vlc` falso.

El módulo falso se instala en `sys.modules` solo durante cada test y
`kumo.vlc_engine` se vuelve a importar encima, así los tests no necesitan
libvlc instalado. El reproductor falso registra cada llamada que recibe.
"""

import importlib
import sys
import types
from types import SimpleNamespace

import pytest

from kumo.models import Output
from kumo.surface import Surface

from tests.doubles import stream_asset


class _FakeEventManager:
    def __init__(self):
        self.handlers = {}

    def event_attach(self, event_type, handler):
        self.handlers[event_type] = handler

    def fire(self, event_type, **payload):
        handler = self.handlers.get(event_type)
        if handler is not None:
            handler(SimpleNamespace(u=SimpleNamespace(**payload)))


class _FakeMedia:
    def __init__(self, locator):
        self.locator = locator
        self.options = []
        self.parse_flags = None
        self.status = "done"
        self.duration = 60_000
        self.tracks = [SimpleNamespace(type="video"), SimpleNamespace(type="audio")]
        self.released = False
        self._events = _FakeEventManager()

    def event_manager(self):
        return self._events

    def add_option(self, option):
        self.options.append(option)

    def parse_with_options(self, flags, timeout):
        self.parse_flags = flags
        return 0

    def get_parsed_status(self):
        return self.status

    def get_duration(self):
        return self.duration

    def tracks_get(self):
        return list(self.tracks)

    def release(self):
        self.released = True


class _FakePlayer:
    def __init__(self):
        self.calls = []
        self.media = None
        self.state = "Stopped"
        self.time = 0
        self._events = _FakeEventManager()

    def _record(self, name, *args):
        self.calls.append((name,) + args)

    def names(self):
        return [c[0] for c in self.calls]

    def event_manager(self):
        return self._events

    def set_xwindow(self, xid):
        self._record("set_xwindow", xid)

    def video_set_mouse_input(self, on):
        self._record("video_set_mouse_input", on)

    def video_set_key_input(self, on):
        self._record("video_set_key_input", on)

    def audio_set_volume(self, volume):
        self._record("audio_set_volume", volume)

    def set_media(self, media):
        self._record("set_media", media)
        self.media = media

    def play(self):
        self._record("play")
        self.state = "Playing"
        return 0

    def stop(self):
        self._record("stop")
        self.state = "Stopped"

    def set_pause(self, on):
        self._record("set_pause", on)

    def release(self):
        self._record("release")

    def video_set_crop_geometry(self, geometry):
        self._record("video_set_crop_geometry", geometry)

    def video_set_aspect_ratio(self, aspect):
        self._record("video_set_aspect_ratio", aspect)

    def video_set_scale(self, scale):
        self._record("video_set_scale", scale)

    def set_time(self, ms):
        self._record("set_time", ms)
        self.time = ms

    def get_state(self):
        return self.state

    def get_rate(self):
        return 1.0

    def get_time(self):
        return self.time

    def get_length(self):
        return 60_000


class _FakeInstance:
    rejected: set = set()

    def __init__(self, options=None):
        options = list(options or [])
        if self.rejected & set(options):
            raise RuntimeError("opción no soportada")
        self.options = options
        self.players = []
        self.media = []

    def media_player_new(self):
        player = _FakePlayer()
        self.players.append(player)
        return player

    def media_new(self, locator):
        media = _FakeMedia(locator)
        self.media.append(media)
        return media


def _build_fake_vlc():
    module = types.ModuleType("vlc")
    module.EventType = SimpleNamespace(
        MediaPlayerEncounteredError="error",
        MediaPlayerBuffering="buffering",
        MediaPlayerEndReached="end-reached",
        MediaPlayerPlaying="playing",
        MediaParsedChanged="parsed",
    )
    module.MediaParseFlag = SimpleNamespace(local=1, network=2)
    module.MediaParsedStatus = SimpleNamespace(done="done", failed="failed", timeout="timeout")
    module.TrackType = SimpleNamespace(audio="audio", video="video")
    module.State = SimpleNamespace(Playing="Playing", Stopped="Stopped", Error="Error")
    module.Instance = type("Instance", (_FakeInstance,), {"rejected": set()})
    module.MediaPlayer = _FakePlayer
    module.Media = _FakeMedia
    return module


class _Layer:
    def __init__(self, w=1920, h=1080):
        self.w = w
        self.h = h
        self.on_resized = None
        self.detached = False

    def xid(self):
        return 77

    def width(self):
        return self.w

    def height(self):
        return self.h

    def resize(self, w, h):
        self.w, self.h = w, h
        if self.on_resized is not None:
            self.on_resized(w, h)

    def detach(self):
        self.detached = True


@pytest.fixture
def fake_vlc(monkeypatch):
    module = _build_fake_vlc()
    monkeypatch.setitem(sys.modules, "vlc", module)
    monkeypatch.delitem(sys.modules, "kumo.vlc_engine", raising=False)
    return module


@pytest.fixture
def vlc_engine(fake_vlc):
    return importlib.import_module("kumo.vlc_engine")


@pytest.fixture
def instance(fake_vlc):
    return fake_vlc.Instance([])


@pytest.fixture
def engine(vlc_engine, instance):
    # Los eventos se despachan en el acto: el test hace de hilo de control.
    return vlc_engine.VlcEngine(instance, post=lambda fn: fn(), volume=30)


@pytest.fixture
def player(engine, instance):
    return instance.players[0]


@pytest.fixture
def layer():
    return _Layer()


def _probe(engine, instance, asset):
    results = []
    engine.probe(asset, results.append)
    media = instance.media[-1]
    media.event_manager().fire("parsed", new_status=4)
    return media, results


class TestProbe:
    def test_streaming_probe_reports_duration(self, engine, instance):
        media, results = _probe(engine, instance, stream_asset("alpha"))

        assert media.parse_flags == 2
        assert len(results) == 1
        assert results[0].playable
        assert results[0].duration_ms == 60_000.0

    def test_media_without_video_track_is_not_playable(self, engine, instance):
        results = []
        engine.probe(stream_asset("radio"), results.append)
        media = instance.media[-1]
        media.tracks = [SimpleNamespace(type="audio")]
        media.event_manager().fire("parsed")

        assert not results[0].playable
        assert results[0].error == "sin pista de video"

    def test_failed_parse_is_not_playable(self, engine, instance):
        results = []
        engine.probe(stream_asset("roto"), results.append)
        media = instance.media[-1]
        media.status = "failed"
        media.event_manager().fire("parsed")

        assert not results[0].playable

    def test_parsed_event_is_delivered_once(self, engine, instance):
        results = []
        engine.probe(stream_asset("alpha"), results.append)
        events = instance.media[-1].event_manager()
        events.fire("parsed")
        events.fire("parsed")

        assert len(results) == 1


class TestPlayback:
    def test_attach_embeds_player_in_window(self, engine, player, layer):
        engine.attach(layer)

        assert ("set_xwindow", 77) in player.calls
        assert ("audio_set_volume", 30) in player.calls
        assert layer.on_resized is not None

    def test_start_reuses_probed_media_in_a_loop(self, engine, instance, player, layer):
        engine.attach(layer)
        asset = stream_asset("alpha")
        media, _ = _probe(engine, instance, asset)
        engine.start(asset)

        assert player.media is media
        assert "input-repeat=65535" in media.options
        assert "play" in player.names()
        assert engine.rate() == 1.0

    def test_end_reached_restarts_same_asset(self, engine, instance, player, layer):
        engine.attach(layer)
        asset = stream_asset("alpha")
        _probe(engine, instance, asset)
        engine.start(asset)
        player.calls.clear()

        player.event_manager().fire("end-reached")

        assert player.names() == ["stop", "set_media", "play"]
        assert player.media.locator == asset.locator

    def test_playing_event_forces_window_aspect_once(self, engine, player, layer):
        engine.attach(layer)
        player.calls.clear()

        player.event_manager().fire("playing")
        player.event_manager().fire("playing")

        assert player.calls.count(("video_set_aspect_ratio", "1920:1080")) == 1

        layer.resize(1280, 1024)
        assert ("video_set_aspect_ratio", "1280:1024") in player.calls

    def test_buffering_reports_stall_and_zero_rate(self, engine, instance, player, layer):
        stalls = []
        engine.on_stalled = lambda: stalls.append(True)
        engine.attach(layer)
        asset = stream_asset("alpha")
        _probe(engine, instance, asset)
        engine.start(asset)

        player.event_manager().fire("buffering", new_cache=40.0)
        assert stalls == [True]
        assert engine.rate() == 0.0

        player.event_manager().fire("playing")
        assert engine.rate() == 1.0

    def test_error_event_reaches_listener(self, engine, player):
        errors = []
        engine.on_error = errors.append
        player.event_manager().fire("error")

        assert len(errors) == 1
        assert engine.has_error()

    def test_seek_wraps_around_length(self, engine, player):
        engine.seek(61_000)
        assert ("set_time", 1_000) in player.calls


class TestDetachedEngine:
    @pytest.fixture
    def surface(self, engine, instance, layer, scheduler, settings):
        failures = []
        surface = Surface(
            Output(name="HDMI-1", index=0, x=0, y=0, w=1920, h=1080),
            engine,
            layer,
            scheduler,
            settings,
            on_failure=lambda s, asset, reason: failures.append(reason),
        )
        surface.failures = failures
        surface.play(stream_asset("alpha"))
        instance.media[-1].event_manager().fire("parsed")
        return surface

    def test_dropped_surface_never_touches_libvlc(self, surface, player, layer):
        assert "play" in player.names()
        player.calls.clear()

        surface.drop()
        events = player.event_manager()
        events.fire("playing")
        events.fire("end-reached")
        events.fire("buffering", new_cache=10.0)
        events.fire("error")
        layer.resize(1280, 1024)

        assert player.calls == []
        assert layer.on_resized is None
        assert surface.failures == []

    def test_late_metadata_after_drop_is_ignored(self, engine, instance, layer):
        results = []
        engine.attach(layer)
        engine.probe(stream_asset("alpha"), results.append)
        engine.detach_listeners()

        instance.media[-1].event_manager().fire("parsed")
        assert results == []

    def test_teardown_after_drop_still_stops_and_releases(self, surface, player, layer):
        surface.drop()
        player.calls.clear()

        surface.teardown()

        assert player.names() == ["stop", "release"]
        assert layer.detached


class TestInstance:
    def test_plugin_dir_from_project_variable(self, vlc_engine, tmp_path):
        environ = {"KUMO_VLC_PLUGIN_DIR": str(tmp_path), "VLC_PLUGIN_PATH": "/no/existe"}

        assert vlc_engine.resolve_plugin_dir(environ) == str(tmp_path)
        assert environ["VLC_PLUGIN_PATH"] == str(tmp_path)

    def test_plugin_dir_none_when_nothing_exists(self, vlc_engine, tmp_path, monkeypatch):
        monkeypatch.setattr(vlc_engine, "PLUGIN_DIR_CANDIDATES", (str(tmp_path / "nada"),))
        environ = {"VLC_PLUGIN_PATH": str(tmp_path / "tampoco")}

        assert vlc_engine.resolve_plugin_dir(environ) is None

    def test_falls_back_to_next_video_output(self, vlc_engine, fake_vlc, monkeypatch):
        monkeypatch.setattr(vlc_engine, "resolve_plugin_dir", lambda: None)
        fake_vlc.Instance.rejected = {"--vout=x11"}

        inst = vlc_engine.create_vlc_instance()

        assert "--vout=xcb_x11" in inst.options

    def test_engine_requires_instance(self, vlc_engine):
        with pytest.raises(vlc_engine.EngineError):
            vlc_engine.VlcEngine(None, post=lambda fn: fn())
