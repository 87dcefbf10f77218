import os
from typing import Callable

import vlc

from kumo.engine import EngineError, PlaybackEngine
from kumo.log import _log
from kumo.models import Asset, ProbeResult


PLUGIN_DIR_CANDIDATES = (
    "/usr/lib/x86_64-linux-gnu/vlc/plugins",
    "/usr/lib/aarch64-linux-gnu/vlc/plugins",
    "/usr/lib/arm-linux-gnueabihf/vlc/plugins",
    "/usr/lib/vlc/plugins",
    "/usr/lib64/vlc/plugins",
    "/usr/local/lib/vlc/plugins",
    "/snap/vlc/current/usr/lib/vlc/plugins",
)


def resolve_plugin_dir(environ=None) -> str | None:
    """Directorio de plugins de libVLC.

    Orden: `KUMO_VLC_PLUGIN_DIR`, `VLC_PLUGIN_PATH` y luego las rutas
    conocidas de cada distro. El resultado se exporta en `VLC_PLUGIN_PATH`
    para que libVLC lo vea al crear la instancia.
    """
    environ = os.environ if environ is None else environ
    for key in ("KUMO_VLC_PLUGIN_DIR", "VLC_PLUGIN_PATH"):
        value = (environ.get(key) or "").strip()
        if value and os.path.isdir(value):
            environ["VLC_PLUGIN_PATH"] = value
            return value
    found = next((p for p in PLUGIN_DIR_CANDIDATES if os.path.isdir(p)), None)
    if found:
        environ["VLC_PLUGIN_PATH"] = found
    return found


def create_vlc_instance() -> vlc.Instance:
    """Crea la instancia global de libVLC probando varias combinaciones de opciones."""
    plugin_dir = resolve_plugin_dir()

    base_options = [
        "--avcodec-hw=any",
        "--no-video-title-show",
        "--video-title-timeout=0",
        "--no-osd",
        "--no-snapshot-preview",
        "--quiet",
        "--file-caching=300",
        "--network-caching=1500",
        "--drop-late-frames",
        "--skip-frames",
        "--no-sub-autodetect-file",
        "--no-spu",
        "--no-disable-screensaver",
        "--no-inhibit",
    ]

    plugin_opt = [f"--plugin-path={plugin_dir}"] if plugin_dir else []
    if plugin_dir:
        _log(f"libVLC: plugins en {plugin_dir}")
    else:
        _log("libVLC: sin directorio de plugins conocido, se usa el default")

    candidate_sets: list[list[str]] = []
    for vout in ("x11", "xcb_x11"):
        candidate_sets.append(base_options + plugin_opt + [f"--vout={vout}"])
    candidate_sets += [base_options + plugin_opt, base_options, []]

    last_err: str | None = None
    for opts in candidate_sets:
        try:
            inst = vlc.Instance(opts)
        except Exception as e:
            last_err = f"{type(e).__name__}: {e} (opts={opts})"
            _log(f"ERROR creando instancia VLC: {last_err}")
            continue
        if inst is None:
            last_err = f"vlc.Instance devolvió None (opts={opts})"
            continue
        vout = next((o.split("=", 1)[1] for o in opts if o.startswith("--vout=")), "auto")
        _log(f"libVLC: instancia creada OK (vout={vout})")
        return inst

    raise EngineError(f"No se pudo inicializar libVLC. {last_err or ''}")


class VlcEngine(PlaybackEngine):
    """Motor libVLC incrustado en una WallpaperWindow.

    Los eventos de libVLC llegan en hilos propios de VLC: solo se guardan
    flags y se reenvía el trabajo al hilo de control con `post`. Nunca se
    llama a libVLC desde dentro de un callback de eventos.
    """

    def __init__(self, instance: vlc.Instance, post: Callable[[Callable[[], None]], None], volume: int = 0, probe_timeout_ms: int = 8000):
        super().__init__()
        if instance is None:
            raise EngineError("libVLC no está inicializado (instance=None)")
        self._instance = instance
        self._post = post
        self._volume = max(0, min(100, int(volume)))
        self._probe_timeout_ms = int(probe_timeout_ms)

        self._player: vlc.MediaPlayer | None = instance.media_player_new()
        self._media: vlc.Media | None = None
        self._probe_media: vlc.Media | None = None
        self._asset: Asset | None = None
        self._layer = None
        self._error = False
        self._buffering = False
        self._restart_in_progress = False
        self._last_aspect: str | None = None
        self._detached = False
        self._attach_events()

    def _attach_events(self):
        em = self._player.event_manager()
        em.event_attach(vlc.EventType.MediaPlayerEncounteredError, self._on_vlc_error)
        em.event_attach(vlc.EventType.MediaPlayerBuffering, self._on_vlc_buffering)
        em.event_attach(vlc.EventType.MediaPlayerEndReached, self._on_vlc_end)
        em.event_attach(vlc.EventType.MediaPlayerPlaying, self._on_vlc_playing)

    # Callbacks en hilos de libVLC

    def _on_vlc_error(self, event):
        self._error = True
        self._post(lambda: self._emit_error("libVLC reportó un error de reproducción"))

    def _on_vlc_buffering(self, event):
        try:
            cache = float(event.u.new_cache)
        except Exception:
            cache = 100.0
        stalled = cache < 100.0
        self._buffering = stalled
        if stalled:
            self._post(self._emit_stalled)

    def _on_vlc_end(self, event):
        if self._detached:
            return
        self._post(lambda: self._restart("end-reached"))

    def _on_vlc_playing(self, event):
        self._buffering = False
        if self._detached:
            return
        self._post(self._apply_aspect)

    # Hilo de control

    def attach(self, layer) -> None:
        self._layer = layer
        xid = int(layer.xid())
        if xid == 0:
            raise EngineError("la ventana todavía no tiene XID")
        self._player.set_xwindow(xid)
        self._player.video_set_mouse_input(False)
        self._player.video_set_key_input(False)
        self._player.audio_set_volume(self._volume)
        layer.on_resized = lambda w, h: self._apply_aspect(force=True)
        _log(f"VLC: set_xwindow OK xid={xid}")

    def detach_listeners(self) -> None:
        """Tras soltarlo no se vuelve a tocar libVLC hasta stop/release."""
        super().detach_listeners()
        self._detached = True
        if self._layer is not None:
            self._layer.on_resized = None

    def _new_media(self, locator: str) -> vlc.Media:
        media = self._instance.media_new(locator)
        if media is None:
            raise EngineError(f"libVLC no pudo abrir {locator}")
        return media

    def probe(self, asset: Asset, callback: Callable[[ProbeResult], None]) -> None:
        media = self._new_media(asset.locator)
        self._probe_media = media
        fired = {"done": False}

        def _on_parsed(event):
            if fired["done"]:
                return
            fired["done"] = True
            self._post(lambda: self._finish_probe(media, callback))

        media.event_manager().event_attach(vlc.EventType.MediaParsedChanged, _on_parsed)
        flags = vlc.MediaParseFlag.network if asset.is_streaming else vlc.MediaParseFlag.local
        rc = media.parse_with_options(flags, self._probe_timeout_ms)
        if rc == -1:
            raise EngineError("parse_with_options rechazado")

    def _finish_probe(self, media: vlc.Media, callback: Callable[[ProbeResult], None]) -> None:
        if self._detached or media is not self._probe_media:
            return
        status = media.get_parsed_status()
        if status != vlc.MediaParsedStatus.done:
            callback(ProbeResult(playable=False, error=f"parse status {status}"))
            return

        duration = media.get_duration()
        has_video = True
        try:
            tracks = list(media.tracks_get() or [])
            if tracks:
                has_video = any(t.type == vlc.TrackType.video for t in tracks)
        except Exception as e:
            _log(f"VLC: no se pudieron listar pistas: {e}")

        callback(
            ProbeResult(
                playable=has_video,
                duration_ms=float(duration) if duration and duration > 0 else None,
                error=None if has_video else "sin pista de video",
            )
        )

    def _set_media(self, asset: Asset, reuse_probe: bool = False) -> None:
        if reuse_probe and self._probe_media is not None:
            media = self._probe_media
        else:
            media = self._new_media(asset.locator)
        media.add_option("input-repeat=65535")
        media.add_option("no-video-title-show")
        self._player.set_media(media)
        self._media = media

    def start(self, asset: Asset) -> None:
        if self._player is None:
            raise EngineError("motor liberado")
        self._set_media(asset, reuse_probe=True)
        self._asset = asset
        self._error = False
        self._buffering = False
        self._last_aspect = None
        rc = self._player.play()
        _log(f"VLC play() -> {rc}")
        if rc == -1:
            raise EngineError("libVLC rechazó play()")
        self._player.audio_set_volume(self._volume)

    def _restart(self, reason: str) -> None:
        if self._detached or self._player is None or self._asset is None or self._restart_in_progress:
            return
        self._restart_in_progress = True
        _log(f"VLC: reinicio por {reason}")
        try:
            self._player.stop()
            self._set_media(self._asset)
            self._player.play()
        except EngineError as e:
            self._emit_error(str(e))
        finally:
            self._restart_in_progress = False

    def _apply_aspect(self, force: bool = False) -> None:
        if self._detached or self._player is None or self._layer is None:
            return
        w, h = int(self._layer.width()), int(self._layer.height())
        if w <= 0 or h <= 0:
            return
        aspect = f"{w}:{h}"
        if aspect == self._last_aspect and not force:
            return
        # Forzar el aspect ratio de la ventana para evitar barras negras.
        self._player.video_set_crop_geometry(None)
        self._player.video_set_aspect_ratio(aspect)
        self._player.video_set_scale(0)
        self._last_aspect = aspect

    def pause(self) -> None:
        if self._player is not None:
            self._player.set_pause(1)

    def resume(self) -> None:
        if self._player is None:
            return
        self._player.set_pause(0)
        self._player.play()

    def stop(self) -> None:
        if self._player is not None:
            self._player.stop()
        self._asset = None
        self._probe_media = None

    def release(self) -> None:
        if self._player is not None:
            self._player.release()
            self._player = None
        if self._media is not None:
            self._media.release()
            self._media = None
        self._probe_media = None
        self._layer = None

    def rate(self) -> float:
        if self._player is None or self._buffering:
            return 0.0
        if self._player.get_state() != vlc.State.Playing:
            return 0.0
        return float(self._player.get_rate() or 0.0)

    def position_ms(self) -> int:
        if self._player is None:
            return 0
        return int(self._player.get_time() or 0)

    def seek(self, position_ms: int) -> None:
        if self._player is None:
            raise EngineError("motor liberado")
        length = int(self._player.get_length() or 0)
        if length > 0:
            position_ms = position_ms % length
        self._player.set_time(int(position_ms))

    def has_error(self) -> bool:
        if self._player is None:
            return False
        return self._error or self._player.get_state() == vlc.State.Error
