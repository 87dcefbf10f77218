"""Catálogo de videos disponibles y persistencia del último reproducido.

Primero intenta un manifiesto `entries.json` (assets remotos con varias
calidades) y, si no hay nada ahí, escanea el directorio local de videos.
"""
import os
import json
import random
from pathlib import Path

from kumo.config import VIDEO_EXTENSIONS, load_config, save_config
from kumo.log import _log
from kumo.models import Asset, Category

URL_KEYS = ("url-4K-SDR-240FPS", "url-4K-SDR", "url-1080-SDR")


def _read_json(path: Path):
    try:
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except Exception as e:
        _log(f"ERROR leyendo {path}: {e}")
        return None


class VideoCatalog:
    def __init__(self, settings, config_path: Path | None = None, rng: random.Random | None = None):
        self.settings = settings
        self.asset_dir = Path(settings.asset_dir)
        self.manifest_dir = Path(settings.manifest_dir)
        self._config_path = config_path
        self._rng = rng or random.Random()
        self._cached: list[Asset] | None = None
        self._video_names: dict[str, str] = {}
        self._categories: list[Category] = []
        self._load_metadata()

    def _load_metadata(self) -> None:
        names = _read_json(self.manifest_dir / "video_names.json")
        if isinstance(names, dict):
            self._video_names = {str(k): str(v) for k, v in names.items()}
            _log(f"Catálogo: {len(self._video_names)} nombres de video")

        cats = _read_json(self.manifest_dir / "category_names.json")
        if isinstance(cats, dict):
            for cid, info in cats.items():
                name = info.get("name", cid) if isinstance(info, dict) else str(info)
                self._categories.append(Category(id=str(cid), name=str(name)))
            self._categories.sort(key=lambda c: c.name)
            _log(f"Catálogo: {len(self._categories)} categorías")

    def invalidate(self) -> None:
        self._cached = None

    def list_assets(self) -> list[Asset]:
        if self._cached is not None:
            return self._cached

        videos = self._assets_from_manifest()
        if not videos:
            videos = self._assets_from_directory()

        videos.sort(key=lambda a: a.name)
        self._cached = videos
        streaming = sum(1 for a in videos if a.is_streaming)
        _log(f"Catálogo: {len(videos)} videos ({streaming} streaming)")
        return videos

    def _assets_from_manifest(self) -> list[Asset]:
        data = _read_json(self.manifest_dir / "entries.json")
        if not isinstance(data, dict) or not isinstance(data.get("assets"), list):
            return []

        videos = []
        for entry in data["assets"]:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            asset_id = str(entry["id"])
            name = self._video_names.get(asset_id) or entry.get("accessibilityLabel") or asset_id

            url = None
            for key in URL_KEYS:
                if isinstance(entry.get(key), str) and entry[key]:
                    url = entry[key]
                    break
            if url is None:
                continue

            cats = entry.get("categories") or []
            videos.append(
                Asset(
                    locator=url,
                    name=str(name),
                    is_streaming=True,
                    preview_locator=entry.get("previewImage") or None,
                    categories=tuple(str(c) for c in cats if c),
                    asset_id=asset_id,
                )
            )
        return videos

    def _assets_from_directory(self) -> list[Asset]:
        try:
            entries = sorted(self.asset_dir.iterdir())
        except OSError:
            return []

        videos = []
        for path in entries:
            if path.suffix.lower() not in VIDEO_EXTENSIONS or not path.is_file():
                continue
            try:
                size = path.stat().st_size
            except OSError:
                continue
            # Archivos chicos suelen ser descargas incompletas.
            if size < self.settings.min_source_bytes:
                continue
            stem = path.stem
            videos.append(
                Asset(
                    locator=str(path),
                    name=self._video_names.get(stem, stem),
                    is_streaming=False,
                    asset_id=stem,
                )
            )
        return videos

    def random_asset(self, exclude: Asset | None = None) -> Asset | None:
        videos = self.list_assets()
        if not videos:
            return None
        candidates = [a for a in videos if a != exclude] or videos
        return self._rng.choice(candidates)

    def find(self, asset_id: str) -> Asset | None:
        for asset in self.list_assets():
            if asset.asset_id == asset_id or asset.locator == asset_id:
                return asset
        return None

    def categories(self) -> list[Category]:
        return list(self._categories)

    def assets_in_category(self, category_id: str) -> list[Asset]:
        return [a for a in self.list_assets() if category_id in a.categories]

    def record_played(self, asset: Asset) -> None:
        data = load_config(self._config_path)
        if data.get("last_played") == asset.locator:
            return
        data["last_played"] = asset.locator
        save_config(data, self._config_path)

    def last_played_asset(self) -> Asset | None:
        locator = load_config(self._config_path).get("last_played")
        if not locator:
            return None
        for asset in self.list_assets():
            if asset.locator == locator or (not asset.is_streaming and os.path.abspath(asset.locator) == os.path.abspath(str(locator))):
                return asset
        return None
