from kumo.log import _log
from kumo.models import Asset
from kumo.session import Session


class ResumePolicy:
    """Decide qué asset reproducir después de una recreación.

    Prioridad: asset pendiente > asset actual > uno al azar del catálogo.
    """

    def __init__(self, catalog):
        self.catalog = catalog

    def choose(self, session: Session) -> Asset | None:
        if session.pending_asset is not None:
            asset = session.pending_asset
            session.pending_asset = None
            _log(f"Resume: asset pendiente {asset.short_name}")
            return asset
        if session.current_asset is not None:
            _log(f"Resume: asset actual {session.current_asset.short_name}")
            return session.current_asset
        asset = self.fallback()
        if asset is None:
            _log("Resume: no hay videos disponibles; la sesión queda inactiva")
        else:
            _log(f"Resume: sin asset previo, al azar {asset.short_name}")
        return asset

    def fallback(self, exclude: Asset | None = None) -> Asset | None:
        """Asset al azar; evita `exclude` si el catálogo tiene alternativas."""
        return self.catalog.random_asset(exclude=exclude)
