from __future__ import annotations

from mapclient.controller import (
    FilterStateProvider,
    MapAppState,
    MapCollaborators,
    MapListingsController,
    MapViewSource,
)
from mapclient.dispatcher import ViewportQueryClient
from mapclient.interval import NetworkEnvironment
from mapclient.lookups import ListingLookups
from mapclient.signals import MapChrome, UiSignals
from mapclient.transport import HttpxTransport, Transport
from settings.loader import get_settings
from settings.types import ClientSettings
from telemetry.singleton import get_store


def build_controller(
    *,
    map_view: MapViewSource,
    filters: FilterStateProvider,
    collaborators: MapCollaborators,
    env: NetworkEnvironment,
    chrome: MapChrome | None = None,
    transport: Transport | None = None,
    settings: ClientSettings | None = None,
    app: MapAppState | None = None,
) -> tuple[MapListingsController, ListingLookups]:
    """
    Wire a map page: one transport shared by the listings client and the lookups.
    Must be called from inside the running event loop.
    """
    s = settings or get_settings()
    t = transport or HttpxTransport(s.endpoint.url, timeout_s=s.endpoint.timeoutS)
    client = ViewportQueryClient(
        t,
        env=env,
        settings=s,
        signals=UiSignals(chrome),
        telemetry=get_store(),
    )
    controller = MapListingsController(
        client,
        map_view=map_view,
        filters=filters,
        collaborators=collaborators,
        app=app,
    )
    return controller, ListingLookups(t, settings=s)
