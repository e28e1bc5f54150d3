"""
Network Loading Module.

This module composes the format adapters into a single entry point that
ingests every road layer and GTFS bundle of a study area into one
:class:`~transport2graph.network.Network`. Sources are processed one after
the other, roads first, so that transit stops and road intersections share
the same node registry.
"""

# Future annotations for type hints
from __future__ import annotations

# Standard library imports
import logging
from pathlib import Path
from typing import TYPE_CHECKING

# Local imports
from .network import Network
from .roads import BDTOPO_SCHEMA
from .roads import read_bdtopo
from .transportation import read_gtfs

# Type checking imports
if TYPE_CHECKING:
    from collections.abc import Iterable

    from .base import Geodesy
    from .roads import BDTopoSchema

__all__ = ["load_network"]

# Module logger configuration
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _as_paths(sources: str | Path | Iterable[str | Path] | None) -> list[Path]:
    """Normalize a single source or a collection of sources into paths."""
    if sources is None:
        return []
    if isinstance(sources, (str, Path)):
        return [Path(sources)]
    return [Path(source) for source in sources]


def load_network(
    gtfs: str | Path | Iterable[str | Path] | None = None,
    roads: str | Path | Iterable[str | Path] | None = None,
    network: Network | None = None,
    geodesy: Geodesy | None = None,
    road_geodesy: Geodesy | None = None,
    write_route_sections: bool = True,
    road_schema: BDTopoSchema = BDTOPO_SCHEMA,
) -> Network:
    """
    Ingest road layers and GTFS bundles into one network.

    Road layers are read first, then GTFS bundles, each in the given order.
    The first error aborts the whole load: the partially populated network
    must not be used.

    Parameters
    ----------
    gtfs : str, Path or iterable of them, optional
        GTFS folders or zip archives.
    roads : str, Path or iterable of them, optional
        BDTOPO road layers.
    network : Network, optional
        Network to populate. A new one is created when omitted.
    geodesy : Geodesy, optional
        Distance capability of the GTFS adapter.
    road_geodesy : Geodesy, optional
        Reprojection and distance capability of the road adapter. By default
        each layer is reprojected from its own CRS.
    write_route_sections : bool, default True
        Write aggregated route sections back to GTFS folders.
    road_schema : BDTopoSchema, default BDTOPO_SCHEMA
        Attribute names and code values of the road layers.

    Returns
    -------
    Network
        The populated network.

    See Also
    --------
    transport2graph.roads.read_bdtopo : Read one road layer.
    transport2graph.transportation.read_gtfs : Read one GTFS bundle.

    Examples
    --------
    >>> net = load_network(gtfs="data/gtfs.zip", roads="data/TRONCON_DE_ROUTE.shp")
    >>> nodes_gdf, edges_gdf = net.to_gdf()
    """
    network = network if network is not None else Network()

    for path in _as_paths(roads):
        before = (network.number_of_nodes(), network.number_of_links())
        read_bdtopo(network, path, road_geodesy, road_schema)
        _log_growth(network, path, before)

    for path in _as_paths(gtfs):
        before = (network.number_of_nodes(), network.number_of_links())
        read_gtfs(network, path, geodesy, write_route_sections)
        _log_growth(network, path, before)

    logger.info("Network loaded: %r", network)
    return network


def _log_growth(network: Network, path: Path, before: tuple[int, int]) -> None:
    logger.info(
        "%s: +%d nodes, +%d links",
        path,
        network.number_of_nodes() - before[0],
        network.number_of_links() - before[1],
    )
