"""
Road Network Ingestion Module.

This module reads BDTOPO road layers into a
:class:`~transport2graph.network.Network`. Each road segment open to free
traffic becomes one link between the nodes at its two ends; segments of a
multi-part geometry become one link each. Coordinates are reprojected to
WGS84 through an injected :class:`~transport2graph.base.Geodesy`, and nodes
are identified by their reprojected ``"lon:lat"`` so that segments meeting at
an intersection share the same node.
"""

# Future annotations for type hints
from __future__ import annotations

# Standard library imports
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from typing import Any

# Third-party imports
import geopandas as gpd
from shapely.geometry import LineString
from shapely.geometry import MultiLineString

# Local imports
from .base import LAMBERT93_CRS
from .base import MalformedRowError
from .base import MissingFileError
from .base import MissingHeaderError
from .base import PyprojGeodesy
from .derivation import is_free_access
from .derivation import road_direction
from .derivation import road_link
from .network import Node
from .utils import _parse_float
from .utils import _parse_int
from .utils import _parse_text
from .utils import _row_context
from .utils import line_length

# Type checking imports
if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry

    from .base import Geodesy
    from .network import Network

__all__ = ["BDTOPO_SCHEMA", "BDTopoSchema", "add_road_features", "read_bdtopo"]

# Module logger configuration
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BDTopoSchema:
    """
    Attribute names and code values of a BDTOPO road layer.

    Parameters
    ----------
    speed : str, default "VIT_MOY_VL"
        Mean vehicle speed in km/h.
    access : str, default "ACCES_VL"
        Access restriction code.
    direction : str, default "SENS"
        Traffic direction code.
    lanes : str, default "NB_VOIES"
        Number of lanes.
    free_access : str, default "Libre"
        Access code of segments open to free traffic.
    bidirectional : str, default "Double sens"
        Direction code of two-way segments.
    reverse : str, default "Sens inverse"
        Direction code of segments traversed against their digitized order.
        Any other direction code means forward.
    """

    speed: str = "VIT_MOY_VL"
    access: str = "ACCES_VL"
    direction: str = "SENS"
    lanes: str = "NB_VOIES"
    free_access: str = "Libre"
    bidirectional: str = "Double sens"
    reverse: str = "Sens inverse"

    @property
    def columns(self) -> tuple[str, str, str, str]:
        """Attribute columns required on the layer."""
        return (self.speed, self.access, self.direction, self.lanes)


BDTOPO_SCHEMA = BDTopoSchema()


def _line_parts(geometry: BaseGeometry | None) -> list[LineString]:
    """Split a road geometry into its line parts."""
    if geometry is None or geometry.is_empty:
        msg = "missing or empty geometry"
        raise MalformedRowError(msg, field="geometry")
    if isinstance(geometry, LineString):
        return [geometry]
    if isinstance(geometry, MultiLineString):
        return list(geometry.geoms)
    msg = f"expected a LineString or MultiLineString, got {geometry.geom_type}"
    raise MalformedRowError(msg, field="geometry")


def _endpoint_node(network: Network, coordinate: tuple[float, float]) -> str:
    """Return the id of the node at ``coordinate``, registering it when new."""
    lon, lat = coordinate
    node_id = f"{lon}:{lat}"
    if not network.contains_node(node_id):
        network.add_node(Node(node_id, lon, lat))
    return node_id


def add_road_features(
    network: Network,
    gdf: gpd.GeoDataFrame,
    geodesy: Geodesy | None = None,
    schema: BDTopoSchema = BDTOPO_SCHEMA,
    *,
    file: str | None = None,
) -> Network:
    """
    Add the road segments of a GeoDataFrame to a network.

    Features whose access code is not the free access value are skipped.
    For every other feature, speed, lane count and direction must be set.
    Errors report the 1-based feature number as line.

    Parameters
    ----------
    network : Network
        Network receiving the nodes and links.
    gdf : geopandas.GeoDataFrame
        Road segments with the attributes named by ``schema``.
    geodesy : Geodesy, optional
        Reprojection and distance capability. Defaults to a
        :class:`~transport2graph.base.PyprojGeodesy` from the layer CRS, or
        from Lambert-93 when the layer has none.
    schema : BDTopoSchema, default BDTOPO_SCHEMA
        Attribute names and code values.
    file : str, optional
        Source name reported in errors.

    Returns
    -------
    Network
        The populated ``network``.

    Raises
    ------
    MissingHeaderError
        If an attribute column is absent.
    MalformedRowError
        If an ingested feature has a null or unparsable attribute, or a
        geometry that is not linear.
    GeometryTransformError
        If a coordinate cannot be reprojected.

    See Also
    --------
    read_bdtopo : Read a road layer from disk.

    Examples
    --------
    >>> roads = gpd.GeoDataFrame(
    ...     {"VIT_MOY_VL": [50], "ACCES_VL": ["Libre"], "SENS": ["Double sens"], "NB_VOIES": [2]},
    ...     geometry=[LineString([(652000, 6862000), (652100, 6862000)])],
    ...     crs="EPSG:2154",
    ... )
    >>> add_road_features(Network(), roads)
    <Network: 2 nodes, 1 links>
    """
    for column in schema.columns:
        if column not in gdf.columns:
            msg = "required attribute is missing"
            raise MissingHeaderError(msg, file=file, field=column)

    if geodesy is None:
        geodesy = PyprojGeodesy(gdf.crs if gdf.crs is not None else LAMBERT93_CRS)

    rows = zip(
        gdf[schema.access],
        gdf[schema.speed],
        gdf[schema.lanes],
        gdf[schema.direction],
        gdf.geometry,
        strict=True,
    )

    n_links = n_skipped = 0
    for line, (access, speed, lanes, direction, geometry) in enumerate(rows, start=1):
        if not is_free_access(access, schema.free_access):
            logger.debug("Skipping feature %d of %s: access %r", line, file or "layer", access)
            n_skipped += 1
            continue

        with _row_context(file, line):
            speed_kmh = _parse_float(speed, field=schema.speed)
            n_lanes = _parse_int(lanes, field=schema.lanes)
            code = _parse_text(direction, field=schema.direction)
            road_dir = road_direction(code, schema.bidirectional, schema.reverse)

            for part in _line_parts(geometry):
                coords = [geodesy.reproject(x, y) for x, y, *_ in part.coords]
                link = road_link(
                    _endpoint_node(network, coords[0]),
                    _endpoint_node(network, coords[-1]),
                    speed_kmh=speed_kmh,  # type: ignore[arg-type]
                    lanes=n_lanes,
                    direction=road_dir,
                    length=line_length(coords, geodesy.geodesic_distance),
                )
                network.add_link(link)
                n_links += 1

    logger.info(
        "Road features loaded from %s: %d links, %d features skipped for access",
        file or "layer",
        n_links,
        n_skipped,
    )
    return network


def read_bdtopo(
    network: Network,
    path: str | Path,
    geodesy: Geodesy | None = None,
    schema: BDTopoSchema = BDTOPO_SCHEMA,
    **kwargs: Any,  # noqa: ANN401
) -> Network:
    """
    Read a BDTOPO road layer into a network.

    Parameters
    ----------
    network : Network
        Network receiving the nodes and links.
    path : str or Path
        Road layer readable by :func:`geopandas.read_file`, typically the
        ``TRONCON_DE_ROUTE`` shapefile.
    geodesy : Geodesy, optional
        Reprojection and distance capability, see :func:`add_road_features`.
    schema : BDTopoSchema, default BDTOPO_SCHEMA
        Attribute names and code values.
    **kwargs : Any
        Forwarded to :func:`geopandas.read_file`.

    Returns
    -------
    Network
        The populated ``network``.

    Raises
    ------
    MissingFileError
        If ``path`` does not exist.
    """
    path = Path(path)
    if not path.exists():
        msg = f"road layer {str(path)!r} does not exist"
        raise MissingFileError(msg, file=path.name)

    gdf = gpd.read_file(path, **kwargs)
    return add_road_features(network, gdf, geodesy, schema, file=path.name)
