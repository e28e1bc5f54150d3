"""
Zone Ingestion Module.

Zones are the polygons (for instance IRIS or communes) in which trip demand
is generated. They are not part of the network graph: this module only
reads them into :class:`Zone` records keyed by id, each carrying its shape
and centroid in WGS84.
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
from shapely.geometry import MultiPolygon
from shapely.geometry import Polygon

# Local imports
from .base import WGS84_CRS
from .base import DuplicateIdError
from .base import MalformedRowError
from .base import MissingFileError
from .base import MissingHeaderError
from .utils import _is_blank
from .utils import _row_context

# Type checking imports
if TYPE_CHECKING:
    from shapely.geometry import Point

__all__ = ["Zone", "read_zones", "zones_from_gdf"]

# Module logger configuration
logger = logging.getLogger(__name__)

# Id attribute of the zone layers
DEFAULT_ZONE_ID_COLUMN = "objectid"


@dataclass(frozen=True)
class Zone:
    """
    A demand zone.

    Parameters
    ----------
    id : str
        Zone identifier.
    shape : shapely.geometry.Polygon or shapely.geometry.MultiPolygon
        Zone outline in WGS84.
    centroid : shapely.geometry.Point
        Centroid of ``shape``.
    """

    id: str
    shape: Polygon | MultiPolygon
    centroid: Point


def _zone_id(value: object) -> str:
    """Format an id read from a layer; integral floats lose their decimal part."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def zones_from_gdf(
    gdf: gpd.GeoDataFrame,
    id_column: str = DEFAULT_ZONE_ID_COLUMN,
    *,
    file: str | None = None,
) -> dict[str, Zone]:
    """
    Build zones from the polygons of a GeoDataFrame.

    The layer is reprojected to WGS84 when it carries another CRS. Features
    without id are skipped with a warning.

    Parameters
    ----------
    gdf : geopandas.GeoDataFrame
        Polygon layer.
    id_column : str, default "objectid"
        Attribute holding the zone id.
    file : str, optional
        Source name reported in errors.

    Returns
    -------
    dict[str, Zone]
        Zones keyed by id, in layer order.

    Raises
    ------
    MissingHeaderError
        If ``id_column`` is absent.
    DuplicateIdError
        If two features share an id.
    MalformedRowError
        If a geometry is missing or not polygonal.

    Examples
    --------
    >>> zones = zones_from_gdf(gpd.GeoDataFrame(
    ...     {"objectid": [1]}, geometry=[Polygon([(0, 0), (1, 0), (1, 1)])], crs="EPSG:4326",
    ... ))
    >>> list(zones)
    ['1']
    """
    if id_column not in gdf.columns:
        msg = "required attribute is missing"
        raise MissingHeaderError(msg, file=file, field=id_column)

    if gdf.crs is not None and not gdf.crs.equals(WGS84_CRS):
        gdf = gdf.to_crs(WGS84_CRS)

    zones: dict[str, Zone] = {}
    rows = zip(gdf[id_column], gdf.geometry, strict=True)
    for line, (raw_id, shape) in enumerate(rows, start=1):
        if _is_blank(raw_id):
            logger.warning(
                "Skipping zone feature %d of %s: no %s", line, file or "layer", id_column,
            )
            continue

        with _row_context(file, line):
            zone_id = _zone_id(raw_id)
            if zone_id in zones:
                msg = f"zone {zone_id!r} is defined twice"
                raise DuplicateIdError(msg, field=id_column)
            if not isinstance(shape, (Polygon, MultiPolygon)) or shape.is_empty:
                kind = "missing" if shape is None else shape.geom_type
                msg = f"expected a Polygon or MultiPolygon, got {kind}"
                raise MalformedRowError(msg, field="geometry")
            zones[zone_id] = Zone(zone_id, shape, shape.centroid)

    logger.info("Zones loaded from %s: %d", file or "layer", len(zones))
    return zones


def read_zones(
    path: str | Path,
    id_column: str = DEFAULT_ZONE_ID_COLUMN,
    **kwargs: Any,  # noqa: ANN401
) -> dict[str, Zone]:
    """
    Read a zone layer from disk.

    Parameters
    ----------
    path : str or Path
        Polygon layer readable by :func:`geopandas.read_file`.
    id_column : str, default "objectid"
        Attribute holding the zone id.
    **kwargs : Any
        Forwarded to :func:`geopandas.read_file`.

    Returns
    -------
    dict[str, Zone]
        Zones keyed by id.

    Raises
    ------
    MissingFileError
        If ``path`` does not exist.

    See Also
    --------
    zones_from_gdf : Build zones from an in-memory layer.
    """
    path = Path(path)
    if not path.exists():
        msg = f"zone layer {str(path)!r} does not exist"
        raise MissingFileError(msg, file=path.name)
    return zones_from_gdf(gpd.read_file(path, **kwargs), id_column, file=path.name)
