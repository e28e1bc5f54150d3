"""
Base Module for Network Ingestion.

This module provides the foundational pieces shared by every ingestion
adapter of the transport2graph package: the error taxonomy raised when a
source cannot be turned into a valid network, and the geodesy capability
used to reproject projected coordinates and to measure distances on the
ellipsoid. Adapters receive the geodesy capability as an argument so that
graph construction and schedule aggregation remain testable without a
coordinate reference system database.
"""

# Future annotations for type hints
from __future__ import annotations

# Standard library imports
import logging
import math
from abc import ABC
from abc import abstractmethod
from typing import TYPE_CHECKING

# Third-party imports
from pyproj import Geod
from pyproj import Transformer
from pyproj.exceptions import ProjError

if TYPE_CHECKING:
    from pyproj import CRS

__all__ = [
    "LAMBERT93_CRS",
    "WGS84_CRS",
    "DuplicateIdError",
    "Geodesy",
    "GeometryTransformError",
    "LinkNotFoundError",
    "MalformedRowError",
    "MissingFileError",
    "MissingHeaderError",
    "NetworkImportError",
    "NodeNotFoundError",
    "PyprojGeodesy",
    "UnknownReferenceError",
]

# Module logger configuration
logger = logging.getLogger(__name__)

# Geographic coordinates of every node
WGS84_CRS = "EPSG:4326"

# Projected system of the BDTOPO road layers
LAMBERT93_CRS = "EPSG:2154"


# =============================================================================
# ERROR TAXONOMY
# =============================================================================


class NetworkImportError(Exception):
    """
    Base class of every fatal ingestion error.

    The optional location attributes identify the offending source file, its
    1-based line (the header row being line 1) and the field involved. They
    are rendered into the message so that a single ``str(exc)`` is enough to
    locate the problem.

    Parameters
    ----------
    message : str
        Human readable description of the problem.
    file : str, optional
        Name of the source file being ingested.
    line : int, optional
        1-based line (or feature number) in ``file``.
    field : str, optional
        Name of the column or attribute involved.

    Examples
    --------
    >>> err = MalformedRowError("not a number: 'abc'", file="stops.txt", line=4, field="stop_lat")
    >>> str(err)
    "stops.txt, line 4, field 'stop_lat': not a number: 'abc'"
    """

    def __init__(
        self,
        message: str,
        *,
        file: str | None = None,
        line: int | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.file = file
        self.line = line
        self.field = field

    def with_location(
        self,
        file: str | None = None,
        line: int | None = None,
    ) -> NetworkImportError:
        """Fill in the file and line when the raising code did not know them."""
        if self.file is None:
            self.file = file
        if self.line is None:
            self.line = line
        return self

    def __str__(self) -> str:
        location = []
        if self.file is not None:
            location.append(self.file)
        if self.line is not None:
            location.append(f"line {self.line}")
        if self.field is not None:
            location.append(f"field {self.field!r}")
        if not location:
            return self.message
        return f"{', '.join(location)}: {self.message}"


class MissingFileError(NetworkImportError, FileNotFoundError):
    """A required source file does not exist."""


class MissingHeaderError(NetworkImportError, ValueError):
    """A required column is absent from a source file."""


class MalformedRowError(NetworkImportError, ValueError):
    """A row has the wrong number of fields or an unparsable value."""


class UnknownReferenceError(NetworkImportError, KeyError):
    """A record references an id that has not been registered."""


class DuplicateIdError(NetworkImportError, ValueError):
    """An id is registered twice."""


class NodeNotFoundError(NetworkImportError, KeyError):
    """Lookup of a node id that is not in the network."""


class LinkNotFoundError(NetworkImportError, KeyError):
    """Lookup of a link id that is not in the network."""


class GeometryTransformError(NetworkImportError, ValueError):
    """
    Reprojection of a coordinate failed.

    Parameters
    ----------
    message : str
        Description of the failure.
    coordinate : tuple[float, float]
        The offending source coordinate.
    **location : str or int or None
        ``file``, ``line`` and ``field`` forwarded to :class:`NetworkImportError`.
    """

    def __init__(
        self,
        message: str,
        coordinate: tuple[float, float],
        **location: str | int | None,
    ) -> None:
        full_message = f"{message} at coordinate {coordinate}"
        super().__init__(full_message, **location)  # type: ignore[arg-type]
        self.coordinate = coordinate


# =============================================================================
# GEODESY CAPABILITY
# =============================================================================


class Geodesy(ABC):
    """
    Abstract coordinate capability injected into the ingestion adapters.

    Implementations convert source coordinates to WGS84 longitude/latitude
    and measure the distance in metres between two geographic coordinates.

    See Also
    --------
    PyprojGeodesy : Reprojection and ellipsoidal distances backed by pyproj.
    transport2graph.utils.SphericalGeodesy : Identity reprojection and haversine distance.
    """

    @abstractmethod
    def reproject(self, x: float, y: float) -> tuple[float, float]:
        """
        Convert a source coordinate to ``(lon, lat)`` in degrees.

        Parameters
        ----------
        x, y : float
            Coordinate expressed in the source reference system.

        Returns
        -------
        tuple[float, float]
            Longitude and latitude in WGS84 degrees.
        """

    @abstractmethod
    def geodesic_distance(self, a: tuple[float, float], b: tuple[float, float]) -> float:
        """
        Distance in metres between two ``(lon, lat)`` coordinates.

        Parameters
        ----------
        a, b : tuple[float, float]
            Longitude and latitude in WGS84 degrees.

        Returns
        -------
        float
            Distance in metres.
        """


class PyprojGeodesy(Geodesy):
    """
    Geodesy capability backed by a pyproj transformer and ellipsoid.

    Parameters
    ----------
    source_crs : str, int or pyproj.CRS, default "EPSG:2154"
        Reference system of the incoming coordinates. Lambert-93 by default,
        the system BDTOPO layers are delivered in.
    ellps : str, default "WGS84"
        Ellipsoid used for geodesic distances.

    Examples
    --------
    >>> geodesy = PyprojGeodesy("EPSG:2154")
    >>> lon, lat = geodesy.reproject(652469.0, 6862035.0)
    >>> round(lon, 3), round(lat, 3)
    (2.352, 48.857)
    """

    def __init__(self, source_crs: str | int | CRS = LAMBERT93_CRS, ellps: str = "WGS84") -> None:
        self.source_crs = source_crs
        self._transformer = Transformer.from_crs(source_crs, WGS84_CRS, always_xy=True)
        self._geod = Geod(ellps=ellps)

    def reproject(self, x: float, y: float) -> tuple[float, float]:
        """Transform one coordinate to WGS84, raising on any projection failure."""
        try:
            lon, lat = self._transformer.transform(x, y, errcheck=True)
        except ProjError as exc:
            msg = f"Cannot reproject from {self.source_crs} to {WGS84_CRS}"
            raise GeometryTransformError(msg, (x, y)) from exc

        if not (math.isfinite(lon) and math.isfinite(lat)):
            msg = f"Reprojection from {self.source_crs} produced a non-finite result"
            raise GeometryTransformError(msg, (x, y))
        return lon, lat

    def geodesic_distance(self, a: tuple[float, float], b: tuple[float, float]) -> float:
        """Distance on the ellipsoid between two WGS84 coordinates."""
        _, _, distance = self._geod.inv(a[0], a[1], b[0], b[1])
        return float(distance)
