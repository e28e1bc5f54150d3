"""
Core Utilities Module.

This module provides the numerical helpers shared by every part of the
transport2graph package: great-circle distances between geographic
coordinates, polyline lengths, a spherical geodesy capability for sources
that are already expressed in longitude/latitude, and the strict value
parsers used by the ingestion adapters so that a malformed cell is reported
with its exact location instead of being silently coerced.
"""

# Future annotations for type hints
from __future__ import annotations

# Standard library imports
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING
from typing import overload

# Third-party imports
import numpy as np
import pandas as pd

# Local imports
from .base import Geodesy
from .base import MalformedRowError
from .base import NetworkImportError

# Type checking imports
if TYPE_CHECKING:
    from collections.abc import Callable
    from collections.abc import Iterator
    from collections.abc import Sequence

    from numpy.typing import ArrayLike
    from numpy.typing import NDArray

__all__ = [
    "EARTH_RADIUS_M",
    "SphericalGeodesy",
    "haversine_distance",
    "line_length",
]

# Module logger configuration
logger = logging.getLogger(__name__)

# Mean Earth radius used by the haversine formula
EARTH_RADIUS_M = 6_371_000.0


# =============================================================================
# GREAT-CIRCLE DISTANCES
# =============================================================================


@overload
def haversine_distance(lon1: float, lat1: float, lon2: float, lat2: float) -> float: ...


@overload
def haversine_distance(
    lon1: ArrayLike,
    lat1: ArrayLike,
    lon2: ArrayLike,
    lat2: ArrayLike,
) -> NDArray[np.float64]: ...


def haversine_distance(
    lon1: ArrayLike,
    lat1: ArrayLike,
    lon2: ArrayLike,
    lat2: ArrayLike,
) -> float | NDArray[np.float64]:
    """
    Great-circle distance in metres between geographic coordinates.

    This function implements the haversine formula on a sphere of radius
    6 371 000 m. All inputs are degrees and are converted to radians first.
    Scalars produce a ``float``; array inputs are broadcast element-wise.

    Parameters
    ----------
    lon1, lat1 : float or array-like
        Longitude and latitude of the first point(s), in degrees.
    lon2, lat2 : float or array-like
        Longitude and latitude of the second point(s), in degrees.

    Returns
    -------
    float or numpy.ndarray
        Distance(s) in metres.

    See Also
    --------
    line_length : Length of a polyline of geographic coordinates.

    Examples
    --------
    >>> haversine_distance(2.3522, 48.8566, -0.1276, 51.5072) // 1000
    343.0
    >>> haversine_distance(2.0, 48.0, 2.0, 48.0)
    0.0
    """
    lon1_r, lat1_r, lon2_r, lat2_r = (
        np.radians(np.asarray(v, dtype=float)) for v in (lon1, lat1, lon2, lat2)
    )

    dlat = lat2_r - lat1_r
    dlon = lon2_r - lon1_r

    a = np.sin(dlat / 2) ** 2 + np.cos(lat1_r) * np.cos(lat2_r) * np.sin(dlon / 2) ** 2
    # Rounding can push antipodal inputs marginally above 1
    a = np.clip(a, 0.0, 1.0)
    distance = 2 * EARTH_RADIUS_M * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    if np.ndim(distance) == 0:
        return float(distance)
    return distance


def line_length(
    coords: Sequence[tuple[float, float]] | NDArray[np.float64],
    distance: Callable[[tuple[float, float], tuple[float, float]], float] | None = None,
) -> float:
    """
    Length in metres of a polyline of ``(lon, lat)`` coordinates.

    Consecutive segment lengths are summed. Without a ``distance`` callable
    the haversine formula is applied to all segments at once.

    Parameters
    ----------
    coords : sequence of tuple[float, float]
        Ordered longitude/latitude pairs in degrees.
    distance : callable, optional
        Function ``(a, b) -> metres`` such as
        :meth:`transport2graph.base.Geodesy.geodesic_distance`.

    Returns
    -------
    float
        Total length, ``0.0`` for fewer than two coordinates.

    Examples
    --------
    >>> straight = [(0.0, 0.0), (0.0, 1.0), (0.0, 2.0)]
    >>> line_length(straight) == 2 * line_length(straight[:2])
    True
    """
    points = np.asarray(coords, dtype=float)
    if len(points) < 2:
        return 0.0

    if distance is None:
        segments = haversine_distance(points[:-1, 0], points[:-1, 1], points[1:, 0], points[1:, 1])
        return float(np.sum(segments))

    return float(
        sum(
            distance((a[0], a[1]), (b[0], b[1]))
            for a, b in zip(points[:-1], points[1:], strict=True)
        ),
    )


class SphericalGeodesy(Geodesy):
    """
    Geodesy capability for sources already expressed in WGS84 degrees.

    Reprojection is the identity and distances use :func:`haversine_distance`.
    This is the default capability of the GTFS adapter, whose stops carry
    longitude/latitude directly.

    Examples
    --------
    >>> geodesy = SphericalGeodesy()
    >>> geodesy.reproject(2.35, 48.85)
    (2.35, 48.85)
    """

    def reproject(self, x: float, y: float) -> tuple[float, float]:
        """Return the coordinate unchanged."""
        return float(x), float(y)

    def geodesic_distance(self, a: tuple[float, float], b: tuple[float, float]) -> float:
        """Haversine distance between two ``(lon, lat)`` coordinates."""
        return haversine_distance(a[0], a[1], b[0], b[1])


# =============================================================================
# STRICT VALUE PARSING
# =============================================================================
# Helpers shared by the adapters. They raise MalformedRowError carrying the
# location of the bad cell rather than coercing it to NaN.


def _is_blank(value: object) -> bool:
    """Return True for None, NaN and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return bool(pd.isna(value))


def _parse_text(
    value: object,
    *,
    file: str | None = None,
    line: int | None = None,
    field: str | None = None,
) -> str:
    """Return a stripped, non-empty identifier."""
    if _is_blank(value):
        msg = "missing value"
        raise MalformedRowError(msg, file=file, line=line, field=field)
    return str(value).strip()


def _parse_float(
    value: object,
    *,
    file: str | None = None,
    line: int | None = None,
    field: str | None = None,
    allow_blank: bool = False,
) -> float | None:
    """
    Parse a finite float, optionally mapping a blank cell to None.

    Raises
    ------
    MalformedRowError
        If the value is blank (and ``allow_blank`` is False), unparsable or
        not finite.
    """
    if _is_blank(value):
        if allow_blank:
            return None
        msg = "missing value"
        raise MalformedRowError(msg, file=file, line=line, field=field)

    try:
        number = float(value.strip() if isinstance(value, str) else value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        msg = f"not a number: {value!r}"
        raise MalformedRowError(msg, file=file, line=line, field=field) from exc

    if not np.isfinite(number):
        msg = f"not a finite number: {value!r}"
        raise MalformedRowError(msg, file=file, line=line, field=field)
    return number


def _parse_int(
    value: object,
    *,
    file: str | None = None,
    line: int | None = None,
    field: str | None = None,
) -> int:
    """Parse an integer; integral floats such as ``2.0`` are accepted."""
    number = _parse_float(value, file=file, line=line, field=field)
    if number is None or not float(number).is_integer():
        msg = f"not an integer: {value!r}"
        raise MalformedRowError(msg, file=file, line=line, field=field)
    return int(number)


def _time_to_seconds(
    value: object,
    *,
    file: str | None = None,
    line: int | None = None,
    field: str | None = None,
) -> int:
    """
    Convert a GTFS ``HH:MM:SS`` string (24 h+ supported) into seconds.

    Hours may exceed 23 for trips running past midnight. Minutes and seconds
    must lie in ``[0, 59]``.

    Examples
    --------
    >>> _time_to_seconds("14:30:45")
    52245
    >>> _time_to_seconds("25:00:00")
    90000
    """
    text = _parse_text(value, file=file, line=line, field=field)
    parts = text.split(":")
    try:
        h, m, s = map(int, parts)
    except ValueError as exc:
        msg = f"not an HH:MM:SS time: {text!r}"
        raise MalformedRowError(msg, file=file, line=line, field=field) from exc

    if h < 0 or not 0 <= m < 60 or not 0 <= s < 60:
        msg = f"time out of range: {text!r}"
        raise MalformedRowError(msg, file=file, line=line, field=field)
    return h * 3600 + m * 60 + s


@contextmanager
def _row_context(file: str | None, line: int | None = None) -> Iterator[None]:
    """Attach ``file`` and ``line`` to any ingestion error raised inside the block."""
    try:
        yield
    except NetworkImportError as exc:
        exc.with_location(file, line)
        raise


def _row_lines(df: pd.DataFrame) -> Sequence[int]:
    """
    1-based source line of every row of a GTFS table.

    Tables read from disk are indexed by ``line``. Other frames are numbered
    as if their first row sat on line 2, right after the header.
    """
    if df.index.name == "line":
        return [int(line) for line in df.index]
    return range(2, len(df) + 2)
