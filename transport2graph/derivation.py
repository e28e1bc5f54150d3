"""
Link Derivation Module.

This module normalizes the raw attributes of each source format into
:class:`~transport2graph.network.Link` attributes: speeds in metres per
second, capacities in vehicles per hour and lengths in metres. Each function
takes already-parsed values and returns a new link; none of them touches a
network.
"""

# Future annotations for type hints
from __future__ import annotations

# Standard library imports
from enum import Enum
from typing import TYPE_CHECKING

# Local imports
from .network import Link

# Type checking imports
if TYPE_CHECKING:
    from .base import Geodesy
    from .network import Node
    from .schedule import RouteSection

__all__ = [
    "DEFAULT_MODE_MAX_CAPACITY",
    "KMH_TO_MS",
    "LANE_CAPACITY_PER_HOUR",
    "MODE_MAX_CAPACITY",
    "UNCONSTRAINED_CAPACITY",
    "RoadDirection",
    "is_free_access",
    "mode_max_capacity",
    "pathway_link",
    "road_direction",
    "road_link",
    "transfer_link",
    "transit_section_link",
]

# Conversion factor from km/h to m/s
KMH_TO_MS = 1000 / 3600

# Vehicles per hour carried by one road lane
LANE_CAPACITY_PER_HOUR = 1800

# Capacity of walking links (transfers and pathways)
UNCONSTRAINED_CAPACITY = 10_000_000

# Maximum capacity per GTFS route type
MODE_MAX_CAPACITY = {
    0: 1000,  # tram, light rail
    1: 1001,  # subway, metro
    2: 1002,  # rail
    3: 1003,  # bus
    5: 1005,  # cable tram
}
DEFAULT_MODE_MAX_CAPACITY = 1006

# pathways.txt value of is_bidirectional meaning both directions
PATHWAY_BIDIRECTIONAL = "1"


def _ratio(numerator: float | None, denominator: float | None) -> float | None:
    """Return ``numerator / denominator`` or None when either is unknown or zero."""
    if numerator is None or not denominator:
        return None
    return numerator / denominator


# =============================================================================
# ROADS
# =============================================================================


class RoadDirection(Enum):
    """Traversal direction of a road segment relative to its digitized order."""

    BIDIRECTIONAL = "bidirectional"
    FORWARD = "forward"
    REVERSE = "reverse"


def road_direction(
    code: str,
    bidirectional: str = "Double sens",
    reverse: str = "Sens inverse",
) -> RoadDirection:
    """
    Map a direction code to a :class:`RoadDirection`.

    Any code other than the bidirectional and reverse values means forward.

    Examples
    --------
    >>> road_direction("Double sens")
    <RoadDirection.BIDIRECTIONAL: 'bidirectional'>
    >>> road_direction("Sens direct")
    <RoadDirection.FORWARD: 'forward'>
    """
    if code == bidirectional:
        return RoadDirection.BIDIRECTIONAL
    if code == reverse:
        return RoadDirection.REVERSE
    return RoadDirection.FORWARD


def is_free_access(code: object, free_value: str = "Libre") -> bool:
    """Return True when the access code allows unrestricted traffic."""
    return isinstance(code, str) and code.strip() == free_value


def road_link(
    from_node: str,
    to_node: str,
    *,
    speed_kmh: float,
    lanes: int,
    direction: RoadDirection,
    length: float | None = None,
) -> Link:
    """
    Derive a road link from the attributes of one road segment.

    Parameters
    ----------
    from_node, to_node : str
        Ids of the first and last vertex of the segment, in digitized order.
    speed_kmh : float
        Mean vehicle speed in km/h.
    lanes : int
        Number of lanes.
    direction : RoadDirection
        Traversal direction. ``REVERSE`` swaps the endpoints while keeping
        the id derived from the digitized order.
    length : float, optional
        Length of the segment in metres.

    Returns
    -------
    Link
        Link with speed in m/s and capacity ``lanes * 1800`` per hour.

    Examples
    --------
    >>> link = road_link("A", "B", speed_kmh=50, lanes=2, direction=RoadDirection.BIDIRECTIONAL)
    >>> round(link.speed, 2), link.capacity, link.is_bidirectional
    (13.89, 3600, True)
    """
    link = Link(
        from_node,
        to_node,
        is_bidirectional=direction is RoadDirection.BIDIRECTIONAL,
        speed=speed_kmh * KMH_TO_MS,
        capacity=lanes * LANE_CAPACITY_PER_HOUR,
        length=length,
    )
    if direction is RoadDirection.REVERSE:
        link.reverse()
    return link


# =============================================================================
# TRANSIT
# =============================================================================


def mode_max_capacity(route_type: int) -> int:
    """Maximum capacity of a GTFS route type, with a default for unlisted types."""
    return MODE_MAX_CAPACITY.get(route_type, DEFAULT_MODE_MAX_CAPACITY)


def transit_section_link(section: RouteSection, length: float) -> Link:
    """
    Derive a transit link from a route section.

    The capacity is ``mode_max_capacity(route_type) / frequency / 3600``,
    kept exactly as historically computed even though its unit is not
    vehicles per hour. A zero frequency leaves the capacity unset, and a
    zero travel time leaves the speed unset.

    Parameters
    ----------
    section : RouteSection
        Aggregated section.
    length : float
        Geodesic distance in metres between the two stops.

    Returns
    -------
    Link
        Directed link with id ``"{from_stop_id}:{to_stop_id}"``.

    Examples
    --------
    >>> section = RouteSection("R1", 3, "S1", "S2", time=100.0, frequency=300.0)
    >>> link = transit_section_link(section, 500.0)
    >>> link.speed, link.capacity == 1003 / 300.0 / 3600
    (5.0, True)
    """
    frequency_capacity = _ratio(mode_max_capacity(section.route_type), section.frequency)
    return Link(
        section.from_stop_id,
        section.to_stop_id,
        speed=_ratio(length, section.time),
        travel_time=section.time,
        capacity=None if frequency_capacity is None else frequency_capacity / 3600,
        length=length,
    )


def transfer_link(
    from_node: str,
    to_node: str,
    *,
    length: float,
    min_transfer_time: float | None,
) -> Link:
    """
    Derive a walking transfer between two stops.

    Transfers are always bidirectional and unconstrained in capacity. The
    speed is ``length / min_transfer_time`` when the time is known and
    positive.
    """
    return Link(
        from_node,
        to_node,
        is_bidirectional=True,
        speed=_ratio(length, min_transfer_time),
        travel_time=min_transfer_time,
        capacity=UNCONSTRAINED_CAPACITY,
        length=length,
    )


def pathway_link(
    pathway_id: str,
    from_node: Node,
    to_node: Node,
    *,
    is_bidirectional: bool,
    length: float | None,
    traversal_time: float | None,
    geodesy: Geodesy | None = None,
) -> Link:
    """
    Derive an in-station pathway link.

    Parameters
    ----------
    pathway_id : str
        Id of the pathway, used as link id.
    from_node, to_node : Node
        Endpoint stops.
    is_bidirectional : bool
        Direction flag taken from the source.
    length : float, optional
        Measured length in metres. The distance between the two stops is
        used when it is missing.
    traversal_time : float, optional
        Traversal time in seconds.
    geodesy : Geodesy, optional
        Distance capability for a missing length. The haversine distance is
        used when omitted.

    Returns
    -------
    Link
        Link with unconstrained capacity.
    """
    if length is None and geodesy is not None:
        length = geodesy.geodesic_distance(from_node.coordinate, to_node.coordinate)
    elif length is None:
        length = from_node.distance_to(to_node)
    return Link(
        from_node.id,
        to_node.id,
        id=pathway_id,
        is_bidirectional=is_bidirectional,
        speed=_ratio(length, traversal_time),
        travel_time=traversal_time,
        capacity=UNCONSTRAINED_CAPACITY,
        length=length,
    )
