"""
Network Graph Model Module.

This module defines the directed graph every ingestion adapter writes into:
nodes (intersections and stops) carrying a WGS84 coordinate, links (road
segments, transit legs, footpaths) referencing their endpoints by id, and
the :class:`Network` registry that enforces referential integrity while the
graph is being populated. Once populated, a network can be handed to the
GeoPandas or NetworkX ecosystems through :meth:`Network.to_gdf` and
:meth:`Network.to_nx`.
"""

# Future annotations for type hints
from __future__ import annotations

# Standard library imports
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

# Third-party imports
import geopandas as gpd
import networkx as nx
import pandas as pd
from shapely.geometry import LineString
from shapely.geometry import Point

# Local imports
from .base import WGS84_CRS
from .base import DuplicateIdError
from .base import LinkNotFoundError
from .base import NodeNotFoundError
from .base import UnknownReferenceError
from .utils import haversine_distance

# Type checking imports
if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = ["Link", "Network", "Node"]

# Module logger configuration
logger = logging.getLogger(__name__)

# Link attributes exported as edge columns
LINK_ATTRIBUTES = ("is_bidirectional", "speed", "travel_time", "capacity", "length")


# =============================================================================
# GRAPH ELEMENTS
# =============================================================================


@dataclass(frozen=True)
class Node:
    """
    An intersection or a stop of the transportation network.

    Parameters
    ----------
    id : str
        Identifier, unique within a :class:`Network`.
    lon, lat : float
        WGS84 longitude and latitude in degrees.

    Examples
    --------
    >>> a = Node("S1", 2.3522, 48.8566)
    >>> a.coordinate
    (2.3522, 48.8566)
    """

    id: str
    lon: float
    lat: float

    @property
    def coordinate(self) -> tuple[float, float]:
        """Longitude/latitude pair."""
        return (self.lon, self.lat)

    @property
    def geometry(self) -> Point:
        """Shapely point of the node."""
        return Point(self.lon, self.lat)

    def distance_to(self, other: Node) -> float:
        """Great-circle distance in metres to ``other``."""
        return haversine_distance(self.lon, self.lat, other.lon, other.lat)


@dataclass
class Link:
    """
    A directed connection between two nodes.

    Endpoints are stored by id. Every numeric attribute is optional because
    each source format populates a different subset of them.

    Parameters
    ----------
    from_node, to_node : str
        Ids of the origin and destination nodes.
    id : str, optional
        Link identifier. Derived as ``"{from_node}:{to_node}"`` when omitted.
    is_bidirectional : bool, default False
        Whether the link may also be traversed from ``to_node`` to ``from_node``.
    speed : float, optional
        Normal speed in metres per second.
    travel_time : float, optional
        Normal traversal time in seconds.
    capacity : float, optional
        Capacity in vehicles per hour.
    length : float, optional
        Length in metres.

    Examples
    --------
    >>> link = Link("A", "B", length=120.0)
    >>> link.id
    'A:B'
    >>> link.reverse()
    >>> (link.from_node, link.to_node, link.id)
    ('B', 'A', 'A:B')
    """

    from_node: str
    to_node: str
    id: str | None = None
    is_bidirectional: bool = False
    speed: float | None = None
    travel_time: float | None = None
    capacity: float | None = None
    length: float | None = None

    def __post_init__(self) -> None:
        if self.id is None:
            self.id = f"{self.from_node}:{self.to_node}"

    def reverse(self) -> None:
        """Swap the endpoints in place; the id is left unchanged."""
        self.from_node, self.to_node = self.to_node, self.from_node


# =============================================================================
# NETWORK REGISTRY
# =============================================================================


class Network:
    """
    Append-only registry of the nodes and links of a transportation network.

    Nodes must be registered before any link referencing them. A duplicate
    node id is an error; a duplicate link id replaces the previous link,
    so a source may re-emit a segment it has already produced.

    Parameters
    ----------
    name : str, optional
        Free-form label, kept in the NetworkX graph metadata.

    See Also
    --------
    transport2graph.data.load_network : Populate a network from source files.

    Examples
    --------
    >>> net = Network()
    >>> net.add_node(Node("A", 2.35, 48.85))
    >>> net.add_node(Node("B", 2.36, 48.86))
    >>> net.add_link(Link("A", "B"))
    >>> net.number_of_nodes(), net.number_of_links()
    (2, 1)
    """

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        self._nodes: dict[str, Node] = {}
        self._links: dict[str, Link] = {}

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<Network{label}: {len(self._nodes)} nodes, {len(self._links)} links>"

    def __len__(self) -> int:
        return len(self._nodes)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add_node(self, node: Node) -> None:
        """
        Register a node.

        Parameters
        ----------
        node : Node
            Node to register.

        Raises
        ------
        DuplicateIdError
            If a node with the same id is already registered.
        """
        if node.id in self._nodes:
            msg = f"Node {node.id!r} is already registered"
            raise DuplicateIdError(msg)
        self._nodes[node.id] = node

    def add_link(self, link: Link) -> None:
        """
        Register a link, replacing any link with the same id.

        Parameters
        ----------
        link : Link
            Link whose endpoints are already registered.

        Raises
        ------
        UnknownReferenceError
            If ``link.from_node`` or ``link.to_node`` is not a registered node.
        """
        for field in ("from_node", "to_node"):
            node_id = getattr(link, field)
            if node_id not in self._nodes:
                msg = f"Link {link.id!r} references unknown node {node_id!r}"
                raise UnknownReferenceError(msg, field=field)

        if link.id in self._links:
            logger.debug("Replacing link %s", link.id)
        self._links[link.id] = link  # type: ignore[index]

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def nodes(self) -> Mapping[str, Node]:
        """Read-only view of the nodes keyed by id."""
        return MappingProxyType(self._nodes)

    @property
    def links(self) -> Mapping[str, Link]:
        """Read-only view of the links keyed by id."""
        return MappingProxyType(self._links)

    def contains_node(self, node_id: str) -> bool:
        """Return True if ``node_id`` is registered."""
        return node_id in self._nodes

    def contains_link(self, link_id: str) -> bool:
        """Return True if ``link_id`` is registered."""
        return link_id in self._links

    def get_node(self, node_id: str) -> Node:
        """
        Return the node registered under ``node_id``.

        Raises
        ------
        NodeNotFoundError
            If no such node exists.
        """
        try:
            return self._nodes[node_id]
        except KeyError as exc:
            msg = f"Node {node_id!r} not found"
            raise NodeNotFoundError(msg) from exc

    def get_link(self, link_id: str) -> Link:
        """
        Return the link registered under ``link_id``.

        Raises
        ------
        LinkNotFoundError
            If no such link exists.
        """
        try:
            return self._links[link_id]
        except KeyError as exc:
            msg = f"Link {link_id!r} not found"
            raise LinkNotFoundError(msg) from exc

    def number_of_nodes(self) -> int:
        """Number of registered nodes."""
        return len(self._nodes)

    def number_of_links(self) -> int:
        """Number of registered links."""
        return len(self._links)

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def to_gdf(self) -> tuple[gpd.GeoDataFrame, gpd.GeoDataFrame]:
        """
        Export the network as node and edge GeoDataFrames.

        Nodes are indexed by ``node_id`` and edges by ``link_id``; edge
        geometries are straight lines between the two endpoints. Both frames
        use EPSG:4326.

        Returns
        -------
        tuple[geopandas.GeoDataFrame, geopandas.GeoDataFrame]
            ``(nodes_gdf, edges_gdf)``.

        See Also
        --------
        to_nx : Export as a NetworkX graph.

        Examples
        --------
        >>> nodes_gdf, edges_gdf = net.to_gdf()
        >>> list(edges_gdf.columns)
        ['from_node', 'to_node', 'is_bidirectional', 'speed', 'travel_time', 'capacity', 'length',
         'geometry']
        """
        nodes = list(self._nodes.values())
        nodes_gdf = gpd.GeoDataFrame(
            {
                "lon": [n.lon for n in nodes],
                "lat": [n.lat for n in nodes],
            },
            geometry=[n.geometry for n in nodes],
            index=pd.Index([n.id for n in nodes], name="node_id"),
            crs=WGS84_CRS,
        )

        links = list(self._links.values())
        columns: dict[str, list[object]] = {
            "from_node": [link.from_node for link in links],
            "to_node": [link.to_node for link in links],
        }
        for attr in LINK_ATTRIBUTES:
            columns[attr] = [getattr(link, attr) for link in links]

        edges_geom = [
            LineString(
                [self._nodes[link.from_node].coordinate, self._nodes[link.to_node].coordinate],
            )
            for link in links
        ]
        edges_gdf = gpd.GeoDataFrame(
            columns,
            geometry=edges_geom,
            index=pd.Index([link.id for link in links], name="link_id"),
            crs=WGS84_CRS,
        )
        return nodes_gdf, edges_gdf

    def to_nx(self, expand_bidirectional: bool = True) -> nx.MultiDiGraph:
        """
        Export the network as a NetworkX multi-digraph.

        Edges are keyed by link id. Node attributes are ``lon``, ``lat``,
        ``pos`` and ``geometry``; edge attributes mirror the link attributes.
        Graph metadata holds ``crs`` and ``is_hetero`` as in the GeoDataFrame
        conversion conventions of the wider ecosystem.

        Parameters
        ----------
        expand_bidirectional : bool, default True
            Also add the reversed edge of every bidirectional link. Such
            edges carry ``reversed=True``.

        Returns
        -------
        networkx.MultiDiGraph
            Graph with one node per network node.

        Examples
        --------
        >>> G = net.to_nx()
        >>> G.graph["crs"]
        'EPSG:4326'
        """
        graph = nx.MultiDiGraph(crs=WGS84_CRS, is_hetero=False, name=self.name)

        for node in self._nodes.values():
            graph.add_node(
                node.id,
                lon=node.lon,
                lat=node.lat,
                pos=node.coordinate,
                geometry=node.geometry,
            )

        for link in self._links.values():
            attrs = {attr: getattr(link, attr) for attr in LINK_ATTRIBUTES}
            graph.add_edge(link.from_node, link.to_node, key=link.id, reversed=False, **attrs)
            # A self-loop reversed edge would overwrite the forward one
            if expand_bidirectional and link.is_bidirectional and link.from_node != link.to_node:
                graph.add_edge(link.to_node, link.from_node, key=link.id, reversed=True, **attrs)

        return graph
