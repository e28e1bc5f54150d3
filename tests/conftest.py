"""Shared fixtures for transport2graph tests."""

import zipfile
from collections.abc import Callable
from pathlib import Path

import geopandas as gpd
import pytest
from shapely.geometry import LineString
from shapely.geometry import MultiLineString
from shapely.geometry import Point
from shapely.geometry import Polygon

from transport2graph.network import Link
from transport2graph.network import Network
from transport2graph.network import Node
from transport2graph.utils import SphericalGeodesy

# ============================================================================
# GTFS FIXTURES
# ============================================================================

GTFS_STOPS = """stop_id,stop_name,stop_lon,stop_lat
S1,Gare,2.3500,48.8500
S2,Mairie,2.3600,48.8550
S3,Parc,2.3700,48.8600
"""

GTFS_ROUTES = """route_id,route_short_name,route_type
R1,1,3
R2,T2,0
"""

GTFS_TRIPS = """route_id,service_id,trip_id
R1,WK,A
R1,WK,B
R2,WK,C
"""

GTFS_STOP_TIMES = """trip_id,arrival_time,departure_time,stop_id,stop_sequence
A,08:00:00,08:00:00,S1,1
A,08:01:40,08:01:40,S2,2
B,08:10:00,08:10:00,S1,1
B,08:11:45,08:11:45,S2,2
C,25:00:00,25:00:00,S2,1
C,25:02:00,25:02:00,S3,2
"""

GTFS_TRANSFERS = """from_stop_id,to_stop_id,transfer_type,min_transfer_time
S1,S3,2,120
"""

GTFS_PATHWAYS = """pathway_id,from_stop_id,to_stop_id,pathway_mode,\
is_bidirectional,length,traversal_time
P1,S2,S3,1,1,80,40
P2,S3,S1,1,0,,
"""


@pytest.fixture
def gtfs_tables() -> dict[str, str]:
    """Content of a small but complete GTFS feed, keyed by file name."""
    return {
        "stops.txt": GTFS_STOPS,
        "routes.txt": GTFS_ROUTES,
        "trips.txt": GTFS_TRIPS,
        "stop_times.txt": GTFS_STOP_TIMES,
        "transfers.txt": GTFS_TRANSFERS,
        "pathways.txt": GTFS_PATHWAYS,
    }


@pytest.fixture
def write_gtfs(tmp_path: Path) -> Callable[..., Path]:
    """Return a factory writing GTFS tables into a folder under tmp_path."""

    def _write(tables: dict[str, str], name: str = "gtfs") -> Path:
        folder = tmp_path / name
        folder.mkdir()
        for file_name, content in tables.items():
            (folder / file_name).write_text(content, encoding="utf-8")
        return folder

    return _write


@pytest.fixture
def sample_gtfs_dir(write_gtfs: Callable[..., Path], gtfs_tables: dict[str, str]) -> Path:
    """GTFS feed written as a folder."""
    return write_gtfs(gtfs_tables)


@pytest.fixture
def sample_gtfs_zip(tmp_path: Path, gtfs_tables: dict[str, str]) -> Path:
    """GTFS feed written as a zip archive with a top-level folder."""
    zip_path = tmp_path / "feed.zip"
    with zipfile.ZipFile(zip_path, "w") as zf:
        for file_name, content in gtfs_tables.items():
            zf.writestr(f"feed/{file_name}", content)
    return zip_path


# ============================================================================
# ROAD AND ZONE FIXTURES
# ============================================================================


@pytest.fixture
def spherical_geodesy() -> SphericalGeodesy:
    """Identity reprojection with haversine distances."""
    return SphericalGeodesy()


@pytest.fixture
def road_gdf() -> gpd.GeoDataFrame:
    """Road segments already expressed in WGS84 degrees."""
    return gpd.GeoDataFrame(
        {
            "VIT_MOY_VL": [50, 30, 90, 20],
            "ACCES_VL": ["Libre", "Libre", "Libre", "A péage"],
            "SENS": ["Double sens", "Sens inverse", "Sens direct", "Double sens"],
            "NB_VOIES": [2, 1, 3, 1],
        },
        geometry=[
            LineString([(2.0, 48.0), (2.001, 48.0), (2.002, 48.0)]),
            LineString([(2.002, 48.0), (2.002, 48.001)]),
            MultiLineString([[(2.0, 48.0), (2.0, 48.001)], [(2.0, 48.001), (2.001, 48.001)]]),
            LineString([(3.0, 49.0), (3.001, 49.0)]),
        ],
        crs="EPSG:4326",
    )


@pytest.fixture
def zones_gdf() -> gpd.GeoDataFrame:
    """Two square zones in WGS84."""
    return gpd.GeoDataFrame(
        {"objectid": [10, 11], "name": ["north", "south"]},
        geometry=[
            Polygon([(0, 1), (1, 1), (1, 2), (0, 2)]),
            Polygon([(0, 0), (1, 0), (1, 1), (0, 1)]),
        ],
        crs="EPSG:4326",
    )


# ============================================================================
# NETWORK FIXTURES
# ============================================================================


@pytest.fixture
def network() -> Network:
    """An empty network."""
    return Network()


@pytest.fixture
def small_network() -> Network:
    """Three nodes joined by a one-way and a two-way link."""
    net = Network(name="small")
    net.add_node(Node("A", 2.35, 48.85))
    net.add_node(Node("B", 2.36, 48.85))
    net.add_node(Node("C", 2.36, 48.86))
    net.add_link(Link("A", "B", speed=10.0, travel_time=73.2, length=732.0))
    net.add_link(Link("B", "C", is_bidirectional=True, capacity=3600))
    return net


@pytest.fixture
def point_gdf() -> gpd.GeoDataFrame:
    """A point layer, used where polygons or lines are expected."""
    return gpd.GeoDataFrame({"objectid": [1]}, geometry=[Point(0, 0)], crs="EPSG:4326")
