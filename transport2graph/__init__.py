"""
Transport2Graph: building transportation network graphs from road and transit data.

This package ingests road layers (BDTOPO) and General Transit Feed
Specification bundles into a single directed graph of intersections and
stops, deriving speeds, travel times and capacities for every link. The
resulting network can be exported to GeoPandas or NetworkX.

Notes
-----
Main modules include:
- base : Error taxonomy and the geodesy capability
- network : Nodes, links and the network registry
- schedule : Aggregation of GTFS stop times into route sections
- derivation : Normalization of source attributes into link attributes
- transportation : GTFS ingestion
- roads : BDTOPO road ingestion
- zones : Demand zone reading
- data : Loading several sources into one network
- utils : Great-circle distances and polyline lengths
"""

# Standard library imports
import contextlib
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version

# Import all public APIs from submodules
from .base import *  # noqa: F403
from .data import *  # noqa: F403
from .derivation import *  # noqa: F403
from .network import *  # noqa: F403
from .roads import *  # noqa: F403
from .schedule import *  # noqa: F403
from .transportation import *  # noqa: F403
from .utils import *  # noqa: F403
from .zones import *  # noqa: F403

# Version handling with graceful fallback
with contextlib.suppress(PackageNotFoundError):
    __version__ = version("transport2graph")
