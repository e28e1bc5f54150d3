"""
Transit Network Ingestion Module.

This module reads a General Transit Feed Specification (GTFS) bundle, given
as a folder or a zip archive, into a :class:`~transport2graph.network.Network`.
Stops become nodes; route sections, pathways and transfers become links.

When the bundle does not ship a precomputed ``route_sections.txt``, the stop
times are first aggregated into route sections, which are then written back
next to the other tables so that later imports can skip the aggregation.

Every table is read strictly: a missing required file or column, a row with
the wrong number of fields or an unparsable value aborts the import with an
error naming the file, the 1-based line and the field.
"""

# Future annotations for type hints
from __future__ import annotations

# Standard library imports
import csv
import io
import logging
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

# Third-party imports
import pandas as pd

# Local imports
from .base import MalformedRowError
from .base import MissingFileError
from .base import MissingHeaderError
from .base import UnknownReferenceError
from .derivation import PATHWAY_BIDIRECTIONAL
from .derivation import pathway_link
from .derivation import transfer_link
from .derivation import transit_section_link
from .network import Node
from .schedule import ROUTE_SECTIONS_COLUMNS
from .schedule import ROUTE_SECTIONS_FILE
from .schedule import ROUTES_FILE
from .schedule import STOP_TIMES_FILE
from .schedule import TRIPS_FILE
from .schedule import aggregate_route_sections
from .schedule import route_sections_from_frame
from .schedule import route_sections_to_frame
from .schedule import schedule_inputs_from_gtfs
from .utils import SphericalGeodesy
from .utils import _parse_float
from .utils import _parse_text
from .utils import _row_context
from .utils import _row_lines

# Type checking imports
if TYPE_CHECKING:
    from collections.abc import Iterable
    from collections.abc import Sequence

    from .base import Geodesy
    from .network import Network
    from .schedule import RouteSection

# Module logger configuration
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

__all__ = ["read_gtfs", "save_route_sections"]

# Remaining GTFS tables
STOPS_FILE = "stops.txt"
TRANSFERS_FILE = "transfers.txt"
PATHWAYS_FILE = "pathways.txt"

# Required columns per table
REQUIRED_COLUMNS: dict[str, tuple[str, ...]] = {
    STOPS_FILE: ("stop_id", "stop_lon", "stop_lat"),
    STOP_TIMES_FILE: ("trip_id", "stop_id", "arrival_time"),
    TRIPS_FILE: ("trip_id", "route_id"),
    ROUTES_FILE: ("route_id", "route_type"),
    ROUTE_SECTIONS_FILE: ROUTE_SECTIONS_COLUMNS,
    TRANSFERS_FILE: ("from_stop_id", "to_stop_id", "min_transfer_time"),
    PATHWAYS_FILE: (
        "pathway_id",
        "from_stop_id",
        "to_stop_id",
        "is_bidirectional",
        "length",
        "traversal_time",
    ),
}


# =============================================================================
# INTERNAL HELPER FUNCTIONS
# =============================================================================

# -----------------------------------------------------------------------------
# GTFS sources
# -----------------------------------------------------------------------------


class _FolderSource:
    """GTFS tables stored as files of a directory."""

    writable = True

    def __init__(self, path: Path) -> None:
        self.path = path

    def __str__(self) -> str:
        return str(self.path)

    def exists(self, name: str) -> bool:
        return (self.path / name).is_file()

    def read(self, name: str) -> bytes:
        return (self.path / name).read_bytes()


class _ZipSource:
    """
    GTFS tables stored in a zip archive.

    Tables are looked up by base name so that archives with a top-level
    folder are accepted as well.
    """

    writable = False

    def __init__(self, path: Path) -> None:
        self.path = path
        with zipfile.ZipFile(path) as zf:
            self._members = {
                name.rsplit("/", 1)[-1]: name
                for name in zf.namelist()
                if name.endswith(".txt") and not name.endswith("/")
            }

    def __str__(self) -> str:
        return str(self.path)

    def exists(self, name: str) -> bool:
        return name in self._members

    def read(self, name: str) -> bytes:
        with zipfile.ZipFile(self.path) as zf:
            return zf.read(self._members[name])


def _open_source(path: str | Path) -> _FolderSource | _ZipSource:
    """Return the source matching ``path``, a directory or a zip archive."""
    path = Path(path)
    if path.is_dir():
        return _FolderSource(path)
    if path.is_file() and zipfile.is_zipfile(path):
        return _ZipSource(path)
    msg = f"GTFS source {str(path)!r} is neither a directory nor a zip archive"
    raise MissingFileError(msg, file=path.name)


# -----------------------------------------------------------------------------
# CSV processing
# -----------------------------------------------------------------------------


def _record_lines(text: str, file: str) -> list[int]:
    """
    Check the field count of every record and return the line of each data record.

    Blank lines are skipped but still counted, so the returned numbers are
    the physical 1-based lines of the file.
    """
    reader = csv.reader(io.StringIO(text))
    expected: int | None = None
    lines: list[int] = []
    try:
        for record in reader:
            if not record:
                continue
            if expected is None:
                expected = len(record)
                continue
            if len(record) != expected:
                msg = f"expected {expected} fields, got {len(record)}"
                raise MalformedRowError(msg, file=file, line=reader.line_num)
            lines.append(reader.line_num)
    except csv.Error as exc:
        msg = f"unreadable record ({exc})"
        raise MalformedRowError(msg, file=file, line=reader.line_num) from exc

    if expected is None:
        msg = "file is empty, a header row is required"
        raise MissingHeaderError(msg, file=file, line=1)
    return lines


def _read_csv_bytes(buf: bytes, file: str) -> pd.DataFrame:
    """
    Read a GTFS table held in memory into a string-typed DataFrame.

    Every field is kept as a string and blank cells stay empty strings. The
    first row is the header. A row with more fields than the header, or with
    fewer, raises :class:`MalformedRowError` with its 1-based line.

    Parameters
    ----------
    buf : bytes
        Raw content, UTF-8 with an optional byte order mark.
    file : str
        Table name reported in errors.

    Returns
    -------
    pandas.DataFrame
        One column per header field, indexed by the 1-based ``line`` of each
        row in the file.

    Examples
    --------
    >>> _read_csv_bytes(b"stop_id,stop_lon,stop_lat\\nS1,2.35,48.85\\n", "stops.txt")
         stop_id stop_lon stop_lat
    line
    2         S1     2.35    48.85
    """
    try:
        text = buf.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        msg = f"not valid UTF-8 ({exc.reason})"
        raise MalformedRowError(msg, file=file) from exc

    # pandas pads short rows, so field counts are checked on the raw records
    lines = _record_lines(text, file)

    raw = pd.read_csv(
        io.StringIO(text),
        header=None,
        dtype=str,
        keep_default_na=False,
    )
    header = [str(name).strip() for name in raw.iloc[0]]
    df = raw.iloc[1:].copy()
    if len(df) != len(lines):
        msg = f"{len(lines)} records expected, {len(df)} parsed"
        raise MalformedRowError(msg, file=file)

    df.columns = header
    df.index = pd.Index(lines, name="line")
    return df


def _read_table(source: _FolderSource | _ZipSource, name: str) -> pd.DataFrame:
    """Read table ``name`` from ``source`` and check its required columns."""
    df = _read_csv_bytes(source.read(name), name)
    for column in REQUIRED_COLUMNS[name]:
        if column not in df.columns:
            msg = "required column is missing"
            raise MissingHeaderError(msg, file=name, line=1, field=column)
    logger.debug("Read %s: %d rows", name, len(df))
    return df


# -----------------------------------------------------------------------------
# Table readers
# -----------------------------------------------------------------------------


def _stop_node(network: Network, stop_id: str, file: str, line: int | None, field: str) -> Node:
    """Return the registered stop ``stop_id`` or raise UnknownReferenceError."""
    if not network.contains_node(stop_id):
        msg = f"unknown stop {stop_id!r}"
        raise UnknownReferenceError(msg, file=file, line=line, field=field)
    return network.get_node(stop_id)


def _add_stops(network: Network, stops: pd.DataFrame) -> int:
    """Register one node per row of ``stops.txt``."""
    rows = zip(stops["stop_id"], stops["stop_lon"], stops["stop_lat"], strict=True)
    for line, (stop_id, lon, lat) in zip(_row_lines(stops), rows, strict=True):
        with _row_context(STOPS_FILE, line):
            node_id = _parse_text(stop_id, field="stop_id")
            lon_value = _parse_float(lon, field="stop_lon")
            lat_value = _parse_float(lat, field="stop_lat")
            if not -180 <= lon_value <= 180:  # type: ignore[operator]
                msg = f"longitude out of range: {lon_value}"
                raise MalformedRowError(msg, field="stop_lon")
            if not -90 <= lat_value <= 90:  # type: ignore[operator]
                msg = f"latitude out of range: {lat_value}"
                raise MalformedRowError(msg, field="stop_lat")
            network.add_node(Node(node_id, lon_value, lat_value))  # type: ignore[arg-type]
    return len(stops)


def _add_route_sections(
    network: Network,
    sections: Iterable[RouteSection],
    geodesy: Geodesy,
    lines: Sequence[int] | None = None,
) -> int:
    """
    Register one transit link per route section.

    ``lines`` is set when the sections come from a supplied
    ``route_sections.txt``, so that errors point at its lines.
    """
    origin = ROUTE_SECTIONS_FILE if lines is not None else STOP_TIMES_FILE
    count = 0
    for i, section in enumerate(sections):
        line = lines[i] if lines is not None else None
        from_node = _stop_node(network, section.from_stop_id, origin, line, "from_stop_id")
        to_node = _stop_node(network, section.to_stop_id, origin, line, "to_stop_id")
        length = geodesy.geodesic_distance(from_node.coordinate, to_node.coordinate)
        network.add_link(transit_section_link(section, length))
        count += 1
    return count


def _add_pathways(network: Network, pathways: pd.DataFrame, geodesy: Geodesy) -> int:
    """Register one link per row of ``pathways.txt``."""
    columns = REQUIRED_COLUMNS[PATHWAYS_FILE]
    rows = zip(*(pathways[c] for c in columns), strict=True)
    for line, row in zip(_row_lines(pathways), rows, strict=True):
        pathway_id, from_stop, to_stop, bidirectional, length, traversal_time = row
        with _row_context(PATHWAYS_FILE, line):
            from_id = _parse_text(from_stop, field="from_stop_id")
            to_id = _parse_text(to_stop, field="to_stop_id")
            link = pathway_link(
                _parse_text(pathway_id, field="pathway_id"),
                _stop_node(network, from_id, PATHWAYS_FILE, line, "from_stop_id"),
                _stop_node(network, to_id, PATHWAYS_FILE, line, "to_stop_id"),
                is_bidirectional=str(bidirectional).strip() == PATHWAY_BIDIRECTIONAL,
                length=_parse_float(length, field="length", allow_blank=True),
                traversal_time=_parse_float(
                    traversal_time, field="traversal_time", allow_blank=True
                ),
                geodesy=geodesy,
            )
            network.add_link(link)
    return len(pathways)


def _add_transfers(network: Network, transfers: pd.DataFrame, geodesy: Geodesy) -> int:
    """Register one bidirectional link per row of ``transfers.txt``."""
    rows = zip(
        transfers["from_stop_id"],
        transfers["to_stop_id"],
        transfers["min_transfer_time"],
        strict=True,
    )
    for line, row in zip(_row_lines(transfers), rows, strict=True):
        from_stop, to_stop, min_transfer_time = row
        with _row_context(TRANSFERS_FILE, line):
            from_id = _parse_text(from_stop, field="from_stop_id")
            to_id = _parse_text(to_stop, field="to_stop_id")
            from_node = _stop_node(network, from_id, TRANSFERS_FILE, line, "from_stop_id")
            to_node = _stop_node(network, to_id, TRANSFERS_FILE, line, "to_stop_id")
            transfer_time = _parse_float(
                min_transfer_time, field="min_transfer_time", allow_blank=True
            )
            link = transfer_link(
                from_node.id,
                to_node.id,
                length=geodesy.geodesic_distance(from_node.coordinate, to_node.coordinate),
                min_transfer_time=transfer_time,
            )
            network.add_link(link)
    return len(transfers)


# =============================================================================
# PUBLIC API
# =============================================================================


def save_route_sections(sections: Iterable[RouteSection], path: str | Path) -> Path:
    """
    Persist route sections as a ``route_sections.txt`` table.

    Parameters
    ----------
    sections : Iterable[RouteSection]
        Sections to write.
    path : str or Path
        Target file, or a GTFS folder in which ``route_sections.txt`` is
        created.

    Returns
    -------
    Path
        Path of the written file.

    See Also
    --------
    read_gtfs : Reads the table back when present in a GTFS folder.
    """
    path = Path(path)
    if path.is_dir():
        path = path / ROUTE_SECTIONS_FILE
    route_sections_to_frame(sections).to_csv(path, index=False)
    logger.info("Route sections written to %s", path)
    return path


def read_gtfs(
    network: Network,
    path: str | Path,
    geodesy: Geodesy | None = None,
    write_route_sections: bool = True,
) -> Network:
    """
    Ingest a GTFS bundle into a network.

    Tables are processed in this order: stops, route sections, pathways,
    transfers. ``stops.txt`` is always required. When ``route_sections.txt``
    is absent, ``stop_times.txt``, ``trips.txt`` and ``routes.txt`` are
    required too and the stop times are aggregated into route sections. The
    presence of every required table is checked before any node is created.

    Parameters
    ----------
    network : Network
        Network receiving the nodes and links.
    path : str or Path
        GTFS folder or zip archive.
    geodesy : Geodesy, optional
        Distance capability used for route section and transfer lengths, and
        for pathways without a measured length.
        Defaults to :class:`~transport2graph.utils.SphericalGeodesy`.
    write_route_sections : bool, default True
        Write aggregated route sections back to the folder once the whole
        bundle has been ingested. Zip archives are never modified.

    Returns
    -------
    Network
        The populated ``network``.

    Raises
    ------
    MissingFileError
        If ``path`` is not a GTFS source or a required table is absent.
    MissingHeaderError
        If a required column is absent.
    MalformedRowError
        If a row has the wrong number of fields or an unparsable value.
    UnknownReferenceError
        If a record references an unknown stop or route.
    DuplicateIdError
        If a stop id is already registered.

    See Also
    --------
    transport2graph.data.load_network : Ingest several sources at once.

    Examples
    --------
    >>> net = read_gtfs(Network(), "data/gtfs")
    >>> net
    <Network: 1234 nodes, 2345 links>
    """
    source = _open_source(path)
    geodesy = geodesy or SphericalGeodesy()

    has_sections = source.exists(ROUTE_SECTIONS_FILE)
    required = [STOPS_FILE]
    if not has_sections:
        required += [STOP_TIMES_FILE, TRIPS_FILE, ROUTES_FILE]
    missing = [name for name in required if not source.exists(name)]
    if missing:
        msg = f"required GTFS file(s) missing from {source}: {', '.join(missing)}"
        raise MissingFileError(msg, file=missing[0])

    n_stops = _add_stops(network, _read_table(source, STOPS_FILE))

    if has_sections:
        df = _read_table(source, ROUTE_SECTIONS_FILE)
        sections = route_sections_from_frame(df, ROUTE_SECTIONS_FILE)
        n_sections = _add_route_sections(network, sections, geodesy, _row_lines(df))
    else:
        trip_events, route_trips, route_types = schedule_inputs_from_gtfs(
            _read_table(source, STOP_TIMES_FILE),
            _read_table(source, TRIPS_FILE),
            _read_table(source, ROUTES_FILE),
        )
        sections = aggregate_route_sections(trip_events, route_trips, route_types)
        n_sections = _add_route_sections(network, sections, geodesy)

    n_pathways = n_transfers = 0
    if source.exists(PATHWAYS_FILE):
        n_pathways = _add_pathways(network, _read_table(source, PATHWAYS_FILE), geodesy)
    if source.exists(TRANSFERS_FILE):
        n_transfers = _add_transfers(network, _read_table(source, TRANSFERS_FILE), geodesy)

    # Only a bundle that ingested completely gets its sections written back
    if not has_sections and write_route_sections:
        if source.writable:
            save_route_sections(sections, source.path)
        else:
            logger.info("Route sections not written back: %s is read-only", source)

    logger.info(
        "GTFS loaded from %s: %d stops, %d route sections, %d pathways, %d transfers",
        source,
        n_stops,
        n_sections,
        n_pathways,
        n_transfers,
    )
    return network
