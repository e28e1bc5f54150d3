"""
Schedule Aggregation Module.

This module turns raw GTFS timetables into route sections: one synthetic
record per route and per pair of consecutive stops of the route's canonical
stop sequence, carrying the mean traversal time of the pair and the mean
departure headway of the route. Route sections are the persisted form of the
aggregation (``route_sections.txt``) and the input from which transit links
are derived.

The aggregation itself works on plain mappings so that it can be exercised
without any file. Helpers are provided to build those mappings from the
string-typed GTFS tables and to convert route sections to and from the
tabular ``route_sections.txt`` layout.
"""

# Future annotations for type hints
from __future__ import annotations

# Standard library imports
import logging
from dataclasses import astuple
from dataclasses import dataclass
from typing import TYPE_CHECKING

# Third-party imports
import pandas as pd

# Local imports
from .base import MissingHeaderError
from .base import UnknownReferenceError
from .utils import _is_blank
from .utils import _parse_float
from .utils import _parse_int
from .utils import _parse_text
from .utils import _row_lines
from .utils import _time_to_seconds

# Type checking imports
if TYPE_CHECKING:
    from collections.abc import Iterable
    from collections.abc import Mapping
    from collections.abc import Sequence

__all__ = [
    "ROUTE_SECTIONS_COLUMNS",
    "RouteSection",
    "aggregate_route_sections",
    "route_sections_from_frame",
    "route_sections_to_frame",
    "schedule_inputs_from_gtfs",
]

# Module logger configuration
logger = logging.getLogger(__name__)

# GTFS tables consumed by the aggregation
STOP_TIMES_FILE = "stop_times.txt"
TRIPS_FILE = "trips.txt"
ROUTES_FILE = "routes.txt"
ROUTE_SECTIONS_FILE = "route_sections.txt"

# Header of route_sections.txt
ROUTE_SECTIONS_COLUMNS = (
    "route_id",
    "route_type",
    "from_stop_id",
    "to_stop_id",
    "time",
    "frequency",
)


@dataclass(frozen=True)
class RouteSection:
    """
    One hop between two consecutive stops of a route, with aggregated timing.

    Parameters
    ----------
    route_id : str
        Route the section belongs to.
    route_type : int
        GTFS route type code of the route.
    from_stop_id, to_stop_id : str
        Consecutive stops of the route's canonical sequence.
    time : float
        Mean traversal time in seconds.
    frequency : float
        Mean departure headway of the route in seconds.
    """

    route_id: str
    route_type: int
    from_stop_id: str
    to_stop_id: str
    time: float
    frequency: float


# =============================================================================
# AGGREGATION
# =============================================================================


def _ordered_events(events: Sequence[tuple[str, float]]) -> list[tuple[str, float]]:
    """Stop events of a trip by arrival time; ties keep their input order."""
    return sorted(events, key=lambda event: event[1])


def _section_time(
    ordered: Sequence[tuple[str, float]],
    from_stop: str,
    to_stop: str,
) -> float | None:
    """
    Time from a visit of ``from_stop`` to the next visit of ``to_stop``.

    The earliest visit of ``from_stop`` followed by a visit of ``to_stop`` is
    used, so the closing section of a loop is measured from the last stop
    to the return to the first one. Returns None when the trip never runs
    from one to the other.
    """
    for i, (stop_id, departure) in enumerate(ordered):
        if stop_id != from_stop:
            continue
        for next_stop, arrival in ordered[i + 1 :]:
            if next_stop == to_stop:
                return arrival - departure
    return None


def _canonical_pairs(ordered: Sequence[tuple[str, float]]) -> list[tuple[str, str]]:
    """
    Consecutive stop pairs of a trip whose events are ordered by arrival.

    Repeated pairs and pairs joining a stop to itself are dropped.
    """
    stops = [stop_id for stop_id, _ in ordered]
    pairs: list[tuple[str, str]] = []
    for pair in zip(stops[:-1], stops[1:], strict=True):
        if pair[0] != pair[1] and pair not in pairs:
            pairs.append(pair)
    return pairs


def _route_frequency(starts: Sequence[float]) -> float:
    """
    Mean headway of a route from the start time of each of its trips.

    The spread of the start times is divided by the number of trips, not by
    the number of intervals between them. A route with a single trip gets
    a frequency of zero.
    """
    return (max(starts) - min(starts)) / len(starts)


def aggregate_route_sections(
    trip_events: Mapping[str, Sequence[tuple[str, float]]],
    route_trips: Mapping[str, Sequence[str]],
    route_types: Mapping[str, int],
) -> list[RouteSection]:
    """
    Aggregate per-trip stop events into route sections.

    For every route, in ``route_trips`` order, the first listed trip having
    recorded events is taken as reference: its events sorted by arrival time
    define the canonical stop sequence, and each pair of consecutive stops in
    that sequence becomes one section. The other trips of the route are not
    checked against this sequence.

    The travel time of a section is the mean, over the trips of the route, of
    the time from a visit of its first stop to the next visit of its second
    stop. On loop routes the closing section therefore runs from the last
    stop back to the first one. Trips that never run between the two stops
    are skipped with a warning. The route frequency is
    ``(max(starts) - min(starts)) / len(starts)`` where ``starts`` holds the
    earliest arrival of each trip having events.

    Parameters
    ----------
    trip_events : Mapping[str, Sequence[tuple[str, float]]]
        Trip id to its ``(stop_id, arrival_seconds)`` events.
    route_trips : Mapping[str, Sequence[str]]
        Route id to the ids of its trips.
    route_types : Mapping[str, int]
        Route id to its GTFS route type code.

    Returns
    -------
    list[RouteSection]
        Sections grouped by route, in canonical order within each route.
        The result is identical for identical inputs.

    Raises
    ------
    UnknownReferenceError
        If a route of ``route_trips`` has no entry in ``route_types``.

    See Also
    --------
    schedule_inputs_from_gtfs : Build the three input mappings from GTFS tables.

    Examples
    --------
    >>> sections = aggregate_route_sections(
    ...     {"A": [("S1", 0), ("S2", 100)], "B": [("S1", 600), ("S2", 705)]},
    ...     {"R1": ["A", "B"]},
    ...     {"R1": 3},
    ... )
    >>> sections[0].time, sections[0].frequency
    (102.5, 300.0)
    """
    sections: list[RouteSection] = []

    for route_id, trip_ids in route_trips.items():
        if route_id not in route_types:
            msg = f"Route {route_id!r} has no route type"
            raise UnknownReferenceError(msg, field="route_type")
        route_type = route_types[route_id]

        trips = [
            (trip_id, trip_events[trip_id]) for trip_id in trip_ids if trip_events.get(trip_id)
        ]
        if not trips:
            logger.warning("Route %s has no trip with stop events; no section created", route_id)
            continue

        ordered_trips = [(trip_id, _ordered_events(events)) for trip_id, events in trips]
        pairs = _canonical_pairs(ordered_trips[0][1])
        frequency = _route_frequency([events[0][1] for _, events in ordered_trips])

        for from_stop, to_stop in pairs:
            durations = []
            for trip_id, ordered in ordered_trips:
                duration = _section_time(ordered, from_stop, to_stop)
                if duration is None:
                    logger.warning(
                        "Trip %s of route %s skips section %s -> %s; ignored for its travel time",
                        trip_id,
                        route_id,
                        from_stop,
                        to_stop,
                    )
                    continue
                durations.append(duration)

            sections.append(
                RouteSection(
                    route_id=route_id,
                    route_type=route_type,
                    from_stop_id=from_stop,
                    to_stop_id=to_stop,
                    time=sum(durations) / len(durations),
                    frequency=frequency,
                ),
            )

    logger.debug("Aggregated %d route sections from %d routes", len(sections), len(route_trips))
    return sections


# =============================================================================
# GTFS TABLE CONVERSION
# =============================================================================


def _require_columns(df: pd.DataFrame, columns: Iterable[str], file: str) -> None:
    """Raise MissingHeaderError for the first required column absent from ``df``."""
    for column in columns:
        if column not in df.columns:
            msg = "required column is missing"
            raise MissingHeaderError(msg, file=file, line=1, field=column)


def schedule_inputs_from_gtfs(
    stop_times: pd.DataFrame,
    trips: pd.DataFrame,
    routes: pd.DataFrame,
) -> tuple[dict[str, list[tuple[str, int]]], dict[str, list[str]], dict[str, int]]:
    """
    Build the inputs of :func:`aggregate_route_sections` from GTFS tables.

    The tables are expected as read from disk: one string column per field,
    indexed by ``line``. Frames with another index are numbered as if their
    first row sat on line 2. Row order is preserved in every output.

    Parameters
    ----------
    stop_times : pandas.DataFrame
        ``stop_times.txt`` with ``trip_id``, ``stop_id`` and ``arrival_time``.
        A blank ``arrival_time`` means the stop event was not recorded.
    trips : pandas.DataFrame
        ``trips.txt`` with ``trip_id`` and ``route_id``.
    routes : pandas.DataFrame
        ``routes.txt`` with ``route_id`` and ``route_type``.

    Returns
    -------
    tuple
        ``(trip_events, route_trips, route_types)``.

    Raises
    ------
    MissingHeaderError
        If a required column is absent.
    MalformedRowError
        If an id is blank, a route type is not an integer or an arrival time
        is not ``HH:MM:SS``.
    UnknownReferenceError
        If a trip references a route absent from ``routes``.
    """
    _require_columns(routes, ("route_id", "route_type"), ROUTES_FILE)
    _require_columns(trips, ("trip_id", "route_id"), TRIPS_FILE)
    _require_columns(stop_times, ("trip_id", "stop_id", "arrival_time"), STOP_TIMES_FILE)

    route_types: dict[str, int] = {}
    route_rows = zip(routes["route_id"], routes["route_type"], strict=True)
    for line, (route_id, route_type) in zip(_row_lines(routes), route_rows, strict=True):
        key = _parse_text(route_id, file=ROUTES_FILE, line=line, field="route_id")
        route_types[key] = _parse_int(route_type, file=ROUTES_FILE, line=line, field="route_type")

    route_trips: dict[str, list[str]] = {}
    trip_routes: dict[str, str] = {}
    trip_rows = zip(trips["trip_id"], trips["route_id"], strict=True)
    for line, (trip_id, route_id) in zip(_row_lines(trips), trip_rows, strict=True):
        trip_key = _parse_text(trip_id, file=TRIPS_FILE, line=line, field="trip_id")
        route_key = _parse_text(route_id, file=TRIPS_FILE, line=line, field="route_id")
        if route_key not in route_types:
            msg = f"unknown route {route_key!r}"
            raise UnknownReferenceError(msg, file=TRIPS_FILE, line=line, field="route_id")
        trip_routes[trip_key] = route_key
        route_trips.setdefault(route_key, []).append(trip_key)

    trip_events: dict[str, list[tuple[str, int]]] = {}
    orphan_trips: set[str] = set()
    columns = (stop_times["trip_id"], stop_times["stop_id"], stop_times["arrival_time"])
    event_rows = zip(*columns, strict=True)
    for line, event in zip(_row_lines(stop_times), event_rows, strict=True):
        trip_id, stop_id, arrival_time = event
        trip_key = _parse_text(trip_id, file=STOP_TIMES_FILE, line=line, field="trip_id")
        stop_key = _parse_text(stop_id, file=STOP_TIMES_FILE, line=line, field="stop_id")
        if trip_key not in trip_routes:
            orphan_trips.add(trip_key)
            continue
        if _is_blank(arrival_time):
            continue
        seconds = _time_to_seconds(
            arrival_time,
            file=STOP_TIMES_FILE,
            line=line,
            field="arrival_time",
        )
        trip_events.setdefault(trip_key, []).append((stop_key, seconds))

    if orphan_trips:
        logger.warning(
            "Ignoring stop times of %d trip(s) absent from %s: %s",
            len(orphan_trips),
            TRIPS_FILE,
            ", ".join(sorted(orphan_trips)),
        )

    return trip_events, route_trips, route_types


def route_sections_to_frame(sections: Iterable[RouteSection]) -> pd.DataFrame:
    """
    Tabulate route sections with the ``route_sections.txt`` header.

    Parameters
    ----------
    sections : Iterable[RouteSection]
        Sections to tabulate.

    Returns
    -------
    pandas.DataFrame
        One row per section, columns :data:`ROUTE_SECTIONS_COLUMNS`.
    """
    rows = [astuple(section) for section in sections]
    return pd.DataFrame(rows, columns=list(ROUTE_SECTIONS_COLUMNS))


def route_sections_from_frame(
    df: pd.DataFrame,
    file: str = ROUTE_SECTIONS_FILE,
) -> list[RouteSection]:
    """
    Parse a ``route_sections.txt`` table into route sections.

    Parameters
    ----------
    df : pandas.DataFrame
        String-typed table with the :data:`ROUTE_SECTIONS_COLUMNS` columns.
    file : str, default "route_sections.txt"
        File name reported in errors.

    Returns
    -------
    list[RouteSection]
        Sections in row order.

    Raises
    ------
    MissingHeaderError
        If a column is absent.
    MalformedRowError
        If a value is blank or unparsable.
    """
    _require_columns(df, ROUTE_SECTIONS_COLUMNS, file)

    sections: list[RouteSection] = []
    rows = zip(*(df[column] for column in ROUTE_SECTIONS_COLUMNS), strict=True)
    for line, row in zip(_row_lines(df), rows, strict=True):
        route_id, route_type, from_stop, to_stop, time, frequency = row
        sections.append(
            RouteSection(
                route_id=_parse_text(route_id, file=file, line=line, field="route_id"),
                route_type=_parse_int(route_type, file=file, line=line, field="route_type"),
                from_stop_id=_parse_text(from_stop, file=file, line=line, field="from_stop_id"),
                to_stop_id=_parse_text(to_stop, file=file, line=line, field="to_stop_id"),
                time=_parse_float(  # type: ignore[arg-type]
                    time, file=file, line=line, field="time"
                ),
                frequency=_parse_float(  # type: ignore[arg-type]
                    frequency, file=file, line=line, field="frequency"
                ),
            ),
        )
    return sections
