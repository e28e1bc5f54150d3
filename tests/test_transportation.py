"""Tests for the transportation module."""

import logging
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from transport2graph.base import DuplicateIdError
from transport2graph.base import MalformedRowError
from transport2graph.base import MissingFileError
from transport2graph.base import MissingHeaderError
from transport2graph.base import UnknownReferenceError
from transport2graph.network import Network
from transport2graph.schedule import RouteSection
from transport2graph.transportation import _read_csv_bytes
from transport2graph.transportation import read_gtfs
from transport2graph.transportation import save_route_sections
from transport2graph.utils import SphericalGeodesy
from transport2graph.utils import haversine_distance


class _FlatGeodesy(SphericalGeodesy):
    """Geodesy measuring every pair of coordinates 500 m apart."""

    def geodesic_distance(self, a: tuple[float, float], b: tuple[float, float]) -> float:
        return 500.0


def _link_summary(network: Network) -> dict[str, tuple]:
    return {
        link_id: (
            link.from_node,
            link.to_node,
            link.is_bidirectional,
            link.speed,
            link.travel_time,
            link.capacity,
            link.length,
        )
        for link_id, link in network.links.items()
    }


class TestReadCsvBytes:
    """Test the strict CSV reader."""

    def test_string_columns(self) -> None:
        """Test that values are kept as strings and blanks as empty strings."""
        df = _read_csv_bytes(b"stop_id,stop_lon,stop_lat,zone\nS1,2.35,48.85,\n", "stops.txt")

        assert list(df.columns) == ["stop_id", "stop_lon", "stop_lat", "zone"]
        assert df.loc[2, "stop_lon"] == "2.35"
        assert df.loc[2, "zone"] == ""

    def test_byte_order_mark(self) -> None:
        """Test that a UTF-8 BOM does not leak into the first column name."""
        df = _read_csv_bytes("\ufeffstop_id,stop_lon\nS1,2.0\n".encode(), "stops.txt")
        assert df.columns[0] == "stop_id"

    def test_quoted_delimiter(self) -> None:
        """Test that a quoted comma stays inside its field."""
        df = _read_csv_bytes(b'stop_id,stop_name\nS1,"Gare, Nord"\n', "stops.txt")
        assert df.loc[2, "stop_name"] == "Gare, Nord"

    def test_too_many_fields(self) -> None:
        """Test that an extra delimiter is a field-count error on its line."""
        buf = b"stop_id,stop_lon,stop_lat\nS1,2.35,48.85\nS2,2,36,48.86\n"
        with pytest.raises(MalformedRowError) as exc_info:
            _read_csv_bytes(buf, "stops.txt")

        assert (exc_info.value.file, exc_info.value.line) == ("stops.txt", 3)

    def test_too_few_fields(self) -> None:
        """Test that a short row is a field-count error on its line."""
        buf = b"stop_id,stop_lon,stop_lat\nS1,2.35,48.85\nS2,2.36\n"
        with pytest.raises(MalformedRowError, match="expected 3 fields") as exc_info:
            _read_csv_bytes(buf, "stops.txt")

        assert exc_info.value.line == 3

    def test_short_row_with_blankable_fields(self) -> None:
        """Test that a missing trailing field is not read as a blank value."""
        buf = b"pathway_id,length,traversal_time\nP1,80,40\nP2,15\n"
        with pytest.raises(MalformedRowError, match="expected 3 fields, got 2") as exc_info:
            _read_csv_bytes(buf, "pathways.txt")

        assert (exc_info.value.file, exc_info.value.line) == ("pathways.txt", 3)

    def test_blank_lines_keep_physical_numbering(self) -> None:
        """Test that rows are indexed by their line in the file."""
        df = _read_csv_bytes(b"stop_id,stop_lon\n\nS1,2.0\n\nS2,2.1\n", "stops.txt")

        assert df.index.name == "line"
        assert list(df.index) == [3, 5]
        assert list(df["stop_id"]) == ["S1", "S2"]

    def test_field_count_error_after_blank_line(self) -> None:
        """Test that the reported line counts blank lines."""
        buf = b"stop_id,stop_lon,stop_lat\nS1,2.35,48.85\n\nS2,2.36\n"
        with pytest.raises(MalformedRowError) as exc_info:
            _read_csv_bytes(buf, "stops.txt")

        assert exc_info.value.line == 4

    def test_header_only(self) -> None:
        """Test that a table without rows is valid."""
        df = _read_csv_bytes(b"stop_id,stop_lon,stop_lat\n", "stops.txt")

        assert df.empty
        assert list(df.columns) == ["stop_id", "stop_lon", "stop_lat"]

    def test_empty_file(self) -> None:
        """Test that a header row is mandatory."""
        with pytest.raises(MissingHeaderError, match="header row"):
            _read_csv_bytes(b"", "stops.txt")


class TestReadGtfs:
    """Test GTFS ingestion from a folder."""

    def test_nodes_and_links(self, network: Network, sample_gtfs_dir: Path) -> None:
        """Test the network built from the sample feed."""
        result = read_gtfs(network, sample_gtfs_dir)

        assert result is network
        assert set(network.nodes) == {"S1", "S2", "S3"}
        assert set(network.links) == {"S1:S2", "S2:S3", "P1", "P2", "S1:S3"}

    def test_route_section_links(self, network: Network, sample_gtfs_dir: Path) -> None:
        """Test the attributes derived from the aggregated stop times."""
        read_gtfs(network, sample_gtfs_dir)
        length = haversine_distance(2.35, 48.85, 2.36, 48.855)

        link = network.get_link("S1:S2")
        assert link.travel_time == 102.5
        assert link.length == pytest.approx(length)
        assert link.speed == pytest.approx(length / 102.5)
        assert link.capacity == 1003 / 300.0 / 3600

        # Single-trip tram route: zero frequency
        tram = network.get_link("S2:S3")
        assert tram.travel_time == 120.0
        assert tram.capacity is None

    def test_transfers_and_pathways(self, network: Network, sample_gtfs_dir: Path) -> None:
        """Test walking links."""
        read_gtfs(network, sample_gtfs_dir)

        transfer = network.get_link("S1:S3")
        assert transfer.is_bidirectional is True
        assert transfer.travel_time == 120.0
        assert transfer.capacity == 10_000_000

        measured = network.get_link("P1")
        assert (measured.from_node, measured.to_node) == ("S2", "S3")
        assert measured.is_bidirectional is True
        assert measured.length == 80.0
        assert measured.speed == 2.0

        estimated = network.get_link("P2")
        assert estimated.is_bidirectional is False
        assert estimated.length == pytest.approx(haversine_distance(2.37, 48.86, 2.35, 48.85))
        assert estimated.travel_time is None

    def test_route_sections_written_back(self, network: Network, sample_gtfs_dir: Path) -> None:
        """Test that aggregated sections are persisted in the folder."""
        read_gtfs(network, sample_gtfs_dir)
        lines = (sample_gtfs_dir / "route_sections.txt").read_text().splitlines()

        assert lines[0] == "route_id,route_type,from_stop_id,to_stop_id,time,frequency"
        assert lines[1:] == ["R1,3,S1,S2,102.5,300.0", "R2,0,S2,S3,120.0,0.0"]

    def test_write_back_disabled(self, network: Network, sample_gtfs_dir: Path) -> None:
        """Test that write-back can be turned off."""
        read_gtfs(network, sample_gtfs_dir, write_route_sections=False)
        assert not (sample_gtfs_dir / "route_sections.txt").exists()

    def test_round_trip_through_route_sections(self, sample_gtfs_dir: Path) -> None:
        """Test that re-reading the persisted sections yields the same links."""
        aggregated = read_gtfs(Network(), sample_gtfs_dir)
        reread = read_gtfs(Network(), sample_gtfs_dir)

        assert (sample_gtfs_dir / "route_sections.txt").exists()
        assert _link_summary(reread) == _link_summary(aggregated)

    def test_supplied_route_sections(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that stop times are not required when sections are supplied."""
        folder = write_gtfs(
            {
                "stops.txt": gtfs_tables["stops.txt"],
                "route_sections.txt": (
                    "route_id,route_type,from_stop_id,to_stop_id,time,frequency\n"
                    "R9,1,S3,S1,200,600\n"
                ),
            },
        )
        read_gtfs(network, folder)

        link = network.get_link("S3:S1")
        assert link.travel_time == 200.0
        assert link.capacity == 1001 / 600.0 / 3600

    def test_supplied_route_sections_unknown_stop(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that a section must reference registered stops."""
        folder = write_gtfs(
            {
                "stops.txt": gtfs_tables["stops.txt"],
                "route_sections.txt": (
                    "route_id,route_type,from_stop_id,to_stop_id,time,frequency\n"
                    "R9,1,S3,S1,200,600\n"
                    "R9,1,S1,S7,200,600\n"
                ),
            },
        )
        with pytest.raises(UnknownReferenceError) as exc_info:
            read_gtfs(network, folder)

        err = exc_info.value
        assert (err.file, err.line, err.field) == ("route_sections.txt", 3, "to_stop_id")


class TestReadGtfsZip:
    """Test GTFS ingestion from a zip archive."""

    def test_zip_matches_folder(self, sample_gtfs_zip: Path, sample_gtfs_dir: Path) -> None:
        """Test that a zipped feed yields the same network as a folder."""
        from_zip = read_gtfs(Network(), sample_gtfs_zip)
        from_dir = read_gtfs(Network(), sample_gtfs_dir, write_route_sections=False)

        assert _link_summary(from_zip) == _link_summary(from_dir)

    def test_zip_is_not_modified(
        self,
        sample_gtfs_zip: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that route sections are never written into an archive."""
        with caplog.at_level(logging.INFO, logger="transport2graph.transportation"):
            read_gtfs(Network(), sample_gtfs_zip)

        with zipfile.ZipFile(sample_gtfs_zip) as zf:
            assert not any(name.endswith("route_sections.txt") for name in zf.namelist())
        assert not (sample_gtfs_zip.parent / "route_sections.txt").exists()
        assert "not written back" in caplog.text


class TestReadGtfsErrors:
    """Test the fatal error paths of GTFS ingestion."""

    def test_missing_stops(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that a feed without stops.txt fails before any node is created."""
        del gtfs_tables["stops.txt"]
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(MissingFileError, match=r"stops\.txt"):
            read_gtfs(network, folder)
        assert network.number_of_nodes() == 0

    def test_missing_trips_without_sections(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that schedule tables are required when sections must be aggregated."""
        del gtfs_tables["trips.txt"]
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(MissingFileError) as exc_info:
            read_gtfs(network, folder)
        assert exc_info.value.file == "trips.txt"
        assert network.number_of_nodes() == 0

    def test_not_a_gtfs_source(self, network: Network, tmp_path: Path) -> None:
        """Test that a path that is neither a folder nor an archive is rejected."""
        text_file = tmp_path / "notes.txt"
        text_file.write_text("hello")

        with pytest.raises(MissingFileError):
            read_gtfs(network, tmp_path / "absent")
        with pytest.raises(MissingFileError, match="neither a directory nor a zip"):
            read_gtfs(network, text_file)

    def test_missing_column(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that a required column must be present."""
        gtfs_tables["routes.txt"] = "route_id,route_short_name\nR1,1\n"
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(MissingHeaderError) as exc_info:
            read_gtfs(network, folder)
        assert (exc_info.value.file, exc_info.value.field) == ("routes.txt", "route_type")

    def test_malformed_stop(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that an unparsable coordinate aborts the import."""
        gtfs_tables["stops.txt"] = "stop_id,stop_lon,stop_lat\nS1,2.35,48.85\nS2,east,48.9\n"
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(MalformedRowError, match="stops.txt, line 3, field 'stop_lon'"):
            read_gtfs(network, folder)

    def test_malformed_stop_after_blank_line(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that value errors report the physical line of the row."""
        gtfs_tables["stops.txt"] = "stop_id,stop_lon,stop_lat\nS1,2.35,48.85\n\nS2,east,48.9\n"
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(MalformedRowError, match="stops.txt, line 4, field 'stop_lon'"):
            read_gtfs(network, folder)

    def test_short_pathway_row(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that a pathway row missing its trailing fields aborts the import."""
        gtfs_tables["pathways.txt"] += "P3,S1,S2,1\n"
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(MalformedRowError) as exc_info:
            read_gtfs(network, folder)
        assert (exc_info.value.file, exc_info.value.line) == ("pathways.txt", 4)
        assert not network.contains_link("P3")

    def test_aborted_import_writes_no_route_sections(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that route sections are only written back after a complete import."""
        gtfs_tables["transfers.txt"] = "from_stop_id,to_stop_id,min_transfer_time\nS1,S9,60\n"
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(UnknownReferenceError):
            read_gtfs(network, folder)
        assert not (folder / "route_sections.txt").exists()

    def test_missing_pathway_length_uses_geodesy(
        self,
        network: Network,
        sample_gtfs_dir: Path,
    ) -> None:
        """Test that pathways without length are measured by the supplied geodesy."""
        read_gtfs(network, sample_gtfs_dir, _FlatGeodesy())

        assert network.get_link("P2").length == 500.0
        assert network.get_link("P1").length == 80.0
        assert network.get_link("S1:S3").length == 500.0

    def test_out_of_range_latitude(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that coordinates must be geographic degrees."""
        gtfs_tables["stops.txt"] = "stop_id,stop_lon,stop_lat\nS1,652469,6862035\n"
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(MalformedRowError, match="out of range"):
            read_gtfs(network, folder)

    def test_duplicate_stop(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that a stop id can only appear once."""
        gtfs_tables["stops.txt"] = "stop_id,stop_lon,stop_lat\nS1,2.35,48.85\nS1,2.36,48.86\n"
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(DuplicateIdError) as exc_info:
            read_gtfs(network, folder)
        assert (exc_info.value.file, exc_info.value.line) == ("stops.txt", 3)

    def test_transfer_to_unknown_stop(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that transfers must reference registered stops."""
        gtfs_tables["transfers.txt"] = "from_stop_id,to_stop_id,min_transfer_time\nS1,S9,60\n"
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(UnknownReferenceError) as exc_info:
            read_gtfs(network, folder)
        err = exc_info.value
        assert (err.file, err.line, err.field) == ("transfers.txt", 2, "to_stop_id")

    def test_wrong_field_count_in_stop_times(
        self,
        network: Network,
        write_gtfs: Callable[..., Path],
        gtfs_tables: dict[str, str],
    ) -> None:
        """Test that a delimiter inside a field aborts the import."""
        gtfs_tables["stop_times.txt"] = (
            "trip_id,arrival_time,stop_id\nA,08:00:00,S1\nA,08:01:40,S2,extra\n"
        )
        folder = write_gtfs(gtfs_tables)

        with pytest.raises(MalformedRowError) as exc_info:
            read_gtfs(network, folder)
        assert (exc_info.value.file, exc_info.value.line) == ("stop_times.txt", 3)


class TestSaveRouteSections:
    """Test the route_sections.txt writer."""

    def test_write_into_folder(self, tmp_path: Path) -> None:
        """Test that a folder target receives route_sections.txt."""
        path = save_route_sections([RouteSection("R1", 3, "S1", "S2", 60.0, 600.0)], tmp_path)

        assert path == tmp_path / "route_sections.txt"
        assert path.read_text().splitlines()[1] == "R1,3,S1,S2,60.0,600.0"

    def test_write_to_file(self, tmp_path: Path) -> None:
        """Test an explicit file target."""
        target = tmp_path / "sections.csv"
        assert save_route_sections([], target) == target
        assert target.read_text().strip() == (
            "route_id,route_type,from_stop_id,to_stop_id,time,frequency"
        )
