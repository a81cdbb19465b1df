"""
Traffic Source CSV parser tests.

Tests analytics/traffic_parser.py:
- Auto-detected parsing of EN and RU exports
- Total row isolation
- MAPPING_REQUIRED / NO_DATA / PARSE_FAILED conditions
- Manual mappings and the mapping preview
- Upload-time totals summary on Snapshot
"""

import pytest

from analytics.errors import MappingRequiredError, NoDataError, TrafficParseError
from analytics.traffic_parser import (
    decode_bytes,
    mapping_preview,
    parse_traffic_source_bytes,
    parse_traffic_source_csv,
    resolve_mapping,
    split_lines,
)
from registry.schemas import ColumnMapping, Snapshot


# =============================================================================
# TEST 1 — Auto-detected Parsing
# =============================================================================

class TestAutoDetectedParsing:
    """Exports whose headers are recognised."""

    def test_scenario_export(self, scenario_csv):
        result = parse_traffic_source_csv(scenario_csv)

        assert result.total_row is not None
        assert result.total_row.views == 1000
        assert result.total_row.impressions == 5000
        assert result.total_row.ctr == 20.0

        assert len(result.metrics) == 1
        suggested = result.metrics[0]
        assert suggested.source == "Suggested videos"
        assert suggested.views == 600
        assert suggested.watch_time_hours == pytest.approx(30.2)
        assert suggested.avg_view_duration == "0:12:00"
        assert suggested.impressions == 2500
        assert suggested.ctr == 24.0

    def test_english_export_with_quoted_thousands(self, english_csv):
        result = parse_traffic_source_csv(english_csv)

        assert result.total_row.views == 12480
        assert result.total_row.impressions == 148220
        assert [m.source for m in result.metrics] == [
            "Suggested videos",
            "Browse features",
            "YouTube search",
            "External",
        ]
        assert result.metrics[0].impressions == 96410
        assert result.metrics[-1].ctr == 0.0

    def test_russian_export_with_reordered_columns(self, russian_csv):
        result = parse_traffic_source_csv(russian_csv)

        assert result.total_row is not None
        assert result.total_row.source == "Итого"
        assert result.total_row.views == 1100
        assert result.total_row.impressions == 20000

        similar = result.metrics[0]
        assert similar.source == "Похожие видео"
        assert similar.views == 900
        assert similar.impressions == 15000
        assert similar.ctr == 6.0
        assert similar.watch_time_hours == pytest.approx(40.3)
        assert similar.avg_view_duration == "0:02:41"

    def test_input_order_preserved(self, english_csv):
        result = parse_traffic_source_csv(english_csv)
        assert result.metrics[2].source == "YouTube search"

    def test_total_row_never_in_metrics(self, english_csv):
        result = parse_traffic_source_csv(english_csv)
        assert all(not m.is_total for m in result.metrics)

    def test_total_row_anywhere_any_case(self):
        text = (
            "Source,Views,Watch time,Avg duration,Impressions,CTR\n"
            "Suggested videos,600,30.2,0:12:00,2500,24.0\n"
            "TOTAL,1000,50.5,0:11:35,5000,20.0\n"
        )
        result = parse_traffic_source_csv(text)
        assert result.total_row.views == 1000
        assert len(result.metrics) == 1

    def test_no_total_row(self):
        text = (
            "Source,Views,Watch time,Avg duration,Impressions,CTR\n"
            "Suggested videos,600,30.2,0:12:00,2500,24.0\n"
        )
        result = parse_traffic_source_csv(text)
        assert result.total_row is None
        assert len(result.metrics) == 1

    def test_result_not_flagged_missing(self, scenario_csv):
        assert parse_traffic_source_csv(scenario_csv).data_missing is False


# =============================================================================
# TEST 2 — Row Handling
# =============================================================================

class TestRowHandling:
    """Malformed, blank and duplicate rows."""

    HEADER = "Source,Views,Watch time,Avg duration,Impressions,CTR\n"

    def test_blank_and_short_rows_skipped(self):
        text = (
            self.HEADER
            + "\n"
            + "   \n"
            + "orphan\n"
            + "Suggested videos,600,30.2,0:12:00,2500,24.0\n"
        )
        result = parse_traffic_source_csv(text)
        assert [m.source for m in result.metrics] == ["Suggested videos"]

    def test_empty_source_skipped(self):
        text = self.HEADER + ',5,1.0,0:01:00,10,1.0\nExternal,5,1.0,0:01:00,10,1.0\n'
        result = parse_traffic_source_csv(text)
        assert [m.source for m in result.metrics] == ["External"]

    def test_bad_numbers_become_zero(self):
        text = self.HEADER + "External,lots,??,0:01:00,,n/a\n"
        metric = parse_traffic_source_csv(text).metrics[0]
        assert metric.views == 0
        assert metric.watch_time_hours == 0.0
        assert metric.impressions == 0
        assert metric.ctr == 0.0

    def test_short_row_missing_cells_default(self):
        text = self.HEADER + "External,42\n"
        metric = parse_traffic_source_csv(text).metrics[0]
        assert metric.views == 42
        assert metric.avg_view_duration == ""
        assert metric.impressions == 0

    def test_negative_counts_clamped(self):
        text = self.HEADER + "External,-5,-1.5,0:01:00,-10,-2.0\n"
        metric = parse_traffic_source_csv(text).metrics[0]
        assert metric.views == 0
        assert metric.impressions == 0
        assert metric.watch_time_hours == 0.0
        assert metric.ctr == -2.0

    def test_duplicate_source_keeps_first(self):
        text = (
            self.HEADER
            + "External,5,1.0,0:01:00,10,1.0\n"
            + "External,99,9.0,0:09:00,90,9.0\n"
        )
        result = parse_traffic_source_csv(text)
        assert len(result.metrics) == 1
        assert result.metrics[0].views == 5

    def test_second_total_row_dropped(self):
        text = (
            self.HEADER
            + "Total,1000,50.5,0:11:35,5000,20.0\n"
            + "External,5,1.0,0:01:00,10,1.0\n"
            + "Total,1,1.0,0:00:01,1,1.0\n"
        )
        result = parse_traffic_source_csv(text)
        assert result.total_row.views == 1000
        assert [m.source for m in result.metrics] == ["External"]

    def test_crlf_line_endings(self):
        text = self.HEADER.replace("\n", "\r\n") + "External,5,1.0,0:01:00,10,1.0\r\n"
        result = parse_traffic_source_csv(text)
        assert result.metrics[0].ctr == 1.0

    def test_decimal_comma_cells(self):
        text = self.HEADER + 'External,5,"12,5",0:01:00,10,"6,1"\n'
        metric = parse_traffic_source_csv(text).metrics[0]
        assert metric.watch_time_hours == pytest.approx(12.5)
        assert metric.ctr == pytest.approx(6.1)


# =============================================================================
# TEST 3 — Error Conditions
# =============================================================================

class TestParseErrors:
    """MAPPING_REQUIRED, NO_DATA and PARSE_FAILED."""

    def test_unrecognised_headers_require_mapping(self, unmapped_csv):
        with pytest.raises(MappingRequiredError) as exc_info:
            parse_traffic_source_csv(unmapped_csv)

        error = exc_info.value
        assert error.code == "MAPPING_REQUIRED"
        assert error.headers == ["Col A", "Col B", "Col C", "Col D", "Col E", "Col F"]
        assert error.preview_row[0] == "Total"
        assert error.missing_fields == [
            "source", "views", "watch_time", "avg_duration", "impressions", "ctr"
        ]

    def test_mapping_required_payload(self, unmapped_csv):
        with pytest.raises(MappingRequiredError) as exc_info:
            parse_traffic_source_csv(unmapped_csv)

        payload = exc_info.value.to_dict()
        assert payload["code"] == "MAPPING_REQUIRED"
        assert "headers" in payload
        assert "preview_row" in payload

    def test_empty_text_has_no_data(self):
        with pytest.raises(NoDataError):
            parse_traffic_source_csv("")

    def test_header_only_has_no_data(self):
        with pytest.raises(NoDataError) as exc_info:
            parse_traffic_source_csv("Source,Views,Watch time,Avg duration,Impressions,CTR\n")
        assert exc_info.value.code == "NO_DATA"
        assert exc_info.value.message == "No valid data rows found in CSV."

    def test_only_total_row_has_no_data(self):
        text = (
            "Source,Views,Watch time,Avg duration,Impressions,CTR\n"
            "Total,1000,50.5,0:11:35,5000,20.0\n"
        )
        with pytest.raises(NoDataError):
            parse_traffic_source_csv(text)

    def test_mapping_wider_than_header(self):
        text = "A,B,C\nExternal,5,1.0\n"
        with pytest.raises(TrafficParseError) as exc_info:
            parse_traffic_source_csv(text, ColumnMapping.positional())
        assert exc_info.value.code == "PARSE_FAILED"

    def test_invalid_utf8_bytes(self):
        with pytest.raises(TrafficParseError):
            decode_bytes(b"\xff\xfe\xfa not utf-8")


# =============================================================================
# TEST 4 — Manual Mapping
# =============================================================================

class TestManualMapping:
    """User-supplied column mappings."""

    def test_manual_mapping_parses_unrecognised_file(self, unmapped_csv):
        result = parse_traffic_source_csv(unmapped_csv, ColumnMapping.positional())
        assert result.total_row.views == 1000
        assert result.metrics[0].source == "Suggested videos"
        assert result.metrics[0].impressions == 2500

    def test_manual_mapping_overrides_detection(self, scenario_csv):
        swapped = ColumnMapping(
            source=0, views=4, watch_time=2, avg_duration=3, impressions=1, ctr=5
        )
        result = parse_traffic_source_csv(scenario_csv, swapped)
        assert result.metrics[0].views == 2500
        assert result.metrics[0].impressions == 600

    def test_resolve_mapping_reports_source(self, scenario_csv):
        lines = split_lines(scenario_csv)
        assert resolve_mapping(lines) == (ColumnMapping.positional(), True)

        manual = ColumnMapping(
            source=5, views=4, watch_time=3, avg_duration=2, impressions=1, ctr=0
        )
        assert resolve_mapping(lines, manual) == (manual, False)


# =============================================================================
# TEST 5 — Bytes & Preview
# =============================================================================

class TestBytesAndPreview:
    """Byte decoding and the mapping preview."""

    def test_bytes_with_bom(self, scenario_csv):
        raw = b"\xef\xbb\xbf" + scenario_csv.encode("utf-8")
        result = parse_traffic_source_bytes(raw)
        assert result.metrics[0].source == "Suggested videos"

    def test_split_lines_strips_bom(self):
        assert split_lines("\ufeffa\r\nb") == ["a", "b"]

    def test_preview_of_unrecognised_file(self, unmapped_csv):
        preview = mapping_preview(unmapped_csv)
        assert preview.headers[0] == "Col A"
        assert preview.preview_row[:2] == ["Total", "1000"]
        assert preview.detected_mapping is None
        assert preview.default_mapping == ColumnMapping.positional()
        assert len(preview.missing_fields) == 6

    def test_preview_of_recognised_file(self, russian_csv):
        preview = mapping_preview(russian_csv)
        assert preview.detected_mapping is not None
        assert preview.detected_mapping.views == 3
        assert preview.missing_fields == []

    def test_preview_of_empty_text(self):
        preview = mapping_preview("")
        assert preview.headers == []
        assert preview.preview_row == []


# =============================================================================
# TEST 6 — Upload Summary
# =============================================================================

class TestSnapshotFromUpload:
    """Snapshot totals recorded from a freshly parsed upload."""

    def test_totals_from_total_row(self, scenario_csv):
        result = parse_traffic_source_csv(scenario_csv)
        snapshot = Snapshot.from_upload("ts_1", 1000, "videos/v1/ts_1.csv", result)

        assert snapshot.total_views == 1000
        assert snapshot.total_impressions == 5000
        assert snapshot.total_ctr == 20.0
        assert snapshot.total_watch_time_hours == 50.5

        total = snapshot.recorded_total()
        assert total.source == "Total"
        assert total.views == 1000
        assert total.impressions == 5000

    def test_without_total_row(self):
        csv_text = (
            "Source,Views,Watch time,Avg duration,Impressions,CTR\n"
            "Suggested videos,600,30.5,0:12:00,2500,24.0\n"
            "Browse features,200,10.25,0:03:00,1500,8.0\n"
        )
        snapshot = Snapshot.from_upload(
            "ts_1", 1000, "videos/v1/ts_1.csv", parse_traffic_source_csv(csv_text)
        )

        assert snapshot.total_views == 800
        assert snapshot.total_watch_time_hours == 40.75
        assert snapshot.total_impressions is None
        assert snapshot.recorded_total() is None

    def test_keeps_confirmed_mapping(self, unmapped_csv):
        mapping = ColumnMapping.positional()
        result = parse_traffic_source_csv(unmapped_csv, mapping)

        snapshot = Snapshot.from_upload(
            "ts_1", 1000, "videos/v1/ts_1.csv", result, label="week 1", column_mapping=mapping
        )

        assert snapshot.column_mapping == mapping
        assert snapshot.label == "week 1"

    def test_plain_reference_has_no_summary(self):
        assert Snapshot(id="ts_1", timestamp=1000).recorded_total() is None
