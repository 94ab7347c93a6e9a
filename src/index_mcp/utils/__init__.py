"""Utility modules."""

from index_mcp.utils.parsing import (
    ParsedNumber,
    extract_json_block,
    parse_number,
    parse_number_checked,
    sanitize_text,
)
from index_mcp.utils.provenance import (
    build_error_response,
    build_meta,
    build_provenance,
    canonical_dumps,
    fingerprint,
)
from index_mcp.utils.valuation import estimate_pb_ratio, estimate_pe_percentile

__all__ = [
    "ParsedNumber",
    "extract_json_block",
    "parse_number",
    "parse_number_checked",
    "sanitize_text",
    "build_error_response",
    "build_meta",
    "build_provenance",
    "canonical_dumps",
    "fingerprint",
    "estimate_pb_ratio",
    "estimate_pe_percentile",
]
