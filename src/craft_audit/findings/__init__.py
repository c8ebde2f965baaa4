"""Finding models, fingerprints, aggregation, and summaries."""

from craft_audit.findings.fingerprint import Fingerprinter, KeyStrategy, compute_fingerprint
from craft_audit.findings.models import AuditResult, Evidence, Finding, Fix

__all__ = ["AuditResult", "Evidence", "Finding", "Fingerprinter", "Fix", "KeyStrategy", "compute_fingerprint"]
