"""craft-audit: finding lifecycle pipeline for Craft CMS project audits."""

__version__ = "0.4.0"
