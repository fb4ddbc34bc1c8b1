"""TalentSync - ATS sync, candidate enrichment and event correlation."""

__version__ = "1.0.0"
