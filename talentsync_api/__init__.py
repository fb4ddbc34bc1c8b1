"""TalentSync HTTP API."""
