"""ImpactGraph: impact analysis for product artefacts and their linked code, tests and data."""

__version__ = "0.3.0"
