"""governance-os: governance pipeline and cost-aware model routing."""

__version__ = "0.3.0"
