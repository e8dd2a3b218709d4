"""citewatch: AI answer citation change detection and alerting."""

__version__ = "0.1.0"
