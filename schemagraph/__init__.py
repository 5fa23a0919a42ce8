"""SchemaGraph: schema-graph traversal and dependency scanning for research data."""

__version__ = "0.4.0"
