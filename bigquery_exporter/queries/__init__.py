"""Query and metric-definition files."""
