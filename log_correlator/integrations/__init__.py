"""Adapters for Grafana/Loki, configuration and report output."""
