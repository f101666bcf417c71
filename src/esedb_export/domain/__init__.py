"""Exporter domain layer: schema and row entities, vocabularies and services."""
