"""Command-line interface for ScanWarden."""
