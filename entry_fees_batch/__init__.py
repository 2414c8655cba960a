"""Batch mutation runners over the entry fees kernel."""
