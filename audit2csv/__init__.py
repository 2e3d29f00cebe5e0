"""Convert audit log records into flat CSV rows for offline forensic review."""
