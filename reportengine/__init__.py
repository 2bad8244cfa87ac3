"""Dynamic report engine: metadata-driven report query, totals and export."""
