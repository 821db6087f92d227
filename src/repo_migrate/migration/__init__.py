"""Migration workflow engine and the origin/destination contracts."""
