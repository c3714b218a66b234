"""WorkSync - Local/network JSON storage with backups and replication."""
