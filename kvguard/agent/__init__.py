"""Context budget management: token estimates, compaction planning, tool-result guard."""
