"""Background job entry points for scheduled syncs."""
