"""Out-of-band seeding of a fresh mirror from the registry bulk exports."""
