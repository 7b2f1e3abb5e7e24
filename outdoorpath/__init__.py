"""OutdoorPath: browse, create and RSVP to outdoor-activity events."""
