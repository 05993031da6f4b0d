"""Service layer: store, delivery channel, pipeline and background workers."""
