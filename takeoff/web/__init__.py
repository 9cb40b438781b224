"""HTTP adapter for takeoff imports."""
