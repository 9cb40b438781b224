"""Reading, column mapping and validation of takeoff files."""
