"""Drawing/size normalization and component identity keys."""
