"""FieldVision offline sync subsystem."""
