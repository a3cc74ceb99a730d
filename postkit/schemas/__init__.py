"""JSON schemas bundled with postkit."""
