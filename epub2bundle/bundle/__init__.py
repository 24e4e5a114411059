"""Bundle assembly: style/span compaction, validation and writing."""
