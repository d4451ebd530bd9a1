"""Installation and version-management engine."""
