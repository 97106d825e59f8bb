"""T4G points economy API."""
