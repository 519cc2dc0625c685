"""Supply-list backend: persistence, PDF import and HTTP surface."""
