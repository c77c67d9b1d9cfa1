"""HTTP routes for the IceTime booking engine."""
